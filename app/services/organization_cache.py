"""In-process cache of the verified organization listing."""

import time
from typing import Callable, List, Optional

from app.models.organization import Organization


class OrganizationCache:
    """
    Holds one snapshot of the organization listing.

    The snapshot is never mutated in place: `replace` swaps the whole list and
    `invalidate` drops it, so readers always see a complete listing.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._organizations: Optional[List[Organization]] = None
        self._loaded_at = 0.0

    def get(self) -> Optional[List[Organization]]:
        if self._organizations is None:
            return None
        if self._clock() - self._loaded_at > self.ttl_seconds:
            self._organizations = None
            return None
        return list(self._organizations)

    def replace(self, organizations: List[Organization]) -> None:
        self._organizations = list(organizations)
        self._loaded_at = self._clock()

    def invalidate(self) -> None:
        self._organizations = None
