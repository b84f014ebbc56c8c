"""
Address geocoding against a Nominatim-compatible search endpoint
"""

import logging
from typing import Optional

import httpx
from pydantic import BaseModel

from app.config import settings

logger = logging.getLogger(__name__)


class GeocodeResult(BaseModel):
    latitude: float
    longitude: float
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class GeocodingService:
    """Resolves free-text addresses to coordinates. Never raises; returns None on failure."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.GEOCODER_URL
        self.timeout = timeout or settings.GEOCODER_TIMEOUT_SECONDS
        self.transport = transport

    async def geocode(self, address: str) -> Optional[GeocodeResult]:
        if not address or not address.strip(" ,"):
            return None

        params = {"q": address, "format": "json", "limit": 1, "addressdetails": 1}
        headers = {"User-Agent": settings.GEOCODER_USER_AGENT}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                r = await client.get(self.base_url, params=params, headers=headers)
                r.raise_for_status()
                results = r.json()
            except httpx.HTTPError as e:
                logger.warning("Geocoding failed for %r: %s", address, e)
                return None
            except ValueError as e:
                logger.warning("Geocoder returned invalid JSON for %r: %s", address, e)
                return None

        if not results:
            logger.warning("No geocoding results for %r", address)
            return None

        top = results[0]
        details = top.get("address") or {}
        try:
            return GeocodeResult(
                latitude=float(top["lat"]),
                longitude=float(top["lon"]),
                city=details.get("city") or details.get("town") or details.get("village"),
                state=details.get("state"),
                zip_code=details.get("postcode"),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Unexpected geocoder payload for %r: %s", address, e)
            return None


geocoding_service = GeocodingService()
