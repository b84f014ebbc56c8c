"""
Organization directory: lookup, discovery search, admin membership, groups and logos
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.config import settings
from app.exceptions import InvalidInputError, NotFoundError
from app.models.organization import (
    Organization,
    OrganizationGroup,
    firestore_group_to_model,
    firestore_organization_to_model,
    group_model_to_firestore,
)
from app.services import collections
from app.services.firebase_service import firebase_service
from app.services.organization_cache import OrganizationCache

logger = logging.getLogger(__name__)

LOGO_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


def _search_rank(org: Organization, query: str) -> int:
    name = org.name.lower()
    if name == query:
        return 0
    if name.startswith(query):
        return 1
    if query in name:
        return 2
    return 3


def _matches(org: Organization, query: str, raw_query: str) -> bool:
    location = org.location
    return (
        query in org.name.lower()
        or query in str(org.type).lower()
        or query in (location.city or "").lower()
        or query in (location.state or "").lower()
        or raw_query in (location.zip_code or "")
    )


class OrganizationService:
    """Directory operations over organizations/ and its groups subcollection"""

    def __init__(self, cache: Optional[OrganizationCache] = None):
        self.firebase = firebase_service
        self.cache = cache or OrganizationCache(settings.ORGANIZATION_CACHE_TTL_SECONDS)

    async def get_organization(self, org_id: str) -> Organization:
        doc = await self.firebase.get_document(collections.organization_path(org_id))
        if not doc:
            raise NotFoundError(f"Organization {org_id} not found")
        return firestore_organization_to_model(doc, org_id)

    async def find_organization(self, org_id: str) -> Optional[Organization]:
        doc = await self.firebase.get_document(collections.organization_path(org_id))
        return firestore_organization_to_model(doc, org_id) if doc else None

    async def list_organizations(self, verified_only: bool = True) -> List[Organization]:
        """List organizations sorted by name. The verified listing is served from the cache."""
        if verified_only:
            cached = self.cache.get()
            if cached is not None:
                return cached

        filters = [("verified", "==", True)] if verified_only else None
        docs = await self.firebase.query_collection(collections.ORGANIZATIONS, filters=filters)

        organizations = []
        for doc_id, data in docs:
            try:
                organizations.append(firestore_organization_to_model(data, doc_id))
            except ValueError as e:
                logger.warning("Skipping unparseable organization %s: %s", doc_id, e)
        organizations.sort(key=lambda org: org.name.lower())

        if verified_only:
            self.cache.replace(organizations)
        return organizations

    async def search(self, query: str) -> List[Organization]:
        """
        Case-insensitive substring search over name, type, city, state and zip.

        Only verified organizations are searched. Name matches rank ahead of
        matches on other fields (exact name, then name prefix, then name
        substring); ties are broken alphabetically by name.
        """
        raw_query = (query or "").strip()
        if not raw_query:
            return []
        needle = raw_query.lower()

        organizations = await self.list_organizations(verified_only=True)
        results = [org for org in organizations if _matches(org, needle, raw_query)]
        results.sort(key=lambda org: (_search_rank(org, needle), org.name.lower()))
        return results

    async def is_admin(self, user_id: str, org_id: str) -> bool:
        if not user_id:
            return False
        organization = await self.find_organization(org_id)
        return organization is not None and organization.has_admin(user_id)

    async def update_organization(self, org_id: str, fields: Dict[str, Any]) -> Organization:
        await self.get_organization(org_id)
        if fields:
            fields = {**fields, "updatedAt": datetime.now(timezone.utc)}
            await self.firebase.update_document(collections.organization_path(org_id), fields)
            self.cache.invalidate()
        return await self.get_organization(org_id)

    async def delete_organization(self, org_id: str) -> None:
        await self.get_organization(org_id)
        await self.firebase.delete_document(collections.organization_path(org_id))
        self.cache.invalidate()
        logger.info("Deleted organization %s", org_id)

    async def add_admin(self, org_id: str, user_id: str) -> Organization:
        organization = await self.get_organization(org_id)
        admin_ids = {**organization.admin_ids, user_id: True}
        await self.firebase.update_document(
            collections.organization_path(org_id),
            {"adminIds": admin_ids, "updatedAt": datetime.now(timezone.utc)},
        )
        self.cache.invalidate()
        logger.info("Added admin %s to organization %s", user_id, org_id)
        return organization.model_copy(update={"admin_ids": admin_ids})

    async def remove_admin(self, org_id: str, user_id: str) -> Organization:
        organization = await self.get_organization(org_id)
        admin_ids = {k: v for k, v in organization.admin_ids.items() if k != user_id}
        await self.firebase.update_document(
            collections.organization_path(org_id),
            {"adminIds": admin_ids, "updatedAt": datetime.now(timezone.utc)},
        )
        self.cache.invalidate()
        logger.info("Removed admin %s from organization %s", user_id, org_id)
        return organization.model_copy(update={"admin_ids": admin_ids})

    async def upload_logo(self, org_id: str, content: bytes, content_type: str) -> str:
        extension = LOGO_EXTENSIONS.get((content_type or "").lower())
        if extension is None:
            raise InvalidInputError(f"Unsupported logo content type: {content_type}")
        if not content:
            raise InvalidInputError("Logo file is empty")

        await self.get_organization(org_id)
        logo_url = await self.firebase.upload_file(
            f"{collections.organization_path(org_id)}/logo.{extension}", content, content_type
        )
        await self.firebase.update_document(
            collections.organization_path(org_id),
            {"logoURL": logo_url, "updatedAt": datetime.now(timezone.utc)},
        )
        self.cache.invalidate()
        return logo_url

    # ============================================
    # GROUPS
    # ============================================

    async def list_groups(self, org_id: str) -> List[OrganizationGroup]:
        docs = await self.firebase.query_collection(collections.groups_path(org_id))
        groups = [firestore_group_to_model(data, doc_id) for doc_id, data in docs]
        groups.sort(key=lambda group: group.name.lower())
        return groups

    async def get_group(self, org_id: str, group_id: str) -> OrganizationGroup:
        doc = await self.firebase.get_document(f"{collections.groups_path(org_id)}/{group_id}")
        if not doc:
            raise NotFoundError(f"Group {group_id} not found in organization {org_id}")
        return firestore_group_to_model(doc, group_id)

    async def create_group(
        self, org_id: str, name: str, description: Optional[str] = None, is_active: bool = True
    ) -> OrganizationGroup:
        if not name or not name.strip():
            raise InvalidInputError("Group name is required")
        await self.get_organization(org_id)

        group = OrganizationGroup(
            id="",
            name=name.strip(),
            description=description,
            organization_id=org_id,
            is_active=is_active,
        )
        group.id = await self.firebase.create_document(
            collections.groups_path(org_id), group_model_to_firestore(group)
        )
        return group

    async def update_group(self, org_id: str, group_id: str, fields: Dict[str, Any]) -> OrganizationGroup:
        await self.get_group(org_id, group_id)
        if fields:
            fields = {**fields, "updatedAt": datetime.now(timezone.utc)}
            await self.firebase.update_document(f"{collections.groups_path(org_id)}/{group_id}", fields)
        return await self.get_group(org_id, group_id)

    async def delete_group(self, org_id: str, group_id: str) -> None:
        await self.get_group(org_id, group_id)
        await self.firebase.delete_document(f"{collections.groups_path(org_id)}/{group_id}")


organization_service = OrganizationService()
