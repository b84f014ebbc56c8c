"""
Follower graph and per-group notification preferences

The follows/ edge collection is the source of truth. The user's
followedOrganizations list, the organization's followers subcollection and
its followerCount are views written in the same batch as the edge.

Concurrent follow/unfollow of the same pair from two devices is not
serialized: both calls can read the same edge state and the counter may
drift. sync_followers() repairs the views from the edges.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from app.exceptions import ChimeoError
from app.models.organization import Organization
from app.services import collections
from app.services.firebase_service import (
    BatchOperation,
    array_remove,
    array_union,
    firebase_service,
    increment,
)
from app.services.organization_service import organization_service

logger = logging.getLogger(__name__)

# Firestore rejects batches with more than 500 writes
MAX_BATCH_WRITES = 450


class FollowService:
    def __init__(self):
        self.firebase = firebase_service
        self.organizations = organization_service

    async def is_following(self, user_id: str, org_id: str) -> bool:
        edge = await self.firebase.get_document(collections.follow_path(user_id, org_id))
        return edge is not None

    async def follow(self, user_id: str, org_id: str) -> bool:
        """
        Follow an organization. Returns True when a new edge was created,
        False when the user already followed it.

        Raises:
            NotFoundError: Unknown organization
        """
        await self.organizations.get_organization(org_id)
        if await self.is_following(user_id, org_id):
            return False

        now = datetime.now(timezone.utc)
        await self.firebase.commit_batch([
            ("set", collections.follow_path(user_id, org_id),
             {"userId": user_id, "organizationId": org_id, "createdAt": now}),
            ("merge", collections.user_path(user_id),
             {"followedOrganizations": array_union(org_id), "updatedAt": now}),
            ("set", f"{collections.followers_path(org_id)}/{user_id}",
             {"userId": user_id, "followedAt": now}),
            ("update", collections.organization_path(org_id),
             {"followerCount": increment(1), "updatedAt": now}),
        ])
        self.organizations.cache.invalidate()
        logger.info("User %s followed organization %s", user_id, org_id)
        return True

    async def unfollow(self, user_id: str, org_id: str) -> bool:
        """Returns True when an edge was removed; unfollowing twice is a no-op."""
        if not await self.is_following(user_id, org_id):
            return False

        now = datetime.now(timezone.utc)
        operations: List[BatchOperation] = [
            ("delete", collections.follow_path(user_id, org_id), None),
            ("merge", collections.user_path(user_id),
             {"followedOrganizations": array_remove(org_id), "updatedAt": now}),
        ]
        if await self.organizations.find_organization(org_id) is not None:
            operations += [
                ("delete", f"{collections.followers_path(org_id)}/{user_id}", None),
                ("update", collections.organization_path(org_id),
                 {"followerCount": increment(-1), "updatedAt": now}),
            ]
        await self.firebase.commit_batch(operations)
        self.organizations.cache.invalidate()
        logger.info("User %s unfollowed organization %s", user_id, org_id)
        return True

    async def followers(self, org_id: str) -> List[str]:
        edges = await self.firebase.query_collection(
            collections.FOLLOWS, filters=[("organizationId", "==", org_id)]
        )
        return [data["userId"] for _, data in edges if data.get("userId")]

    async def followed_organizations(self, user_id: str) -> List[Organization]:
        """Resolve the user's edges to organizations, skipping ones that no longer exist."""
        edges = await self.firebase.query_collection(
            collections.FOLLOWS, filters=[("userId", "==", user_id)]
        )
        organizations = []
        for _, data in edges:
            org_id = data.get("organizationId")
            if not org_id:
                continue
            organization = await self.organizations.find_organization(org_id)
            if organization is None:
                logger.info("Followed organization %s no longer exists", org_id)
                continue
            organizations.append(organization)
        organizations.sort(key=lambda org: org.name.lower())
        return organizations

    # ============================================
    # GROUP PREFERENCES
    # ============================================

    async def get_group_preferences(self, user_id: str, org_id: str) -> Dict[str, bool]:
        doc = await self.firebase.get_document(collections.group_preferences_path(user_id, org_id))
        if not doc:
            return {}
        return {k: v is True for k, v in (doc.get("preferences") or {}).items()}

    async def is_group_enabled(self, user_id: str, org_id: str, group_id: str) -> bool:
        """Absent preferences mean disabled."""
        preferences = await self.get_group_preferences(user_id, org_id)
        return preferences.get(group_id, False)

    async def set_group_preference(
        self, user_id: str, org_id: str, group_id: str, enabled: bool
    ) -> Dict[str, bool]:
        await self.firebase.set_document(
            collections.group_preferences_path(user_id, org_id),
            {
                "organizationId": org_id,
                "preferences": {group_id: bool(enabled)},
                "updatedAt": datetime.now(timezone.utc),
            },
            merge=True,
        )
        return await self.get_group_preferences(user_id, org_id)

    # ============================================
    # RECONCILIATION
    # ============================================

    async def sync_followers(self, org_id: str) -> Dict[str, Any]:
        """
        Rebuild the followers subcollection and followerCount of one
        organization from the follow edges.
        """
        await self.organizations.get_organization(org_id)

        follower_ids = set(await self.followers(org_id))
        existing = await self.firebase.query_collection(collections.followers_path(org_id))
        existing_ids = {doc_id for doc_id, _ in existing}

        now = datetime.now(timezone.utc)
        missing = sorted(follower_ids - existing_ids)
        stale = sorted(existing_ids - follower_ids)

        operations: List[BatchOperation] = [
            ("set", f"{collections.followers_path(org_id)}/{user_id}",
             {"userId": user_id, "followedAt": now})
            for user_id in missing
        ]
        operations += [
            ("delete", f"{collections.followers_path(org_id)}/{user_id}", None)
            for user_id in stale
        ]
        operations.append(
            ("update", collections.organization_path(org_id),
             {"followerCount": len(follower_ids), "updatedAt": now})
        )

        for start in range(0, len(operations), MAX_BATCH_WRITES):
            await self.firebase.commit_batch(operations[start:start + MAX_BATCH_WRITES])
        self.organizations.cache.invalidate()

        logger.info(
            "Synced followers of %s: %d added, %d removed, count %d",
            org_id, len(missing), len(stale), len(follower_ids),
        )
        return {
            "organizationId": org_id,
            "added": len(missing),
            "removed": len(stale),
            "followerCount": len(follower_ids),
        }

    async def sync_all_followers(self) -> Dict[str, Any]:
        organizations = await self.organizations.list_organizations(verified_only=False)
        succeeded, failed = 0, []
        for organization in organizations:
            try:
                await self.sync_followers(organization.id)
                succeeded += 1
            except ChimeoError as e:
                logger.warning("Follower sync failed for %s: %s", organization.id, e)
                failed.append(organization.id)
        return {"processed": len(organizations), "succeeded": succeeded, "failed": failed}


follow_service = FollowService()
