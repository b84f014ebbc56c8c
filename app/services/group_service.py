"""
Group membership and invitations

A member document under organizations/{orgId}/groups/{groupId}/members/ is the
membership; the group's memberCount counts active members and is written in
the same batch as every membership change. sync_member_count() recomputes it.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from app.exceptions import InvalidStateError, NotFoundError, PermissionDeniedError
from app.models.group import (
    GroupInvitation,
    GroupMember,
    InvitationStatus,
    firestore_invitation_to_model,
    firestore_member_to_model,
    invitation_model_to_firestore,
    member_model_to_firestore,
)
from app.services import collections
from app.services.firebase_service import BatchOperation, firebase_service, increment
from app.services.organization_service import organization_service

logger = logging.getLogger(__name__)


class GroupService:
    def __init__(self):
        self.firebase = firebase_service
        self.organizations = organization_service

    # ============================================
    # MEMBERSHIP
    # ============================================

    async def get_member(self, org_id: str, group_id: str, user_id: str) -> Optional[GroupMember]:
        doc = await self.firebase.get_document(
            f"{collections.group_members_path(org_id, group_id)}/{user_id}"
        )
        return firestore_member_to_model(doc, user_id) if doc else None

    async def is_member(self, org_id: str, group_id: str, user_id: str) -> bool:
        member = await self.get_member(org_id, group_id, user_id)
        return member is not None and member.is_active

    async def list_members(self, org_id: str, group_id: str) -> List[GroupMember]:
        """Active members of a group, sorted by name."""
        await self.organizations.get_group(org_id, group_id)
        docs = await self.firebase.query_collection(
            collections.group_members_path(org_id, group_id),
            filters=[("isActive", "==", True)],
        )
        members = [firestore_member_to_model(data, doc_id) for doc_id, data in docs]
        members.sort(key=lambda member: ((member.user_name or "").lower(), member.user_id))
        return members

    async def add_member(self, org_id: str, group_id: str, user_id: str) -> bool:
        """
        Add a user to a group. Returns False when they already are an active member.

        Raises:
            NotFoundError: Unknown organization or group
        """
        await self.organizations.get_group(org_id, group_id)
        operations = await self._join_operations(org_id, group_id, user_id)
        if not operations:
            return False
        await self.firebase.commit_batch(operations)
        logger.info("User %s joined group %s of %s", user_id, group_id, org_id)
        return True

    async def remove_member(self, org_id: str, group_id: str, user_id: str) -> bool:
        """Mark a member inactive. Removing a non-member is a no-op."""
        if not await self.is_member(org_id, group_id, user_id):
            return False

        now = datetime.now(timezone.utc)
        operations: List[BatchOperation] = [
            ("update", f"{collections.group_members_path(org_id, group_id)}/{user_id}",
             {"isActive": False, "leftAt": now}),
        ]
        if await self.firebase.get_document(collections.group_path(org_id, group_id)) is not None:
            operations.append(
                ("update", collections.group_path(org_id, group_id),
                 {"memberCount": increment(-1), "updatedAt": now})
            )
        await self.firebase.commit_batch(operations)
        logger.info("User %s left group %s of %s", user_id, group_id, org_id)
        return True

    async def sync_member_count(self, org_id: str, group_id: str) -> int:
        """Recompute memberCount from the active member documents."""
        await self.organizations.get_group(org_id, group_id)
        docs = await self.firebase.query_collection(
            collections.group_members_path(org_id, group_id),
            filters=[("isActive", "==", True)],
        )
        await self.firebase.update_document(
            collections.group_path(org_id, group_id),
            {"memberCount": len(docs), "updatedAt": datetime.now(timezone.utc)},
        )
        return len(docs)

    async def _join_operations(
        self,
        org_id: str,
        group_id: str,
        user_id: str,
        user_name: Optional[str] = None,
        user_email: Optional[str] = None,
    ) -> List[BatchOperation]:
        """Batch writes that make user_id an active member; empty if already one."""
        if await self.is_member(org_id, group_id, user_id):
            return []

        if user_name is None or user_email is None:
            profile = await self.firebase.get_document(collections.user_path(user_id)) or {}
            user_name = user_name or profile.get("displayName") or profile.get("name")
            user_email = user_email or profile.get("email")

        now = datetime.now(timezone.utc)
        member = GroupMember(
            user_id=user_id, user_name=user_name, user_email=user_email, joined_at=now
        )
        return [
            ("set", f"{collections.group_members_path(org_id, group_id)}/{user_id}",
             member_model_to_firestore(member)),
            ("update", collections.group_path(org_id, group_id),
             {"memberCount": increment(1), "updatedAt": now}),
        ]

    # ============================================
    # INVITATIONS
    # ============================================

    async def get_invitation(self, invitation_id: str) -> GroupInvitation:
        doc = await self.firebase.get_document(f"{collections.GROUP_INVITATIONS}/{invitation_id}")
        if not doc:
            raise NotFoundError(f"Invitation {invitation_id} not found")
        return firestore_invitation_to_model(doc, invitation_id)

    async def send_invitation(
        self,
        org_id: str,
        group_id: str,
        invited_user_id: str,
        invited_by_user_id: str,
        invited_by_name: Optional[str] = None,
        message: Optional[str] = None,
    ) -> GroupInvitation:
        """
        Invite a user to a group.

        Raises:
            NotFoundError: Unknown organization or group
            InvalidStateError: The user is already a member or has a pending invitation
        """
        organization = await self.organizations.get_organization(org_id)
        group = await self.organizations.get_group(org_id, group_id)

        if await self.is_member(org_id, group_id, invited_user_id):
            raise InvalidStateError(f"User {invited_user_id} is already a member of {group.name}")
        pending = await self.firebase.query_collection(
            collections.GROUP_INVITATIONS,
            filters=[
                ("invitedUserId", "==", invited_user_id),
                ("groupId", "==", group_id),
                ("status", "==", InvitationStatus.PENDING.value),
            ],
        )
        if any(
            data.get("organizationId") == org_id
            and not firestore_invitation_to_model(data, doc_id).is_expired()
            for doc_id, data in pending
        ):
            raise InvalidStateError(f"User {invited_user_id} already has a pending invitation")

        profile = await self.firebase.get_document(collections.user_path(invited_user_id)) or {}
        invitation = GroupInvitation(
            organization_id=org_id,
            organization_name=organization.name,
            group_id=group_id,
            group_name=group.name,
            invited_user_id=invited_user_id,
            invited_user_email=profile.get("email"),
            invited_user_name=profile.get("displayName") or profile.get("name"),
            invited_by_user_id=invited_by_user_id,
            invited_by_name=invited_by_name,
            message=message,
        )
        invitation.id = await self.firebase.create_document(
            collections.GROUP_INVITATIONS, invitation_model_to_firestore(invitation)
        )
        logger.info(
            "User %s invited %s to group %s of %s",
            invited_by_user_id, invited_user_id, group_id, org_id,
        )
        return invitation

    async def list_user_invitations(
        self, user_id: str, status: Optional[InvitationStatus] = None
    ) -> List[GroupInvitation]:
        filters = [("invitedUserId", "==", user_id)]
        if status:
            filters.append(("status", "==", InvitationStatus(status).value))
        return await self._list_invitations(filters)

    async def list_organization_invitations(self, org_id: str) -> List[GroupInvitation]:
        return await self._list_invitations([("organizationId", "==", org_id)])

    async def _list_invitations(self, filters) -> List[GroupInvitation]:
        # Sorted here so equality filters need no composite index
        docs = await self.firebase.query_collection(collections.GROUP_INVITATIONS, filters=filters)
        invitations = [firestore_invitation_to_model(data, doc_id) for doc_id, data in docs]
        invitations.sort(key=lambda invitation: invitation.created_at, reverse=True)
        return invitations

    async def respond(self, invitation_id: str, user_id: str, accept: bool) -> GroupInvitation:
        """
        Accept or decline a pending invitation. Accepting adds the member in
        the same batch as the status change.

        Raises:
            NotFoundError: Unknown invitation, or its group no longer exists
            PermissionDeniedError: The invitation is addressed to someone else
            InvalidStateError: The invitation is not pending or has expired
        """
        invitation = await self.get_invitation(invitation_id)
        if invitation.invited_user_id != user_id:
            raise PermissionDeniedError("This invitation is addressed to another user")
        self._ensure_pending(invitation)
        if invitation.is_expired():
            raise InvalidStateError(f"Invitation {invitation_id} has expired")

        now = datetime.now(timezone.utc)
        status = InvitationStatus.ACCEPTED if accept else InvitationStatus.DECLINED
        operations: List[BatchOperation] = [
            ("update", f"{collections.GROUP_INVITATIONS}/{invitation_id}",
             {"status": status.value, "respondedAt": now}),
        ]
        if accept:
            await self.organizations.get_group(invitation.organization_id, invitation.group_id)
            operations += await self._join_operations(
                invitation.organization_id,
                invitation.group_id,
                user_id,
                invitation.invited_user_name,
                invitation.invited_user_email,
            )
        await self.firebase.commit_batch(operations)
        logger.info("Invitation %s %s by %s", invitation_id, status.value, user_id)
        return invitation.model_copy(update={"status": status.value, "responded_at": now})

    async def cancel_invitation(self, org_id: str, invitation_id: str) -> GroupInvitation:
        invitation = await self.get_invitation(invitation_id)
        if invitation.organization_id != org_id:
            raise NotFoundError(f"Invitation {invitation_id} not found in organization {org_id}")
        self._ensure_pending(invitation)

        now = datetime.now(timezone.utc)
        await self.firebase.update_document(
            f"{collections.GROUP_INVITATIONS}/{invitation_id}",
            {"status": InvitationStatus.CANCELLED.value, "respondedAt": now},
        )
        logger.info("Invitation %s cancelled", invitation_id)
        return invitation.model_copy(
            update={"status": InvitationStatus.CANCELLED.value, "responded_at": now}
        )

    @staticmethod
    def _ensure_pending(invitation: GroupInvitation) -> None:
        if invitation.status != InvitationStatus.PENDING:
            raise InvalidStateError(
                f"Invitation {invitation.id} is {invitation.status}; only pending invitations can change"
            )


group_service = GroupService()
