"""
Group membership and invitation models with Firestore conversion helpers
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, ConfigDict

from app.models.organization import utc_now

INVITATION_EXPIRY_DAYS = 7


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class GroupMember(BaseModel):
    """
    Collection: organizations/{orgId}/groups/{groupId}/members/
    Document ID: the member's user id

    Leaving a group flips isActive instead of deleting the document.
    """

    user_id: str = Field(..., alias="userId")
    user_name: Optional[str] = Field(None, alias="userName")
    user_email: Optional[str] = Field(None, alias="userEmail")
    is_active: bool = Field(True, alias="isActive")
    joined_at: Optional[datetime] = Field(default_factory=utc_now, alias="joinedAt")
    left_at: Optional[datetime] = Field(None, alias="leftAt")

    model_config = ConfigDict(populate_by_name=True)


def _default_expiry() -> datetime:
    return utc_now() + timedelta(days=INVITATION_EXPIRY_DAYS)


class GroupInvitation(BaseModel):
    """
    Collection: groupInvitations/
    """

    id: str = ""
    organization_id: str = Field(..., alias="organizationId")
    organization_name: str = Field("", alias="organizationName")
    group_id: str = Field(..., alias="groupId")
    group_name: str = Field("", alias="groupName")
    invited_user_id: str = Field(..., alias="invitedUserId")
    invited_user_email: Optional[str] = Field(None, alias="invitedUserEmail")
    invited_user_name: Optional[str] = Field(None, alias="invitedUserName")
    invited_by_user_id: str = Field(..., alias="invitedByUserId")
    invited_by_name: Optional[str] = Field(None, alias="invitedByName")
    message: Optional[str] = None
    status: InvitationStatus = InvitationStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    expires_at: datetime = Field(default_factory=_default_expiry, alias="expiresAt")
    responded_at: Optional[datetime] = Field(None, alias="respondedAt")

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.expires_at


def firestore_member_to_model(doc: dict, user_id: str) -> GroupMember:
    return GroupMember.model_validate({**doc, "userId": user_id})


def member_model_to_firestore(member: GroupMember) -> Dict[str, Any]:
    return member.model_dump(by_alias=True)


def firestore_invitation_to_model(doc: dict, invitation_id: str) -> GroupInvitation:
    return GroupInvitation.model_validate({**doc, "id": invitation_id})


def invitation_model_to_firestore(invitation: GroupInvitation) -> Dict[str, Any]:
    data = invitation.model_dump(by_alias=True)
    data.pop("id", None)
    return data
