"""
Schemas for group membership and invitation requests/responses
"""

from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List

from app.models.group import GroupInvitation, GroupMember, InvitationStatus


class MemberAdd(BaseModel):
    user_id: str = Field(..., min_length=1, alias="userId")

    model_config = ConfigDict(populate_by_name=True)


class MembershipStatus(BaseModel):
    organization_id: str = Field(..., alias="organizationId")
    group_id: str = Field(..., alias="groupId")
    user_id: str = Field(..., alias="userId")
    member: bool
    changed: bool = False

    model_config = ConfigDict(populate_by_name=True)


class MemberListResponse(BaseModel):
    members: List[GroupMember]
    total: int


class MemberCount(BaseModel):
    member_count: int = Field(..., alias="memberCount")

    model_config = ConfigDict(populate_by_name=True)


class InvitationCreate(BaseModel):
    user_id: str = Field(..., min_length=1, alias="userId")
    message: Optional[str] = Field(None, max_length=500)

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "userId": "Xc81nP0sQ2",
                "message": "Join the volunteer drivers group for weekend pickups",
            }
        },
    )


class InvitationReply(BaseModel):
    status: InvitationStatus

    @field_validator("status")
    @classmethod
    def _accept_or_decline(cls, value):
        if value not in (InvitationStatus.ACCEPTED, InvitationStatus.DECLINED):
            raise ValueError("An invitation can only be accepted or declined")
        return value

    @property
    def accepted(self) -> bool:
        return self.status == InvitationStatus.ACCEPTED


class InvitationListResponse(BaseModel):
    invitations: List[GroupInvitation]
