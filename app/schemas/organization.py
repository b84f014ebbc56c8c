"""
Schemas for organization, group and follow requests/responses
"""

from pydantic import BaseModel, Field, ConfigDict, EmailStr
from typing import Optional, List, Dict

from app.models.organization import Location, Organization, OrganizationGroup, OrganizationType


class OrganizationUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[OrganizationType] = None
    description: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    location: Optional[Location] = None

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
        json_schema_extra={
            "example": {
                "description": "Physical therapy and sports rehab",
                "phone": "940-555-0100",
                "website": "https://velocitypt.example.com",
            }
        },
    )

    def to_firestore(self) -> Dict:
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class OrganizationListResponse(BaseModel):
    organizations: List[Organization]
    total: int


class AdminAdd(BaseModel):
    user_id: str = Field(..., min_length=1, alias="userId")

    model_config = ConfigDict(populate_by_name=True)


class LogoResponse(BaseModel):
    logo_url: str = Field(..., alias="logoURL")

    model_config = ConfigDict(populate_by_name=True)


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    is_active: bool = Field(True, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)


class GroupUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = Field(None, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)

    def to_firestore(self) -> Dict:
        return self.model_dump(by_alias=True, exclude_unset=True)


class GroupListResponse(BaseModel):
    groups: List[OrganizationGroup]


class FollowStatus(BaseModel):
    organization_id: str = Field(..., alias="organizationId")
    following: bool
    changed: bool = False

    model_config = ConfigDict(populate_by_name=True)


class GroupPreferenceUpdate(BaseModel):
    enabled: bool


class GroupPreferences(BaseModel):
    organization_id: str = Field(..., alias="organizationId")
    preferences: Dict[str, bool]

    model_config = ConfigDict(populate_by_name=True)


class FollowerSyncResult(BaseModel):
    organization_id: str = Field(..., alias="organizationId")
    added: int
    removed: int
    follower_count: int = Field(..., alias="followerCount")

    model_config = ConfigDict(populate_by_name=True)


class FollowerSyncSummary(BaseModel):
    processed: int
    succeeded: int
    failed: List[str]
