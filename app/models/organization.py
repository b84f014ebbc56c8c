"""
Organization, location and group models with Firestore conversion helpers
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, ConfigDict, field_validator


def utc_now():
    return datetime.now(timezone.utc)


class OrganizationType(str, Enum):
    BUSINESS = "business"
    NONPROFIT = "nonprofit"
    GOVERNMENT = "government"
    EMERGENCY = "emergency"
    SCHOOL = "school"
    CHURCH = "church"
    PTO = "pto"
    HOSPITAL = "hospital"
    CLINIC = "clinic"
    MEDICAL_PRACTICE = "medical_practice"
    PHARMACY = "pharmacy"
    OTHER = "other"


class Location(BaseModel):
    latitude: float = 0.0
    longitude: float = 0.0
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = Field(None, alias="zipCode")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_coordinate(cls, value):
        # Older documents store coordinates as strings
        if value in (None, ""):
            return 0.0
        return float(value)


class Organization(BaseModel):
    """
    Collection: organizations/
    Document ID: slug derived from the name, or a generated id
    """

    id: str
    name: str
    type: OrganizationType = OrganizationType.OTHER
    description: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    location: Location = Field(default_factory=Location)
    verified: bool = False
    follower_count: int = Field(0, alias="followerCount")
    alert_count: int = Field(0, alias="alertCount")
    logo_url: Optional[str] = Field(None, alias="logoURL")
    admin_ids: Dict[str, bool] = Field(default_factory=dict, alias="adminIds")
    created_at: Optional[datetime] = Field(default_factory=utc_now, alias="createdAt")
    updated_at: Optional[datetime] = Field(default_factory=utc_now, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    @field_validator("type", mode="before")
    @classmethod
    def _unknown_type_is_other(cls, value):
        try:
            return OrganizationType(value)
        except ValueError:
            return OrganizationType.OTHER

    @field_validator("admin_ids", mode="before")
    @classmethod
    def _admin_ids_map(cls, value):
        # Some documents were written with adminIds as a plain list
        if value is None:
            return {}
        if isinstance(value, list):
            return {admin_id: True for admin_id in value}
        return value

    def has_admin(self, user_id: str) -> bool:
        return self.admin_ids.get(user_id) is True


class OrganizationGroup(BaseModel):
    """
    Collection: organizations/{orgId}/groups/
    """

    id: str
    name: str
    description: Optional[str] = None
    organization_id: str = Field(..., alias="organizationId")
    is_active: bool = Field(True, alias="isActive")
    member_count: int = Field(0, alias="memberCount")
    created_at: Optional[datetime] = Field(default_factory=utc_now, alias="createdAt")
    updated_at: Optional[datetime] = Field(default_factory=utc_now, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)


def firestore_organization_to_model(doc: dict, org_id: str) -> Organization:
    return Organization.model_validate({**doc, "id": org_id})


def organization_model_to_firestore(org: Organization) -> Dict[str, Any]:
    return org.model_dump(by_alias=True)


def firestore_group_to_model(doc: dict, group_id: str) -> OrganizationGroup:
    return OrganizationGroup.model_validate({**doc, "id": group_id})


def group_model_to_firestore(group: OrganizationGroup) -> Dict[str, Any]:
    data = group.model_dump(by_alias=True)
    data.pop("id", None)
    return data
