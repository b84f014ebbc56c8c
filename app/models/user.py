"""
User Models for Chimeo Backend

The identity provider (Firebase Authentication) owns sign-in; profile data,
notification preferences and the push token are mirrored into Firestore.
"""

from datetime import datetime, time, timezone
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, ConfigDict, field_validator

from app.models.alert import AlertType


# Helper function for timezone-aware UTC datetime
def utc_now():
    """Get current UTC datetime (timezone-aware)"""
    return datetime.now(timezone.utc)


class NotificationPreferences(BaseModel):
    """Per-user delivery filters applied at dispatch time."""

    incident_types: List[AlertType] = Field(
        default_factory=lambda: list(AlertType), alias="incidentTypes"
    )
    critical_alerts_only: bool = Field(False, alias="criticalAlertsOnly")
    push_notifications: bool = Field(True, alias="pushNotifications")
    quiet_hours_enabled: bool = Field(False, alias="quietHoursEnabled")
    quiet_hours_start: Optional[time] = Field(None, alias="quietHoursStart")
    quiet_hours_end: Optional[time] = Field(None, alias="quietHoursEnd")

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    @field_validator("incident_types", mode="before")
    @classmethod
    def _drop_unknown_types(cls, value):
        if value is None:
            return list(AlertType)
        known = {t.value for t in AlertType}
        return [v for v in value if v in known]

    @field_validator("quiet_hours_start", "quiet_hours_end", mode="before")
    @classmethod
    def _time_from_datetime(cls, value):
        # The mobile client stores quiet hours as full timestamps
        if isinstance(value, datetime):
            return value.time().replace(tzinfo=None)
        return value

    def in_quiet_hours(self, now: time) -> bool:
        if not self.quiet_hours_enabled or not self.quiet_hours_start or not self.quiet_hours_end:
            return False
        start, end = self.quiet_hours_start, self.quiet_hours_end
        if start <= end:
            return start <= now < end
        # Window wraps past midnight, e.g. 22:00 -> 07:00
        return now >= start or now < end


class User(BaseModel):
    """
    Complete User model representing a user in Firestore

    Collection: users/
    Document ID: uid (Firebase Auth UID), or a generated id for placeholder
    accounts whose Auth account could not be created
    """

    uid: str = Field(..., description="Firebase Authentication UID")
    email: Optional[str] = None
    display_name: Optional[str] = Field(None, alias="displayName")
    alert_radius: float = Field(
        10.0, description="Alert radius in miles", alias="alertRadius")
    preferences: NotificationPreferences = Field(default_factory=NotificationPreferences)
    is_admin: bool = Field(
        False, description="Platform administrator", alias="isAdmin")
    is_organization_admin: bool = Field(False, alias="isOrganizationAdmin")
    organizations: List[str] = Field(default_factory=list)
    followed_organizations: List[str] = Field(
        default_factory=list, alias="followedOrganizations")
    fcm_token: Optional[str] = Field(
        None, description="Firebase Cloud Messaging token", alias="fcmToken")
    needs_password_setup: bool = Field(False, alias="needsPasswordSetup")
    created_at: Optional[datetime] = Field(default_factory=utc_now, alias="createdAt")
    updated_at: Optional[datetime] = Field(default_factory=utc_now, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("preferences", mode="before")
    @classmethod
    def _default_preferences(cls, value):
        return value or {}


def firestore_user_to_model(doc: dict, uid: str) -> User:
    data = {k: v for k, v in doc.items() if k != "adminPassword"}
    # Older documents used "name" for the display name
    if "displayName" not in data and "name" in data:
        data["displayName"] = data["name"]
    return User.model_validate({**data, "uid": uid})


def user_model_to_firestore(user: User) -> Dict[str, Any]:
    data = user.model_dump(by_alias=True, mode="json", exclude={"created_at", "updated_at"})
    data.pop("uid", None)
    data["createdAt"] = user.created_at
    data["updatedAt"] = user.updated_at
    return data
