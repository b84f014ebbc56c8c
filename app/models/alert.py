"""
Alert models

Collections:
    organizations/{orgId}/alerts/   OrganizationAlert
    scheduledAlerts/                ScheduledAlert
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from app.models.organization import Location


def utc_now():
    return datetime.now(timezone.utc)


def as_utc(value):
    """Naive datetimes from clients are taken to be UTC."""
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


ALERT_EXPIRY = timedelta(days=14)


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertType(str, Enum):
    WEATHER = "weather"
    ROAD = "road"
    FIRE = "fire"
    POLICE = "police"
    MEDICAL = "medical"
    EMERGENCY = "emergency"
    OTHER = "other"


class RecurrenceFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class OrganizationAlert(BaseModel):
    """
    An alert posted by an organization admin.

    Read-only after posting except for soft deletion (is_active=False) and
    the fan-out result fields written by the dispatcher.
    """

    id: Optional[str] = None
    title: str
    description: str = ""
    organization_id: str = Field(..., alias="organizationId")
    organization_name: str = Field("", alias="organizationName")
    group_id: Optional[str] = Field(None, alias="groupId")
    group_name: Optional[str] = Field(None, alias="groupName")
    type: AlertType = AlertType.OTHER
    severity: AlertSeverity = AlertSeverity.MEDIUM
    location: Optional[Location] = None
    posted_by: str = Field("", alias="postedBy")
    posted_by_user_id: str = Field(..., alias="postedByUserId")
    posted_at: datetime = Field(default_factory=utc_now, alias="postedAt")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    image_urls: List[str] = Field(default_factory=list, alias="imageURLs")
    is_active: bool = Field(True, alias="isActive")

    notifications_sent: bool = Field(False, alias="notificationsSent")
    notification_count: int = Field(0, alias="notificationCount")
    notification_failures: int = Field(0, alias="notificationFailures")
    notification_sent_at: Optional[datetime] = Field(None, alias="notificationSentAt")

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    @field_validator("posted_at", "expires_at", "notification_sent_at", mode="after")
    @classmethod
    def _utc(cls, value):
        return as_utc(value)

    @model_validator(mode="after")
    def _default_expiry(self):
        if self.expires_at is None:
            self.expires_at = self.posted_at + ALERT_EXPIRY
        return self

    @property
    def is_critical(self) -> bool:
        return self.severity == AlertSeverity.CRITICAL

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at is not None and self.expires_at < (now or utc_now())


class RecurrencePattern(BaseModel):
    frequency: RecurrenceFrequency
    interval: int = Field(1, ge=1)
    end_date: Optional[datetime] = Field(None, alias="endDate")

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    @field_validator("end_date", mode="after")
    @classmethod
    def _utc(cls, value):
        return as_utc(value)

    def next_occurrence(self, current: datetime) -> datetime:
        if self.frequency == RecurrenceFrequency.DAILY:
            return current + timedelta(days=self.interval)
        if self.frequency == RecurrenceFrequency.WEEKLY:
            return current + timedelta(weeks=self.interval)
        if self.frequency == RecurrenceFrequency.MONTHLY:
            return _add_months(current, self.interval)
        return _add_months(current, 12 * self.interval)


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    # Clamp to the last day of the target month (Jan 31 + 1 month -> Feb 28/29)
    for day in (value.day, 30, 29, 28):
        try:
            return value.replace(year=year, month=month, day=day)
        except ValueError:
            continue
    raise ValueError(f"Cannot advance {value} by {months} months")


class ScheduledAlert(BaseModel):
    """
    Collection: scheduledAlerts/

    Materializes into an OrganizationAlert when scheduled_date is reached.
    """

    id: Optional[str] = None
    title: str
    description: str = ""
    organization_id: str = Field(..., alias="organizationId")
    organization_name: str = Field("", alias="organizationName")
    group_id: Optional[str] = Field(None, alias="groupId")
    group_name: Optional[str] = Field(None, alias="groupName")
    type: AlertType = AlertType.OTHER
    severity: AlertSeverity = AlertSeverity.MEDIUM
    location: Optional[Location] = None
    posted_by: str = Field("", alias="postedBy")
    posted_by_user_id: str = Field(..., alias="postedByUserId")
    scheduled_date: datetime = Field(..., alias="scheduledDate")
    is_recurring: bool = Field(False, alias="isRecurring")
    recurrence_pattern: Optional[RecurrencePattern] = Field(None, alias="recurrencePattern")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    image_urls: List[str] = Field(default_factory=list, alias="imageURLs")
    is_active: bool = Field(True, alias="isActive")
    last_executed_at: Optional[datetime] = Field(None, alias="lastExecutedAt")
    created_at: Optional[datetime] = Field(default_factory=utc_now, alias="createdAt")
    updated_at: Optional[datetime] = Field(default_factory=utc_now, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    @field_validator("scheduled_date", "expires_at", mode="after")
    @classmethod
    def _utc(cls, value):
        return as_utc(value)

    def to_alert(self, posted_at: datetime) -> OrganizationAlert:
        return OrganizationAlert(
            title=self.title,
            description=self.description,
            organization_id=self.organization_id,
            organization_name=self.organization_name,
            group_id=self.group_id,
            group_name=self.group_name,
            type=self.type,
            severity=self.severity,
            location=self.location,
            posted_by=self.posted_by,
            posted_by_user_id=self.posted_by_user_id,
            posted_at=posted_at,
            image_urls=list(self.image_urls),
        )


def firestore_alert_to_model(doc: dict, alert_id: str) -> OrganizationAlert:
    return OrganizationAlert.model_validate({**doc, "id": alert_id})


def alert_model_to_firestore(alert: OrganizationAlert) -> Dict[str, Any]:
    data = alert.model_dump(by_alias=True, exclude_none=True)
    data.pop("id", None)
    return data


def firestore_scheduled_alert_to_model(doc: dict, alert_id: str) -> ScheduledAlert:
    return ScheduledAlert.model_validate({**doc, "id": alert_id})


def scheduled_alert_model_to_firestore(alert: ScheduledAlert) -> Dict[str, Any]:
    data = alert.model_dump(by_alias=True, exclude_none=True)
    data.pop("id", None)
    return data
