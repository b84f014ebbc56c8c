"""
Schemas for posting and listing alerts
"""

from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List

from app.models.alert import (
    AlertSeverity,
    AlertType,
    OrganizationAlert,
    RecurrencePattern,
    ScheduledAlert,
)
from app.models.organization import Location


class AlertCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    group_id: Optional[str] = Field(None, alias="groupId")
    type: AlertType = AlertType.OTHER
    severity: AlertSeverity = AlertSeverity.MEDIUM
    location: Optional[Location] = None
    image_urls: List[str] = Field(default_factory=list, alias="imageURLs")

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
        json_schema_extra={
            "example": {
                "title": "Road closed",
                "description": "Main St closed between 1st and 3rd",
                "type": "road",
                "severity": "high",
            }
        },
    )


class AlertListResponse(BaseModel):
    alerts: List[OrganizationAlert]
    total: int


class ScheduledAlertCreate(AlertCreate):
    organization_id: str = Field(..., alias="organizationId")
    scheduled_date: datetime = Field(..., alias="scheduledDate")
    is_recurring: bool = Field(False, alias="isRecurring")
    recurrence_pattern: Optional[RecurrencePattern] = Field(None, alias="recurrencePattern")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")


class ScheduledAlertListResponse(BaseModel):
    alerts: List[ScheduledAlert]
    total: int
