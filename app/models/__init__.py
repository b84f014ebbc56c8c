from app.models.user import User, NotificationPreferences
from app.models.organization import Organization, OrganizationGroup, OrganizationType, Location
from app.models.group import GroupMember, GroupInvitation, InvitationStatus
from app.models.organization_request import OrganizationRequest, RequestStatus, ReviewDecision
from app.models.alert import (
    OrganizationAlert,
    ScheduledAlert,
    RecurrencePattern,
    AlertSeverity,
    AlertType,
)

__all__ = [
    "User",
    "NotificationPreferences",
    "Organization",
    "OrganizationGroup",
    "OrganizationType",
    "Location",
    "GroupMember",
    "GroupInvitation",
    "InvitationStatus",
    "OrganizationRequest",
    "RequestStatus",
    "ReviewDecision",
    "OrganizationAlert",
    "ScheduledAlert",
    "RecurrencePattern",
    "AlertSeverity",
    "AlertType",
]
