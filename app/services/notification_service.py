"""Notification service using Firebase Cloud Messaging (FCM)

Wraps firebase_admin.messaging to send severity-tiered alert notifications
to device tokens stored on user documents.
"""

import asyncio
import logging
from typing import Dict, NamedTuple, Optional

from firebase_admin import messaging

from app.exceptions import ExternalServiceError
from app.models.alert import AlertSeverity, OrganizationAlert
from app.services.firebase_service import firebase_service

logger = logging.getLogger(__name__)


class SeverityTier(NamedTuple):
    prefix: str
    priority: str
    sound: str


SEVERITY_TIERS: Dict[str, SeverityTier] = {
    AlertSeverity.CRITICAL.value: SeverityTier("🚨 CRITICAL: ", "high", "critical"),
    AlertSeverity.HIGH.value: SeverityTier("⚠️ HIGH PRIORITY: ", "high", "default"),
    AlertSeverity.MEDIUM.value: SeverityTier("📢 ", "normal", "default"),
    AlertSeverity.LOW.value: SeverityTier("ℹ️ ", "normal", "default"),
}


class AlertPayload(NamedTuple):
    title: str
    body: str
    data: Dict[str, str]
    priority: str
    sound: str


def build_alert_payload(alert: OrganizationAlert) -> AlertPayload:
    tier = SEVERITY_TIERS.get(str(alert.severity), SEVERITY_TIERS[AlertSeverity.MEDIUM.value])
    if alert.group_name:
        title = f"{tier.prefix}{alert.group_name}: {alert.title}"
    else:
        title = f"{tier.prefix}{alert.title}"

    # FCM data values must be strings
    data = {
        "alertId": alert.id or "",
        "organizationId": alert.organization_id,
        "organizationName": alert.organization_name or "",
        "alertType": str(alert.type),
        "severity": str(alert.severity),
        "groupId": alert.group_id or "",
        "groupName": alert.group_name or "",
    }
    return AlertPayload(title, alert.description, data, tier.priority, tier.sound)


class NotificationService:
    """Thin wrapper to send FCM notifications."""

    def __init__(self):
        self.firebase = firebase_service

    async def send_to_token(
        self,
        token: str,
        title: str,
        body: str,
        data: Optional[Dict[str, str]] = None,
        priority: str = "normal",
        sound: str = "default",
    ) -> str:
        """
        Send one notification and return the provider message id.

        Raises:
            ExternalServiceError: If the provider rejects the message
        """
        self.firebase._ensure_initialized()
        message = messaging.Message(
            token=token,
            notification=messaging.Notification(title=title, body=body),
            data=data or {},
            android=messaging.AndroidConfig(
                priority=priority,
                notification=messaging.AndroidNotification(sound=sound),
            ),
            apns=messaging.APNSConfig(
                headers={"apns-priority": "10" if priority == "high" else "5"},
                payload=messaging.APNSPayload(aps=messaging.Aps(sound=sound)),
            ),
        )
        try:
            # run blocking send in thread
            return await asyncio.to_thread(messaging.send, message)
        except Exception as e:
            raise ExternalServiceError(f"FCM send failed: {e}") from e

    async def send_alert(self, token: str, alert: OrganizationAlert) -> str:
        payload = build_alert_payload(alert)
        return await self.send_to_token(
            token,
            payload.title,
            payload.body,
            payload.data,
            priority=payload.priority,
            sound=payload.sound,
        )


# single instance exported for app usage
notification_service = NotificationService()
