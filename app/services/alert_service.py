"""
Organization alerts: posting, recipient resolution and push fan-out
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from firebase_admin import firestore

from app.config import settings
from app.exceptions import ChimeoError, NotFoundError
from app.models.alert import (
    OrganizationAlert,
    alert_model_to_firestore,
    firestore_alert_to_model,
)
from app.models.user import firestore_user_to_model
from app.services import collections
from app.services.firebase_service import firebase_service, increment
from app.services.follow_service import follow_service
from app.services.notification_service import notification_service
from app.services.organization_service import organization_service

logger = logging.getLogger(__name__)


class DispatchResult(str, Enum):
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


class AlertService:
    def __init__(self):
        self.firebase = firebase_service
        self.follows = follow_service
        self.organizations = organization_service
        self.notifications = notification_service

    async def post_alert(self, alert: OrganizationAlert) -> OrganizationAlert:
        """
        Persist an alert under its organization and bump the alert counter.

        Fan-out is left to the caller (fan_out), so an HTTP request can return
        before notifications go out.

        Raises:
            NotFoundError: Unknown organization or group
        """
        organization = await self.organizations.get_organization(alert.organization_id)
        alert.organization_name = alert.organization_name or organization.name

        if alert.group_id:
            group = await self.organizations.get_group(alert.organization_id, alert.group_id)
            alert.group_name = group.name

        now = datetime.now(timezone.utc)
        alert.posted_at = now
        alert.expires_at = now + timedelta(days=settings.ALERT_EXPIRY_DAYS)
        alert.is_active = True
        alert.notifications_sent = False
        alert.notification_count = 0
        alert.notification_failures = 0
        alert.notification_sent_at = None

        alerts_path = collections.alerts_path(alert.organization_id)
        alert.id = self.firebase.new_document_id(alerts_path)
        await self.firebase.commit_batch([
            ("set", f"{alerts_path}/{alert.id}", alert_model_to_firestore(alert)),
            ("update", collections.organization_path(alert.organization_id),
             {"alertCount": increment(1), "updatedAt": now}),
        ])
        logger.info(
            "Alert %s posted to %s (severity %s, group %s)",
            alert.id, alert.organization_id, alert.severity, alert.group_id or "all",
        )
        return alert

    async def get_alert(self, org_id: str, alert_id: str) -> OrganizationAlert:
        doc = await self.firebase.get_document(f"{collections.alerts_path(org_id)}/{alert_id}")
        if not doc:
            raise NotFoundError(f"Alert {alert_id} not found")
        return firestore_alert_to_model(doc, alert_id)

    async def list_alerts(self, org_id: str, include_inactive: bool = False) -> List[OrganizationAlert]:
        docs = await self.firebase.query_collection(
            collections.alerts_path(org_id),
            order_by="postedAt",
            direction=firestore.Query.DESCENDING,
        )
        alerts = [firestore_alert_to_model(data, doc_id) for doc_id, data in docs]
        if not include_inactive:
            alerts = [alert for alert in alerts if alert.is_active]
        return alerts

    async def list_followed_alerts(self, user_id: str, limit: int = 100) -> List[OrganizationAlert]:
        """Active, unexpired alerts from followed organizations, newest first."""
        now = datetime.now(timezone.utc)
        feed: List[OrganizationAlert] = []
        for organization in await self.follows.followed_organizations(user_id):
            preferences = await self.follows.get_group_preferences(user_id, organization.id)
            for alert in await self.list_alerts(organization.id):
                if alert.is_expired(now):
                    continue
                if alert.group_id and not preferences.get(alert.group_id, False):
                    continue
                feed.append(alert)
        feed.sort(key=lambda alert: alert.posted_at, reverse=True)
        return feed[:limit]

    async def delete_alert(self, org_id: str, alert_id: str) -> None:
        """Soft delete: the document stays, flagged inactive."""
        await self.get_alert(org_id, alert_id)
        await self.firebase.update_document(
            f"{collections.alerts_path(org_id)}/{alert_id}",
            {"isActive": False, "updatedAt": datetime.now(timezone.utc)},
        )
        logger.info("Alert %s in %s deactivated", alert_id, org_id)

    # ============================================
    # FAN-OUT
    # ============================================

    async def resolve_recipients(self, alert: OrganizationAlert) -> List[str]:
        """
        Followers of the alert's organization, minus the author. Group-scoped
        alerts only reach followers who explicitly enabled that group.
        """
        recipients = []
        seen = set()
        for user_id in await self.follows.followers(alert.organization_id):
            if user_id in seen or user_id == alert.posted_by_user_id:
                continue
            seen.add(user_id)
            if alert.group_id and not await self.follows.is_group_enabled(
                user_id, alert.organization_id, alert.group_id
            ):
                continue
            recipients.append(user_id)
        return recipients

    async def delivery_token(
        self, user_id: str, alert: OrganizationAlert, now: Optional[datetime] = None
    ) -> Optional[str]:
        """The user's push token, or None when the alert should not be pushed to them."""
        doc = await self.firebase.get_document(collections.user_path(user_id))
        if not doc:
            return None
        user = firestore_user_to_model(doc, user_id)
        token = (user.fcm_token or "").strip()
        if not token:
            return None

        preferences = user.preferences
        if not preferences.push_notifications:
            return None
        if alert.is_critical:
            return token
        if preferences.critical_alerts_only:
            return None
        if alert.type not in preferences.incident_types:
            return None
        now = now or datetime.now(timezone.utc)
        if preferences.in_quiet_hours(now.time().replace(tzinfo=None)):
            return None
        return token

    async def dispatch(self, user_id: str, alert: OrganizationAlert) -> DispatchResult:
        """Push one alert to one user. Never raises on provider failure."""
        try:
            token = await self.delivery_token(user_id, alert)
        except ChimeoError as e:
            logger.warning("Could not load recipient %s for alert %s: %s", user_id, alert.id, e)
            return DispatchResult.FAILED
        if token is None:
            return DispatchResult.SKIPPED
        return await self._send(token, alert, user_id)

    async def _send(self, token: str, alert: OrganizationAlert, user_id: str) -> DispatchResult:
        try:
            await self.notifications.send_alert(token, alert)
        except ChimeoError as e:
            logger.warning("Push to %s for alert %s failed: %s", user_id, alert.id, e)
            return DispatchResult.FAILED
        return DispatchResult.SENT

    async def fan_out(self, alert: OrganizationAlert) -> Dict[str, Any]:
        """
        Resolve recipients and push the alert to each of them concurrently.

        Per-recipient failures are counted, not raised. The outcome is written
        back onto the alert document.
        """
        alert_path = f"{collections.alerts_path(alert.organization_id)}/{alert.id}"
        try:
            recipients = await self.resolve_recipients(alert)
        except ChimeoError as e:
            logger.error("Recipient resolution failed for alert %s: %s", alert.id, e)
            await self._record(alert_path, {
                "notificationsSent": False,
                "notificationError": str(e),
                "notificationErrorAt": datetime.now(timezone.utc),
            })
            return {"recipients": 0, "sent": 0, "failed": 0, "skipped": 0}

        semaphore = asyncio.Semaphore(settings.FANOUT_CONCURRENCY)

        async def _token_for(user_id: str):
            async with semaphore:
                try:
                    return user_id, await self.delivery_token(user_id, alert)
                except ChimeoError as e:
                    logger.warning("Could not load recipient %s for alert %s: %s", user_id, alert.id, e)
                    return user_id, e

        lookups = await asyncio.gather(*(_token_for(user_id) for user_id in recipients))

        failed = 0
        skipped = 0
        # Several accounts can share one device; each token gets a single push
        targets: Dict[str, str] = {}
        for user_id, token in lookups:
            if isinstance(token, ChimeoError):
                failed += 1
            elif token is None:
                skipped += 1
            elif token not in targets:
                targets[token] = user_id

        async def _bounded_send(token: str, user_id: str) -> DispatchResult:
            async with semaphore:
                return await self._send(token, alert, user_id)

        results = await asyncio.gather(
            *(_bounded_send(token, user_id) for token, user_id in targets.items())
        )
        sent = sum(1 for result in results if result == DispatchResult.SENT)
        failed += sum(1 for result in results if result == DispatchResult.FAILED)

        await self._record(alert_path, {
            "notificationsSent": True,
            "notificationCount": sent,
            "notificationFailures": failed,
            "notificationSentAt": datetime.now(timezone.utc),
        })
        logger.info(
            "Alert %s fan-out: %d recipients, %d sent, %d failed, %d skipped",
            alert.id, len(recipients), sent, failed, skipped,
        )
        return {"recipients": len(recipients), "sent": sent, "failed": failed, "skipped": skipped}

    async def _record(self, alert_path: str, fields: Dict[str, Any]) -> None:
        try:
            await self.firebase.update_document(alert_path, fields)
        except ChimeoError as e:
            logger.warning("Could not record fan-out result on %s: %s", alert_path, e)


alert_service = AlertService()
