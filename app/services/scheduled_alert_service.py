"""
Scheduled alerts: stored ahead of time, materialized into organization alerts when due
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.exceptions import ChimeoError, InvalidInputError, NotFoundError
from app.models.alert import (
    ScheduledAlert,
    firestore_scheduled_alert_to_model,
    scheduled_alert_model_to_firestore,
)
from app.services import collections
from app.services.alert_service import alert_service
from app.services.firebase_service import firebase_service
from app.services.organization_service import organization_service

logger = logging.getLogger(__name__)


class ScheduledAlertService:
    def __init__(self):
        self.firebase = firebase_service
        self.alerts = alert_service
        self.organizations = organization_service

    async def schedule(self, alert: ScheduledAlert) -> ScheduledAlert:
        if alert.is_recurring and alert.recurrence_pattern is None:
            raise InvalidInputError("Recurring alerts need a recurrence pattern")

        organization = await self.organizations.get_organization(alert.organization_id)
        alert.organization_name = alert.organization_name or organization.name
        if alert.group_id:
            group = await self.organizations.get_group(alert.organization_id, alert.group_id)
            alert.group_name = group.name

        now = datetime.now(timezone.utc)
        alert.is_active = True
        alert.created_at = now
        alert.updated_at = now
        alert.id = await self.firebase.create_document(
            collections.SCHEDULED_ALERTS, scheduled_alert_model_to_firestore(alert)
        )
        logger.info(
            "Scheduled alert %s for %s at %s", alert.id, alert.organization_id, alert.scheduled_date)
        return alert

    async def list_for_organization(self, org_id: str) -> List[ScheduledAlert]:
        docs = await self.firebase.query_collection(
            collections.SCHEDULED_ALERTS,
            filters=[("organizationId", "==", org_id)],
            order_by="scheduledDate",
        )
        return [firestore_scheduled_alert_to_model(data, doc_id) for doc_id, data in docs]

    async def due_alerts(self, now: datetime) -> List[ScheduledAlert]:
        docs = await self.firebase.query_collection(
            collections.SCHEDULED_ALERTS,
            filters=[("isActive", "==", True), ("scheduledDate", "<=", now)],
            order_by="scheduledDate",
        )
        due = []
        for doc_id, data in docs:
            try:
                due.append(firestore_scheduled_alert_to_model(data, doc_id))
            except ValueError as e:
                logger.warning("Skipping unparseable scheduled alert %s: %s", doc_id, e)
        return due

    async def execute_due(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Advance or deactivate every due scheduled alert, then post it."""
        now = now or datetime.now(timezone.utc)
        executed, failed = 0, 0
        for scheduled in await self.due_alerts(now):
            try:
                await self._execute(scheduled, now)
                executed += 1
            except ChimeoError as e:
                logger.warning("Scheduled alert %s failed: %s", scheduled.id, e)
                failed += 1
        if executed or failed:
            logger.info("Scheduled alerts run: %d executed, %d failed", executed, failed)
        return {"executed": executed, "failed": failed}

    async def _execute(self, scheduled: ScheduledAlert, now: datetime) -> None:
        # Claim the occurrence first: each due occurrence is posted at most once
        await self._advance(scheduled, now)
        try:
            alert = await self.alerts.post_alert(scheduled.to_alert(posted_at=now))
        except NotFoundError:
            # Organization or group is gone; the alert can never be posted
            await self._deactivate(scheduled.id, now)
            raise
        await self.alerts.fan_out(alert)

    async def _advance(self, scheduled: ScheduledAlert, now: datetime) -> None:
        """Move a recurring alert to its next occurrence, or deactivate it."""
        pattern = scheduled.recurrence_pattern
        if not scheduled.is_recurring or pattern is None:
            await self._deactivate(scheduled.id, now)
            return

        next_date = pattern.next_occurrence(scheduled.scheduled_date)
        # Missed occurrences (e.g. while the service was down) are not replayed
        while next_date <= now:
            next_date = pattern.next_occurrence(next_date)
        if pattern.end_date is not None and next_date > pattern.end_date:
            await self._deactivate(scheduled.id, now)
            return

        await self.firebase.update_document(
            f"{collections.SCHEDULED_ALERTS}/{scheduled.id}",
            {"scheduledDate": next_date, "lastExecutedAt": now, "updatedAt": now},
        )

    async def _deactivate(self, alert_id: str, now: datetime) -> None:
        await self.firebase.update_document(
            f"{collections.SCHEDULED_ALERTS}/{alert_id}",
            {"isActive": False, "lastExecutedAt": now, "updatedAt": now},
        )

    async def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        docs = await self.firebase.query_collection(
            collections.SCHEDULED_ALERTS,
            filters=[("isActive", "==", True), ("expiresAt", "<", now)],
        )
        for doc_id, _ in docs:
            await self.firebase.update_document(
                f"{collections.SCHEDULED_ALERTS}/{doc_id}",
                {"isActive": False, "updatedAt": now},
            )
        if docs:
            logger.info("Deactivated %d expired scheduled alerts", len(docs))
        return len(docs)


scheduled_alert_service = ScheduledAlertService()
