"""
Periodic execution of scheduled alerts.
Runs every SCHEDULED_ALERT_INTERVAL_MINUTES to post due alerts and expire old ones.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.config import settings
from app.exceptions import ChimeoError
from app.services.scheduled_alert_service import scheduled_alert_service

logger = logging.getLogger(__name__)


class ScheduledAlertRunner:
    """Manages the scheduled-alert job."""

    def __init__(self):
        self.scheduler = AsyncIOScheduler()
        self.is_running = False
        self.last_run: Optional[datetime] = None
        self.last_run_status: str = "pending"

    async def run_once(self):
        """Execute due alerts, then deactivate expired ones."""
        self.last_run = datetime.now(timezone.utc)
        self.last_run_status = "in_progress"
        try:
            result = await scheduled_alert_service.execute_due(self.last_run)
            expired = await scheduled_alert_service.cleanup_expired(self.last_run)
            self.last_run_status = "success"
            logger.debug(
                "Scheduled alert run: %s executed, %s failed, %s expired",
                result["executed"], result["failed"], expired,
            )
        except ChimeoError as e:
            logger.error("Scheduled alert run failed: %s", e)
            self.last_run_status = f"error: {e}"

    def start(self, interval_minutes: int = 5):
        if self.is_running:
            logger.warning("Scheduler is already running")
            return

        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(minutes=interval_minutes),
            id="scheduled_alerts",
            name="Scheduled alert execution",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        self.is_running = True
        logger.info("Scheduled alert runner started (every %d minutes)", interval_minutes)

    def stop(self):
        if not self.is_running:
            return
        self.scheduler.shutdown(wait=False)
        self.is_running = False
        logger.info("Scheduled alert runner stopped")

    def get_status(self) -> dict:
        return {
            "is_running": self.is_running,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_run_status": self.last_run_status,
            "jobs": [
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
                }
                for job in self.scheduler.get_jobs()
            ],
        }


# Global runner instance
_runner_instance: Optional[ScheduledAlertRunner] = None


def get_alert_runner() -> ScheduledAlertRunner:
    global _runner_instance
    if _runner_instance is None:
        _runner_instance = ScheduledAlertRunner()
    return _runner_instance


def initialize_scheduler():
    """Start the runner on app startup. Must be called from a running event loop."""
    if not settings.SCHEDULED_ALERTS_ENABLED:
        logger.info("Scheduled alerts are disabled in settings")
        return
    get_alert_runner().start(interval_minutes=settings.SCHEDULED_ALERT_INTERVAL_MINUTES)


def shutdown_scheduler():
    runner = get_alert_runner()
    if runner.is_running:
        runner.stop()
