from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from app.exceptions import ExternalServiceError, InvalidInputError
from app.models.alert import RecurrencePattern, ScheduledAlert
from app.services.alert_scheduler import ScheduledAlertRunner
from app.services.alert_service import alert_service
from app.services.scheduled_alert_service import scheduled_alert_service
from conftest import seed_organization

ORG = "velocity_pt"
START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def org(fake_db):
    seed_organization(fake_db, ORG, "Velocity Physical Therapy", adminIds={"admin": True})
    return ORG


def scheduled(**fields):
    data = {
        "title": "Weekly staff meeting",
        "organization_id": ORG,
        "posted_by_user_id": "admin",
        "scheduled_date": START,
    }
    data.update(fields)
    return ScheduledAlert(**data)


def posted_alerts(db):
    return db.collection(f"organizations/{ORG}/alerts")


@pytest.mark.asyncio
async def test_recurring_alert_needs_pattern(fake_db, org):
    with pytest.raises(InvalidInputError):
        await scheduled_alert_service.schedule(scheduled(is_recurring=True))


@pytest.mark.asyncio
async def test_nothing_runs_before_scheduled_date(fake_db, org):
    await scheduled_alert_service.schedule(scheduled())

    result = await scheduled_alert_service.execute_due(START - timedelta(minutes=1))

    assert result == {"executed": 0, "failed": 0}
    assert posted_alerts(fake_db) == {}


@pytest.mark.asyncio
async def test_one_shot_alert_posts_once_and_deactivates(fake_db, org):
    item = await scheduled_alert_service.schedule(scheduled())
    now = START + timedelta(minutes=3)

    assert await scheduled_alert_service.execute_due(now) == {"executed": 1, "failed": 0}
    assert await scheduled_alert_service.execute_due(now) == {"executed": 0, "failed": 0}

    (alert,) = posted_alerts(fake_db).values()
    assert alert["title"] == "Weekly staff meeting"
    assert alert["organizationName"] == "Velocity Physical Therapy"
    assert fake_db.docs[f"scheduledAlerts/{item.id}"]["isActive"] is False


@pytest.mark.asyncio
async def test_daily_alert_advances_one_day(fake_db, org):
    item = await scheduled_alert_service.schedule(
        scheduled(is_recurring=True, recurrence_pattern=RecurrencePattern(frequency="daily"))
    )

    await scheduled_alert_service.execute_due(START + timedelta(minutes=5))

    stored = fake_db.docs[f"scheduledAlerts/{item.id}"]
    assert stored["isActive"] is True
    assert stored["scheduledDate"] == START + timedelta(days=1)
    assert len(posted_alerts(fake_db)) == 1


@pytest.mark.asyncio
async def test_missed_occurrences_are_not_replayed(fake_db, org):
    item = await scheduled_alert_service.schedule(
        scheduled(is_recurring=True, recurrence_pattern=RecurrencePattern(frequency="daily"))
    )

    await scheduled_alert_service.execute_due(START + timedelta(days=4, hours=1))

    assert len(posted_alerts(fake_db)) == 1
    assert fake_db.docs[f"scheduledAlerts/{item.id}"]["scheduledDate"] == START + timedelta(days=5)


@pytest.mark.asyncio
async def test_recurrence_stops_after_end_date(fake_db, org):
    pattern = RecurrencePattern(frequency="weekly", end_date=START + timedelta(days=3))
    item = await scheduled_alert_service.schedule(
        scheduled(is_recurring=True, recurrence_pattern=pattern)
    )

    await scheduled_alert_service.execute_due(START)

    assert fake_db.docs[f"scheduledAlerts/{item.id}"]["isActive"] is False


@pytest.mark.asyncio
async def test_deleted_organization_deactivates_schedule(fake_db, org):
    item = await scheduled_alert_service.schedule(scheduled())
    del fake_db.docs[f"organizations/{ORG}"]

    result = await scheduled_alert_service.execute_due(START)

    assert result == {"executed": 0, "failed": 1}
    assert fake_db.docs[f"scheduledAlerts/{item.id}"]["isActive"] is False


@pytest.mark.asyncio
async def test_schedule_write_failure_does_not_repost(fake_db, org):
    item = await scheduled_alert_service.schedule(scheduled())
    fake_db.fail_updates_for.add(f"scheduledAlerts/{item.id}")

    first = await scheduled_alert_service.execute_due(START)
    second = await scheduled_alert_service.execute_due(START + timedelta(minutes=5))

    assert first == second == {"executed": 0, "failed": 1}
    assert posted_alerts(fake_db) == {}


@pytest.mark.asyncio
async def test_post_failure_skips_occurrence_but_keeps_recurrence(fake_db, org, monkeypatch):
    item = await scheduled_alert_service.schedule(
        scheduled(is_recurring=True, recurrence_pattern=RecurrencePattern(frequency="daily"))
    )
    monkeypatch.setattr(
        alert_service, "post_alert", AsyncMock(side_effect=ExternalServiceError("firestore down"))
    )

    assert await scheduled_alert_service.execute_due(START) == {"executed": 0, "failed": 1}
    assert await scheduled_alert_service.execute_due(START + timedelta(minutes=5)) == {
        "executed": 0,
        "failed": 0,
    }

    stored = fake_db.docs[f"scheduledAlerts/{item.id}"]
    assert stored["isActive"] is True
    assert stored["scheduledDate"] == START + timedelta(days=1)


@pytest.mark.asyncio
async def test_scheduled_alert_fans_out(fake_db, org, push):
    fake_db.seed("users/u1", {"email": "u1@example.com", "fcmToken": "tok-u1"})
    fake_db.seed(f"follows/u1__{ORG}", {"userId": "u1", "organizationId": ORG})
    await scheduled_alert_service.schedule(scheduled())

    await scheduled_alert_service.execute_due(START)

    push.assert_awaited_once()


@pytest.mark.asyncio
async def test_cleanup_expired(fake_db, org):
    expired = await scheduled_alert_service.schedule(
        scheduled(scheduled_date=START + timedelta(days=10), expires_at=START)
    )
    kept = await scheduled_alert_service.schedule(
        scheduled(scheduled_date=START + timedelta(days=10))
    )

    assert await scheduled_alert_service.cleanup_expired(START + timedelta(hours=1)) == 1
    assert fake_db.docs[f"scheduledAlerts/{expired.id}"]["isActive"] is False
    assert fake_db.docs[f"scheduledAlerts/{kept.id}"]["isActive"] is True


@pytest.mark.parametrize(
    "frequency,interval,current,expected",
    [
        ("daily", 2, datetime(2026, 1, 30), datetime(2026, 2, 1)),
        ("weekly", 1, datetime(2026, 1, 30), datetime(2026, 2, 6)),
        ("monthly", 1, datetime(2026, 1, 31), datetime(2026, 2, 28)),
        ("monthly", 1, datetime(2028, 1, 31), datetime(2028, 2, 29)),
        ("monthly", 2, datetime(2026, 12, 15), datetime(2027, 2, 15)),
        ("yearly", 1, datetime(2028, 2, 29), datetime(2029, 2, 28)),
    ],
)
def test_next_occurrence(frequency, interval, current, expected):
    pattern = RecurrencePattern(frequency=frequency, interval=interval)
    assert pattern.next_occurrence(current) == expected


# --- runner and routes ---


@pytest.mark.asyncio
async def test_runner_run_once(fake_db, org):
    await scheduled_alert_service.schedule(scheduled(scheduled_date=datetime.now(timezone.utc)))
    runner = ScheduledAlertRunner()

    await runner.run_once()

    assert runner.last_run_status == "success"
    assert len(posted_alerts(fake_db)) == 1
    assert runner.get_status()["is_running"] is False


def test_schedule_route(client, login, fake_db, org):
    login("admin")
    payload = {
        "organizationId": ORG,
        "title": "Flu shots",
        "scheduledDate": "2026-03-01T09:00:00Z",
        "isRecurring": True,
        "recurrencePattern": {"frequency": "monthly", "interval": 1},
    }

    r = client.post("/api/v1/scheduled-alerts", json=payload)
    assert r.status_code == 201
    assert r.json()["isActive"] is True

    r = client.get(f"/api/v1/organizations/{ORG}/scheduled-alerts")
    assert [a["title"] for a in r.json()["alerts"]] == ["Flu shots"]


def test_schedule_route_requires_admin(client, login, fake_db, org):
    login("u1")
    r = client.post(
        "/api/v1/scheduled-alerts",
        json={"organizationId": ORG, "title": "x", "scheduledDate": "2026-03-01T09:00:00Z"},
    )
    assert r.status_code == 403
