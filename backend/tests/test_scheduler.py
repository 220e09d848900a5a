from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select

from app.models.availability import LocationAvailability
from app.models.event import Event, EventStatus
from app.services import scheduler as scheduler_module
from app.services.availability_service import availability_service
from app.services.event_workflow_service import event_workflow_service
from conftest import submit_payload


@pytest.mark.asyncio
async def test_cleanup_uses_manila_calendar_day(db, world, session_factory) -> None:
    for day in (date(2026, 10, 17), date(2026, 10, 18)):
        await availability_service.create_location(
            db, actor=world["admin"], on_date=day, location_name="Covered Court", capacity=1
        )
    await db.commit()

    # 17:30 UTC on Oct 17 is already Oct 18 in Manila.
    counts = await scheduler_module.run_cleanup_now(
        session_factory, now=datetime(2026, 10, 17, 17, 30, tzinfo=timezone.utc), trigger="test"
    )

    assert counts == {"resource": 0, "location": 1, "total": 1}
    remaining = (await db.execute(select(LocationAvailability.date))).scalars().all()
    assert remaining == [date(2026, 10, 18)]


@pytest.mark.asyncio
async def test_auto_complete_job_completes_and_broadcasts(db, world, session_factory, hub) -> None:
    event = await event_workflow_service.submit_event(db, actor=world["requestor"], payload=submit_payload())
    event_id = event.id
    await db.commit()

    completed = await scheduler_module.run_auto_complete(
        session_factory, hub=hub, now=datetime(2026, 11, 5, 9, 0, tzinfo=timezone.utc)
    )

    assert completed == [event_id]
    assert hub.events("broadcast") == ["event-status-updated", "event-updated"]
    status = (await db.execute(select(Event.status).where(Event.id == event_id))).scalar_one()
    assert status == EventStatus.COMPLETED.value


def test_build_scheduler_registers_three_cron_jobs() -> None:
    scheduler = scheduler_module.build_scheduler()

    jobs = {job.id: job for job in scheduler.get_jobs()}

    assert set(jobs) == {"availability_cleanup_daily", "availability_cleanup_safety", "event_auto_complete"}
    assert all(isinstance(job.trigger, CronTrigger) for job in jobs.values())
    assert jobs["availability_cleanup_daily"].args[1] == "daily"
    assert jobs["availability_cleanup_safety"].args[1] == "safety"


def test_scheduler_state_without_a_running_scheduler(monkeypatch) -> None:
    monkeypatch.setattr(scheduler_module, "_scheduler", None)

    monkeypatch.setattr(scheduler_module.settings, "scheduler_enabled", False)
    assert scheduler_module.scheduler_state() == "disabled"

    monkeypatch.setattr(scheduler_module.settings, "scheduler_enabled", True)
    assert scheduler_module.scheduler_state() == "stopped"


def test_start_scheduler_is_a_no_op_when_disabled(monkeypatch) -> None:
    monkeypatch.setattr(scheduler_module, "_scheduler", None)
    monkeypatch.setattr(scheduler_module.settings, "scheduler_enabled", False)

    scheduler_module.start_scheduler()

    assert scheduler_module._scheduler is None
