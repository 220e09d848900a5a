"""Scheduled maintenance jobs: past-availability cleanup and event auto-completion."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.core.database import async_session
from app.core.logging import get_logger
from app.core.realtime import RealtimeHub
from app.domain.events.schedule import local_today
from app.services.availability_service import availability_service
from app.services.event_workflow_service import event_workflow_service

settings = get_settings()
logger = get_logger("services.scheduler")

_scheduler: AsyncIOScheduler | None = None


async def run_cleanup_now(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    *,
    now: datetime | None = None,
    trigger: str = "manual",
) -> dict[str, int]:
    """Delete resource and location availability dated before local today."""
    factory = session_factory or async_session
    today = local_today(settings.app_timezone, now)
    async with factory() as db:
        counts = await availability_service.cleanup_past_availabilities(db, today=today)
    logger.info("scheduled_cleanup_finished", trigger=trigger, today=today.isoformat(), **counts)
    return counts


async def _cleanup_job(session_factory: async_sessionmaker[AsyncSession], trigger: str) -> None:
    try:
        await run_cleanup_now(session_factory, trigger=trigger)
    except SQLAlchemyError as exc:
        logger.error("scheduled_cleanup_failed", trigger=trigger, error=str(exc))


async def run_auto_complete(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    *,
    hub: RealtimeHub | None = None,
    now: datetime | None = None,
) -> list[int]:
    factory = session_factory or async_session
    async with factory() as db:
        return await event_workflow_service.auto_complete_due(
            db,
            hub=hub,
            now=now or datetime.now(timezone.utc),
        )


async def _auto_complete_job(session_factory: async_sessionmaker[AsyncSession], hub: RealtimeHub | None) -> None:
    try:
        await run_auto_complete(session_factory, hub=hub)
    except SQLAlchemyError as exc:
        logger.error("auto_complete_failed", error=str(exc))


def build_scheduler(
    *,
    hub: RealtimeHub | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIOScheduler:
    factory = session_factory or async_session
    scheduler = AsyncIOScheduler(timezone=settings.app_timezone)
    common: dict[str, Any] = {"replace_existing": True, "max_instances": 1, "coalesce": True}
    scheduler.add_job(
        _cleanup_job,
        trigger=CronTrigger.from_crontab(settings.cleanup_daily_cron, timezone=settings.app_timezone),
        args=[factory, "daily"],
        id="availability_cleanup_daily",
        **common,
    )
    scheduler.add_job(
        _cleanup_job,
        trigger=CronTrigger.from_crontab(settings.cleanup_safety_cron, timezone=settings.app_timezone),
        args=[factory, "safety"],
        id="availability_cleanup_safety",
        **common,
    )
    scheduler.add_job(
        _auto_complete_job,
        trigger=CronTrigger.from_crontab(settings.auto_complete_cron, timezone=settings.app_timezone),
        args=[factory, hub],
        id="event_auto_complete",
        **common,
    )
    return scheduler


def start_scheduler(
    *,
    hub: RealtimeHub | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> None:
    global _scheduler
    if _scheduler is not None:
        return
    if not settings.scheduler_enabled:
        logger.info("scheduler_disabled")
        return

    _scheduler = build_scheduler(hub=hub, session_factory=session_factory)
    _scheduler.start()
    logger.info(
        "scheduler_started",
        timezone=settings.app_timezone,
        cleanup_daily=settings.cleanup_daily_cron,
        cleanup_safety=settings.cleanup_safety_cron,
        auto_complete=settings.auto_complete_cron,
    )


def stop_scheduler() -> None:
    global _scheduler
    if _scheduler is None:
        return
    _scheduler.shutdown(wait=False)
    _scheduler = None
    logger.info("scheduler_stopped")


def scheduler_state() -> str:
    if _scheduler is None:
        return "disabled" if not settings.scheduler_enabled else "stopped"
    return "running" if _scheduler.running else "stopped"
