from __future__ import annotations

import json
from datetime import date

from sqlalchemy import Text, cast, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.events.allocations import normalize_department
from app.domain.events.state_machine import AUTO_COMPLETE_EXCLUDED, EventStatus
from app.models.event import Event


class EventRepository:
    async def get_by_id(self, db: AsyncSession, event_id: int) -> Event | None:
        row = await db.execute(
            select(Event)
            .where(Event.id == event_id)
            .execution_options(populate_existing=True)
        )
        return row.scalar_one_or_none()

    async def list_all(self, db: AsyncSession, *, status: str | None = None) -> list[Event]:
        query = select(Event)
        if status:
            query = query.where(Event.status == status)
        rows = await db.execute(query.order_by(Event.created_at.desc(), Event.id.desc()))
        return list(rows.scalars().all())

    async def list_for_creator(self, db: AsyncSession, user_id: int) -> list[Event]:
        rows = await db.execute(
            select(Event)
            .where(Event.created_by == user_id)
            .order_by(Event.created_at.desc(), Event.id.desc())
        )
        return list(rows.scalars().all())

    async def list_tagged(
        self,
        db: AsyncSession,
        department: str,
        *,
        status: EventStatus = EventStatus.APPROVED,
    ) -> list[Event]:
        key = normalize_department(department)
        # Text match on the stored JSON array narrows the rows; the exact check below settles it.
        rows = await db.execute(
            select(Event)
            .where(
                Event.status == status.value,
                cast(Event.tagged_departments, Text).contains(json.dumps(key), autoescape=True),
            )
            .order_by(Event.created_at.desc(), Event.id.desc())
        )
        return [item for item in rows.scalars().all() if key in (item.tagged_departments or [])]

    async def list_auto_complete_candidates(self, db: AsyncSession, *, local_today: date) -> list[Event]:
        """Open events whose last scheduled day is not in the future.

        Slots only ever extend an event past ``end_date``, so anything ending
        after ``local_today`` cannot be due yet.
        """
        rows = await db.execute(
            select(Event)
            .where(
                Event.status.not_in([state.value for state in AUTO_COMPLETE_EXCLUDED]),
                Event.end_date <= local_today,
            )
            .order_by(Event.end_date.asc(), Event.id.asc())
        )
        return list(rows.scalars().all())


event_repository = EventRepository()
