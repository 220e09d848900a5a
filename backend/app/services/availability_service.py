"""
Availability ledger service.

Covers per-date resource overrides, per-date location availability, the
read-time recompute of allocation quantities, and the past-date cleanup
used by the scheduler.
"""

from __future__ import annotations

import calendar
from datetime import date
from typing import Any, Iterable

from fastapi import HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.logging import get_logger
from app.domain.events.allocations import DepartmentRequirements, normalize_department
from app.domain.events.schedule import event_date_key
from app.models.availability import LocationAvailability, LocationStatus, ResourceAvailability
from app.models.department import Department, DepartmentRequirement
from app.models.event import Event
from app.models.user import User

settings = get_settings()
logger = get_logger("services.availability")

AUTO_LOCATION_DESCRIPTION = "Auto-created from event request"


class AvailabilityService:
    # ── Resource overrides ──

    async def get_catalog_requirement(
        self,
        db: AsyncSession,
        *,
        department_id: int,
        requirement_id: int,
    ) -> tuple[Department, DepartmentRequirement]:
        department = await db.get(Department, department_id)
        if department is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
        requirement = next((item for item in department.requirements if item.id == requirement_id), None)
        if requirement is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Requirement not found")
        return department, requirement

    async def list_resource_availability(
        self,
        db: AsyncSession,
        *,
        department_id: int,
        on_date: date | None = None,
    ) -> list[ResourceAvailability]:
        query = select(ResourceAvailability).where(ResourceAvailability.department_id == department_id)
        if on_date is not None:
            query = query.where(ResourceAvailability.date == on_date)
        rows = await db.execute(query.order_by(ResourceAvailability.date.asc(), ResourceAvailability.id.asc()))
        return list(rows.scalars().all())

    async def upsert_resource_availability(
        self,
        db: AsyncSession,
        *,
        actor: User,
        department_id: int,
        requirement_id: int,
        on_date: date,
        is_available: bool | None = None,
        notes: str | None = None,
        quantity: int | None = None,
        max_capacity: int | None = None,
    ) -> ResourceAvailability:
        department, requirement = await self.get_catalog_requirement(
            db,
            department_id=department_id,
            requirement_id=requirement_id,
        )
        result = await db.execute(
            select(ResourceAvailability).where(
                ResourceAvailability.department_id == department_id,
                ResourceAvailability.requirement_id == requirement_id,
                ResourceAvailability.date == on_date,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = ResourceAvailability(
                department_id=department.id,
                department_name=department.name,
                requirement_id=requirement.id,
                requirement_text=requirement.text,
                date=on_date,
                is_available=True if is_available is None else is_available,
                notes=notes or "",
                quantity=1 if quantity is None else quantity,
                max_capacity=1 if max_capacity is None else max_capacity,
                set_by=actor.id,
            )
            db.add(row)
        else:
            if is_available is not None:
                row.is_available = is_available
            if notes is not None:
                row.notes = notes
            if quantity is not None:
                row.quantity = quantity
            if max_capacity is not None:
                row.max_capacity = max_capacity
            row.set_by = actor.id
        await db.flush()
        return row

    async def delete_resource_availability(
        self,
        db: AsyncSession,
        *,
        department_id: int,
        requirement_id: int,
        on_date: date,
    ) -> int:
        result = await db.execute(
            delete(ResourceAvailability).where(
                ResourceAvailability.department_id == department_id,
                ResourceAvailability.requirement_id == requirement_id,
                ResourceAvailability.date == on_date,
            )
        )
        return int(result.rowcount or 0)

    async def delete_resource_for_dates(
        self,
        db: AsyncSession,
        *,
        department_id: int,
        dates: Iterable[date],
    ) -> int:
        days = list(dates)
        if not days:
            return 0
        result = await db.execute(
            delete(ResourceAvailability).where(
                ResourceAvailability.department_id == department_id,
                ResourceAvailability.date.in_(days),
            )
        )
        return int(result.rowcount or 0)

    # ── Read-time recompute ──

    async def recompute_totals(
        self,
        db: AsyncSession,
        events: Iterable[Event],
    ) -> dict[int, DepartmentRequirements]:
        """Refresh each allocation's ``total_quantity`` from catalog and overrides.

        Date overrides for the event's start date win over the catalog
        default; allocations with no catalog match keep their stored value.
        Nothing is written back.
        """
        events = list(events)
        refreshed: dict[int, DepartmentRequirements] = {}
        if not events:
            return refreshed

        maps = {event.id: event.get_requirements() for event in events}
        department_names = {name for requirements in maps.values() for name in requirements.tagged_departments}
        departments: dict[str, Department] = {}
        if department_names:
            rows = await db.execute(select(Department).where(Department.name.in_(department_names)))
            departments = {normalize_department(item.name): item for item in rows.scalars().all()}

        days = {event_date_key(event) for event in events}
        overrides: dict[tuple[int, int, date], ResourceAvailability] = {}
        if departments:
            rows = await db.execute(
                select(ResourceAvailability).where(
                    ResourceAvailability.department_id.in_([item.id for item in departments.values()]),
                    ResourceAvailability.date.in_(days),
                )
            )
            overrides = {
                (item.department_id, item.requirement_id, item.date): item for item in rows.scalars().all()
            }

        for event in events:
            requirements = maps[event.id]
            day = event_date_key(event)
            for department_name, allocation in requirements:
                department = departments.get(department_name)
                if department is None:
                    continue
                catalog_entry = next(
                    (item for item in department.requirements if item.text == allocation.name),
                    None,
                )
                if catalog_entry is None:
                    continue
                override = overrides.get((department.id, catalog_entry.id, day))
                if override is not None:
                    allocation.total_quantity = override.quantity
                elif catalog_entry.total_quantity:
                    allocation.total_quantity = catalog_entry.total_quantity
            refreshed[event.id] = requirements
        return refreshed

    # ── Locations ──

    async def list_locations(
        self,
        db: AsyncSession,
        *,
        on_date: date | None = None,
        location_name: str | None = None,
        department_name: str | None = None,
    ) -> list[LocationAvailability]:
        query = select(LocationAvailability)
        if on_date is not None:
            query = query.where(LocationAvailability.date == on_date)
        if location_name:
            query = query.where(LocationAvailability.location_name.ilike(f"%{location_name}%"))
        if department_name:
            query = query.where(LocationAvailability.department_name == department_name)
        rows = await db.execute(query.order_by(LocationAvailability.date.asc(), LocationAvailability.location_name.asc()))
        return list(rows.scalars().all())

    async def get_location(self, db: AsyncSession, location_id: int) -> LocationAvailability:
        row = await db.get(LocationAvailability, location_id)
        if row is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location availability not found")
        return row

    async def create_location(
        self,
        db: AsyncSession,
        *,
        actor: User,
        on_date: date,
        location_name: str,
        capacity: int,
        description: str | None = None,
        status_value: str = LocationStatus.available.value,
    ) -> LocationAvailability:
        row = LocationAvailability(
            date=on_date,
            location_name=location_name.strip(),
            capacity=capacity,
            description=description or "",
            status=status_value,
            set_by=actor.id,
            department_name=actor.department,
        )
        try:
            async with db.begin_nested():
                db.add(row)
                await db.flush()
        except IntegrityError as exc:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Location availability already exists for this date",
            ) from exc
        return row

    async def update_location(
        self,
        db: AsyncSession,
        *,
        actor: User,
        location_id: int,
        changes: dict[str, Any],
    ) -> LocationAvailability:
        row = await self.get_location(db, location_id)
        for key in ("date", "location_name", "capacity", "description", "status"):
            if key in changes and changes[key] is not None:
                setattr(row, key, changes[key].strip() if key == "location_name" else changes[key])
        row.set_by = actor.id
        try:
            async with db.begin_nested():
                await db.flush()
        except IntegrityError as exc:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Location availability already exists for this date",
            ) from exc
        return row

    async def delete_location(self, db: AsyncSession, location_id: int) -> None:
        row = await self.get_location(db, location_id)
        await db.delete(row)
        await db.flush()

    async def month_calendar(self, db: AsyncSession, *, year: int, month: int) -> list[LocationAvailability]:
        if not 1 <= month <= 12 or year < 1:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid year or month")
        first = date(year, month, 1)
        last = date(year, month, calendar.monthrange(year, month)[1])
        rows = await db.execute(
            select(LocationAvailability)
            .where(LocationAvailability.date >= first, LocationAvailability.date <= last)
            .order_by(LocationAvailability.date.asc(), LocationAvailability.location_name.asc())
        )
        return list(rows.scalars().all())

    def is_predefined_location(self, name: str) -> bool:
        return name.strip() in settings.predefined_locations_list

    async def ensure_custom_location(
        self,
        db: AsyncSession,
        *,
        location_name: str,
        on_date: date,
        actor: User,
    ) -> LocationAvailability | None:
        """Create an availability row for a location outside the predefined list.

        Returns the new row, or None when the location is predefined, already
        present for that date, or the insert fails.
        """
        name = (location_name or "").strip()
        if not name or self.is_predefined_location(name):
            return None
        existing = await db.execute(
            select(LocationAvailability.id).where(
                LocationAvailability.date == on_date,
                LocationAvailability.location_name == name,
            )
        )
        if existing.scalar_one_or_none() is not None:
            return None

        row = LocationAvailability(
            date=on_date,
            location_name=name,
            capacity=1,
            description=AUTO_LOCATION_DESCRIPTION,
            status=LocationStatus.available.value,
            set_by=actor.id,
            department_name=actor.department or "Unknown",
        )
        try:
            async with db.begin_nested():
                db.add(row)
                await db.flush()
        except IntegrityError:
            logger.info("custom_location_exists", location=name, date=on_date.isoformat())
            return None
        logger.info("custom_location_created", location=name, date=on_date.isoformat(), user_id=actor.id)
        return row

    # ── Cleanup ──

    async def cleanup_past_resource(self, db: AsyncSession, *, today: date) -> int:
        result = await db.execute(delete(ResourceAvailability).where(ResourceAvailability.date < today))
        return int(result.rowcount or 0)

    async def cleanup_past_location(self, db: AsyncSession, *, today: date) -> int:
        result = await db.execute(delete(LocationAvailability).where(LocationAvailability.date < today))
        return int(result.rowcount or 0)

    async def cleanup_past_availabilities(self, db: AsyncSession, *, today: date) -> dict[str, int]:
        """Delete every override dated strictly before ``today``. Idempotent."""
        resource = await self.cleanup_past_resource(db, today=today)
        location = await self.cleanup_past_location(db, today=today)
        await db.commit()
        counts = {"resource": resource, "location": location, "total": resource + location}
        logger.info("availability_cleanup_done", today=today.isoformat(), **counts)
        return counts


availability_service = AvailabilityService()
