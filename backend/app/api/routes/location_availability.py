"""Location availability API: per-date capacity and status for event venues."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.envelope import success_envelope
from app.api.routes.users import get_current_user
from app.core.config import get_settings
from app.core.database import get_db
from app.core.logging import get_logger
from app.domain.events.schedule import local_today
from app.models.user import User
from app.schemas.availability import (
    LocationAvailabilityCreate,
    LocationAvailabilityResponse,
    LocationAvailabilityUpdate,
)
from app.services.availability_service import availability_service

router = APIRouter(prefix="/location-availability", tags=["Location Availability"])
logger = get_logger("location_availability")
settings = get_settings()


def _row(item) -> dict:
    return LocationAvailabilityResponse.model_validate(item).model_dump(mode="json")


@router.get("/")
async def list_locations(
    on_date: date | None = Query(default=None, alias="date"),
    location_name: str | None = Query(default=None, alias="locationName"),
    department_name: str | None = Query(default=None, alias="departmentName"),
    db: AsyncSession = Depends(get_db),
    _: User = Depends(get_current_user),
):
    rows = await availability_service.list_locations(
        db,
        on_date=on_date,
        location_name=location_name,
        department_name=department_name,
    )
    return success_envelope([_row(item) for item in rows])


@router.get("/calendar/{year}/{month}")
async def month_calendar(
    year: int,
    month: int,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(get_current_user),
):
    rows = await availability_service.month_calendar(db, year=year, month=month)
    days: dict[str, list[dict]] = {}
    for item in rows:
        days.setdefault(item.date.isoformat(), []).append(_row(item))
    return success_envelope({"year": year, "month": month, "days": days, "total": len(rows)})


@router.post("/cleanup-past")
async def cleanup_past(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    today = local_today(settings.app_timezone)
    deleted = await availability_service.cleanup_past_location(db, today=today)
    await db.commit()
    logger.info("location_cleanup_manual", deleted=deleted, user_id=current_user.id)
    return success_envelope({"deleted": deleted, "today": today}, message=f"Deleted {deleted} past records")


@router.get("/{location_id}")
async def get_location(
    location_id: int,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(get_current_user),
):
    return success_envelope(_row(await availability_service.get_location(db, location_id)))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_location(
    payload: LocationAvailabilityCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    row = await availability_service.create_location(
        db,
        actor=current_user,
        on_date=payload.date,
        location_name=payload.location_name,
        capacity=payload.capacity,
        description=payload.description,
        status_value=payload.status.value,
    )
    await db.commit()
    logger.info("location_availability_created", location=row.location_name, date=row.date.isoformat())
    return success_envelope(_row(row), message="Location availability created successfully", status_code=201)


@router.put("/{location_id}")
async def update_location(
    location_id: int,
    payload: LocationAvailabilityUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("status") is not None:
        changes["status"] = payload.status.value
    row = await availability_service.update_location(
        db,
        actor=current_user,
        location_id=location_id,
        changes=changes,
    )
    await db.commit()
    return success_envelope(_row(row), message="Location availability updated successfully")


@router.delete("/{location_id}")
async def delete_location(
    location_id: int,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(get_current_user),
):
    await availability_service.delete_location(db, location_id)
    await db.commit()
    return success_envelope({"id": location_id}, message="Location availability deleted successfully")
