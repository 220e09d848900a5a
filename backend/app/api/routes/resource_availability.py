"""
Resource availability API.
Per-date overrides of a department's catalog quantities.
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.rbac import enforce_department_scope
from app.api.envelope import success_envelope
from app.api.routes.users import get_current_user
from app.core.config import get_settings
from app.core.database import get_db
from app.core.logging import get_logger
from app.domain.events.schedule import local_today
from app.models.department import Department
from app.models.user import User
from app.schemas.availability import (
    ResourceAvailabilityBulkRequest,
    ResourceAvailabilityResponse,
    ResourceAvailabilityUpsert,
    ResourceDateDeleteRequest,
)
from app.schemas.departments import RequirementResponse
from app.services.availability_service import availability_service

router = APIRouter(prefix="/resource-availability", tags=["Resource Availability"])
logger = get_logger("resource_availability")
settings = get_settings()


async def _department_for(db: AsyncSession, user: User, department_id: int) -> Department:
    department = await db.get(Department, department_id)
    if department is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
    enforce_department_scope(user, department.name, message="You can only manage availability for your own department")
    return department


def _rows(items) -> list[dict]:
    return [ResourceAvailabilityResponse.model_validate(item).model_dump(mode="json") for item in items]


@router.get("/department/{department_id}/requirements")
async def department_requirements(
    department_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    department = await _department_for(db, current_user, department_id)
    active = [item for item in department.requirements if item.is_active]
    return success_envelope([RequirementResponse.model_validate(item) for item in active])


@router.get("/department/{department_id}/availability")
async def department_availability(
    department_id: int,
    on_date: date | None = Query(default=None, alias="date"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await _department_for(db, current_user, department_id)
    rows = await availability_service.list_resource_availability(db, department_id=department_id, on_date=on_date)
    return success_envelope(_rows(rows))


@router.post("/availability")
async def upsert_availability(
    payload: ResourceAvailabilityUpsert,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await _department_for(db, current_user, payload.department_id)
    row = await availability_service.upsert_resource_availability(
        db,
        actor=current_user,
        department_id=payload.department_id,
        requirement_id=payload.requirement_id,
        on_date=payload.date,
        is_available=payload.is_available,
        notes=payload.notes,
        quantity=payload.quantity,
        max_capacity=payload.max_capacity,
    )
    await db.commit()
    logger.info(
        "resource_availability_saved",
        department_id=payload.department_id,
        requirement_id=payload.requirement_id,
        date=payload.date.isoformat(),
    )
    return success_envelope(_rows([row])[0], message="Availability saved successfully")


@router.post("/availability/bulk")
async def bulk_upsert_availability(
    payload: ResourceAvailabilityBulkRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    for department_id in {item.department_id for item in payload.items}:
        await _department_for(db, current_user, department_id)
    saved = []
    for item in payload.items:
        saved.append(
            await availability_service.upsert_resource_availability(
                db,
                actor=current_user,
                department_id=item.department_id,
                requirement_id=item.requirement_id,
                on_date=item.date,
                is_available=item.is_available,
                notes=item.notes,
                quantity=item.quantity,
                max_capacity=item.max_capacity,
            )
        )
    await db.commit()
    logger.info("resource_availability_bulk_saved", count=len(saved), user_id=current_user.id)
    return success_envelope(_rows(saved), message=f"Saved {len(saved)} availability records")


@router.delete("/availability/{department_id}/{requirement_id}/{on_date}")
async def delete_availability(
    department_id: int,
    requirement_id: int,
    on_date: date,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await _department_for(db, current_user, department_id)
    deleted = await availability_service.delete_resource_availability(
        db,
        department_id=department_id,
        requirement_id=requirement_id,
        on_date=on_date,
    )
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Availability record not found")
    await db.commit()
    return success_envelope({"deleted": deleted}, message="Availability deleted successfully")


@router.delete("/department/{department_id}/date/{on_date}")
async def delete_department_date(
    department_id: int,
    on_date: date,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await _department_for(db, current_user, department_id)
    deleted = await availability_service.delete_resource_for_dates(db, department_id=department_id, dates=[on_date])
    await db.commit()
    return success_envelope({"deleted": deleted}, message=f"Deleted {deleted} availability records")


@router.delete("/department/{department_id}/bulk-dates")
async def delete_department_dates(
    department_id: int,
    payload: ResourceDateDeleteRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if payload.department_id != department_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Department id mismatch")
    await _department_for(db, current_user, department_id)
    deleted = await availability_service.delete_resource_for_dates(
        db,
        department_id=department_id,
        dates=payload.dates,
    )
    await db.commit()
    return success_envelope({"deleted": deleted}, message=f"Deleted {deleted} availability records")


@router.post("/cleanup-past")
async def cleanup_past(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    today = local_today(settings.app_timezone)
    deleted = await availability_service.cleanup_past_resource(db, today=today)
    await db.commit()
    logger.info("resource_cleanup_manual", deleted=deleted, user_id=current_user.id)
    return success_envelope({"deleted": deleted, "today": today}, message=f"Deleted {deleted} past records")
