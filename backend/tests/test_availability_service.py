from __future__ import annotations

from datetime import date

import pytest
from fastapi import HTTPException
from sqlalchemy import func, select

from app.models.availability import LocationAvailability, ResourceAvailability
from app.services.availability_service import availability_service
from app.services.event_workflow_service import event_workflow_service
from conftest import submit_payload

TODAY = date(2026, 10, 18)


async def _count(db, model) -> int:
    return int((await db.execute(select(func.count(model.id)))).scalar_one())


@pytest.mark.asyncio
async def test_upsert_creates_then_updates_one_row(db, world) -> None:
    gso = world["gso"]
    chairs = gso.requirements[0]

    first = await availability_service.upsert_resource_availability(
        db,
        actor=world["gso_member"],
        department_id=gso.id,
        requirement_id=chairs.id,
        on_date=date(2026, 11, 5),
        quantity=40,
    )
    await db.commit()
    second = await availability_service.upsert_resource_availability(
        db,
        actor=world["gso_member"],
        department_id=gso.id,
        requirement_id=chairs.id,
        on_date=date(2026, 11, 5),
        is_available=False,
        notes="Reserved for the Governor's visit",
    )
    await db.commit()

    assert second.id == first.id
    assert second.quantity == 40
    assert second.is_available is False
    assert second.requirement_text == "Monobloc Chairs"
    assert second.department_name == "GSO"
    assert await _count(db, ResourceAvailability) == 1


@pytest.mark.asyncio
async def test_upsert_unknown_requirement_is_404(db, world) -> None:
    with pytest.raises(HTTPException) as exc_info:
        await availability_service.upsert_resource_availability(
            db,
            actor=world["gso_member"],
            department_id=world["gso"].id,
            requirement_id=world["pio"].requirements[0].id,
            on_date=date(2026, 11, 5),
        )

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_recompute_prefers_date_override_over_catalog(db, world) -> None:
    gso = world["gso"]
    chairs = gso.requirements[0]
    await availability_service.upsert_resource_availability(
        db,
        actor=world["gso_member"],
        department_id=gso.id,
        requirement_id=chairs.id,
        on_date=date(2026, 11, 5),
        quantity=40,
        max_capacity=300,
    )
    await db.commit()
    on_override = await event_workflow_service.submit_event(db, actor=world["requestor"], payload=submit_payload())
    other_day = await event_workflow_service.submit_event(
        db,
        actor=world["requestor"],
        payload=submit_payload(startDate="2026-11-12", endDate="2026-11-12"),
    )

    refreshed = await availability_service.recompute_totals(db, [on_override, other_day])

    def total(event_id: int, requirement_id: str) -> int | None:
        _, allocation = refreshed[event_id].find(requirement_id)
        return allocation.total_quantity

    assert total(on_override.id, "11") == 40
    assert total(other_day.id, "11") == 300
    assert total(on_override.id, "12") == 2
    # Service requirements have no catalog quantity; the stored value stays.
    assert total(on_override.id, "21") is None
    # Nothing is written back.
    assert on_override.get_requirements().find("11")[1].total_quantity is None


@pytest.mark.asyncio
async def test_create_location_duplicate_is_409(db, world) -> None:
    await availability_service.create_location(
        db,
        actor=world["admin"],
        on_date=date(2026, 11, 5),
        location_name=" Gymnasium ",
        capacity=2,
    )
    await db.commit()

    with pytest.raises(HTTPException) as exc_info:
        await availability_service.create_location(
            db,
            actor=world["admin"],
            on_date=date(2026, 11, 5),
            location_name="Gymnasium",
            capacity=1,
        )

    assert exc_info.value.status_code == 409
    assert await _count(db, LocationAvailability) == 1


@pytest.mark.asyncio
async def test_month_calendar_filters_by_month(db, world) -> None:
    for day in (date(2026, 10, 31), date(2026, 11, 1), date(2026, 11, 30), date(2026, 12, 1)):
        await availability_service.create_location(
            db, actor=world["admin"], on_date=day, location_name="Oval", capacity=1
        )
    await db.commit()

    rows = await availability_service.month_calendar(db, year=2026, month=11)

    assert [row.date for row in rows] == [date(2026, 11, 1), date(2026, 11, 30)]
    with pytest.raises(HTTPException):
        await availability_service.month_calendar(db, year=2026, month=13)


@pytest.mark.asyncio
async def test_predefined_locations_are_not_auto_created(db, world) -> None:
    created = await availability_service.ensure_custom_location(
        db, location_name="Function Hall", on_date=TODAY, actor=world["requestor"]
    )
    custom = await availability_service.ensure_custom_location(
        db, location_name="Barangay Hall", on_date=TODAY, actor=world["requestor"]
    )
    again = await availability_service.ensure_custom_location(
        db, location_name="Barangay Hall", on_date=TODAY, actor=world["requestor"]
    )

    assert created is None
    assert custom is not None and custom.description == "Auto-created from event request"
    assert again is None


@pytest.mark.asyncio
async def test_cleanup_deletes_past_rows_once(db, world) -> None:
    gso = world["gso"]
    chairs = gso.requirements[0]
    for day in (date(2026, 10, 1), TODAY, date(2026, 10, 20)):
        await availability_service.upsert_resource_availability(
            db,
            actor=world["gso_member"],
            department_id=gso.id,
            requirement_id=chairs.id,
            on_date=day,
            quantity=10,
        )
    for day in (date(2026, 10, 17), date(2026, 10, 25)):
        await availability_service.create_location(
            db, actor=world["admin"], on_date=day, location_name="Quadrangle", capacity=1
        )
    await db.commit()

    first = await availability_service.cleanup_past_availabilities(db, today=TODAY)
    second = await availability_service.cleanup_past_availabilities(db, today=TODAY)

    assert first == {"resource": 1, "location": 1, "total": 2}
    assert second == {"resource": 0, "location": 0, "total": 0}
    assert await _count(db, ResourceAvailability) == 2
    assert await _count(db, LocationAvailability) == 1
