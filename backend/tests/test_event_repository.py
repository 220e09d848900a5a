from __future__ import annotations

from datetime import date

import pytest

from app.domain.events.state_machine import EventStatus
from app.repositories.event_repository import event_repository
from app.services.event_workflow_service import event_workflow_service
from conftest import make_department, submit_payload


async def _approved(db, world, **overrides):
    event = await event_workflow_service.submit_event(db, actor=world["requestor"], payload=submit_payload(**overrides))
    return await event_workflow_service.change_status(
        db, actor=world["admin"], hub=None, event_id=event.id, target=EventStatus.APPROVED
    )


@pytest.mark.asyncio
async def test_tagged_listing_matches_whole_department_names(db, world) -> None:
    await make_department(db, "GSO ANNEX", [("Tents", "physical", 4)])
    await make_department(db, "P_O", [("Flags", "physical", 10)])
    main = await _approved(db, world)
    annex = await _approved(
        db,
        world,
        departmentRequirements={"GSO ANNEX": [{"id": "31", "name": "Tents", "quantity": 2}]},
    )

    gso = await event_repository.list_tagged(db, "gso")
    gso_annex = await event_repository.list_tagged(db, "GSO Annex")
    wildcard = await event_repository.list_tagged(db, "P_O")

    assert [item.id for item in gso] == [main.id]
    assert [item.id for item in gso_annex] == [annex.id]
    assert wildcard == []


@pytest.mark.asyncio
async def test_tagged_listing_ignores_other_statuses(db, world) -> None:
    await event_workflow_service.submit_event(db, actor=world["requestor"], payload=submit_payload())

    assert await event_repository.list_tagged(db, "GSO") == []
    submitted = await event_repository.list_tagged(db, "GSO", status=EventStatus.SUBMITTED)
    assert len(submitted) == 1


@pytest.mark.asyncio
async def test_auto_complete_candidates_skip_future_and_closed_events(db, world) -> None:
    due = await _approved(db, world)
    later = await _approved(db, world, startDate="2026-11-20", endDate="2026-11-20")
    cancelled = await _approved(db, world)
    await event_workflow_service.change_status(
        db, actor=world["admin"], hub=None, event_id=cancelled.id, target=EventStatus.CANCELLED, reason="duplicate"
    )

    before = await event_repository.list_auto_complete_candidates(db, local_today=date(2026, 11, 4))
    on_the_day = await event_repository.list_auto_complete_candidates(db, local_today=date(2026, 11, 5))
    after_both = await event_repository.list_auto_complete_candidates(db, local_today=date(2026, 11, 30))

    assert before == []
    assert [item.id for item in on_the_day] == [due.id]
    assert [item.id for item in after_both] == [due.id, later.id]
