from __future__ import annotations

from datetime import date, datetime, timezone
from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from sqlalchemy import select, text
from sqlalchemy.orm.exc import StaleDataError

from app.domain.events.allocations import AllocationStatus, ReleaseState, ReplyRole
from app.domain.events.errors import UnknownDepartment
from app.domain.events.state_machine import EventStatus
from app.models.availability import LocationAvailability
from app.models.user_activity import UserActivityLog
from app.repositories.event_repository import event_repository
from app.schemas.events import EventDetailsUpdateRequest, EventRescheduleRequest, event_to_response
from app.services import event_workflow_service as workflow_module
from app.services.event_workflow_service import WRITE_ATTEMPTS, event_workflow_service
from app.services.notification_service import notification_service
from conftest import submit_payload


def _allocations(event):
    return {allocation.id: (department, allocation) for department, allocation in event.get_requirements()}


async def _submit(db, world, **overrides):
    return await event_workflow_service.submit_event(db, actor=world["requestor"], payload=submit_payload(**overrides))


async def _approve(db, world, hub, event_id):
    return await event_workflow_service.change_status(
        db,
        actor=world["admin"],
        hub=hub,
        event_id=event_id,
        target=EventStatus.APPROVED,
    )


# ── Submission ──

@pytest.mark.asyncio
async def test_submit_holds_every_allocation(db, world) -> None:
    event = await _submit(db, world)

    assert event.status == EventStatus.SUBMITTED.value
    assert event.submitted_at is not None
    assert event.tagged_departments == ["GSO", "PIO"]
    assert all(
        allocation.requirements_status == ReleaseState.ON_HOLD for _, allocation in event.get_requirements()
    )
    logs = (await db.execute(select(UserActivityLog).where(UserActivityLog.action == "submit_event"))).scalars().all()
    assert len(logs) == 1
    assert logs[0].entity_id == str(event.id)


@pytest.mark.asyncio
async def test_submit_rejects_unknown_department(db, world) -> None:
    with pytest.raises(UnknownDepartment) as exc_info:
        await _submit(db, world, departmentRequirements={"GSOO": [{"id": "11", "name": "Chairs"}]})

    assert exc_info.value.details == {"departments": ["GSOO"]}


@pytest.mark.asyncio
async def test_submit_drops_gov_files_unless_without_gov(db, world) -> None:
    gov = {"programme": {"filename": "programme-1.pdf"}}

    event = await event_workflow_service.submit_event(
        db,
        actor=world["requestor"],
        payload=submit_payload(),
        gov_files=gov,
    )

    assert event.gov_files is None


@pytest.mark.asyncio
async def test_custom_location_gets_an_availability_row(db, world) -> None:
    event = await _submit(db, world, location="CustomRoom", locations=["Function Hall", "CustomRoom"])

    rows = (await db.execute(select(LocationAvailability))).scalars().all()

    assert [(row.location_name, row.date, row.capacity, row.status) for row in rows] == [
        ("CustomRoom", event.start_date, 1, "available"),
    ]
    assert rows[0].department_name == "PGO"


# ── Admin transitions ──

@pytest.mark.asyncio
async def test_approve_then_department_confirms_notifies_requestor(db, world, hub) -> None:
    event = await _submit(db, world)

    approved = await _approve(db, world, hub, event.id)

    assert approved.status == EventStatus.APPROVED.value
    assert all(
        allocation.requirements_status == ReleaseState.RELEASED and allocation.status == AllocationStatus.PENDING
        for _, allocation in approved.get_requirements()
    )
    requestor_id = world["requestor"].id
    assert hub.events("user", requestor_id) == ["new-notification", "event-status-updated"]
    assert hub.events("department") == ["status-update", "status-update"]
    assert "event-updated" in hub.events("broadcast")

    hub.sent.clear()
    updated = await event_workflow_service.update_requirement_status(
        db,
        actor=world["gso_member"],
        hub=hub,
        event_id=event.id,
        requirement_id="11",
        new_status=AllocationStatus.CONFIRMED,
    )

    _, chairs = _allocations(updated)["11"]
    assert chairs.status == AllocationStatus.CONFIRMED
    assert chairs.last_updated is not None
    assert hub.events("user", requestor_id) == ["status-update", "new-notification"]
    assert hub.events("user", world["gso_member"].id) == ["status-update"]

    feed = await notification_service.list_feed(db, user=world["requestor"], unread_only=True)
    assert len(feed) == 1
    assert feed[0]["requirement_id"] == "11"
    assert feed[0]["new_status"] == "confirmed"
    assert feed[0]["department_name"] == "GSO"


@pytest.mark.asyncio
async def test_cancel_resets_allocations_and_keeps_reason(db, world, hub) -> None:
    event = await _submit(db, world)
    await _approve(db, world, hub, event.id)
    await event_workflow_service.update_requirement_status(
        db,
        actor=world["gso_member"],
        hub=None,
        event_id=event.id,
        requirement_id="12",
        new_status=AllocationStatus.DECLINED,
        decline_reason="Under repair",
    )
    hub.sent.clear()

    cancelled = await event_workflow_service.change_status(
        db,
        actor=world["admin"],
        hub=hub,
        event_id=event.id,
        target=EventStatus.CANCELLED,
        reason="venue conflict",
    )

    assert cancelled.status == EventStatus.CANCELLED.value
    assert cancelled.reason == "venue conflict"
    for _, allocation in cancelled.get_requirements():
        assert allocation.status == AllocationStatus.PENDING
        assert allocation.decline_reason is None
        assert allocation.notes is None
    assert sorted(target for kind, target, name, _ in hub.sent if name == "status-update") == ["GSO", "PIO"]


@pytest.mark.asyncio
async def test_invalid_transition_is_409_and_leaves_event_unchanged(db, world) -> None:
    event = await _submit(db, world)
    event_id = event.id
    await event_workflow_service.change_status(
        db, actor=world["admin"], hub=None, event_id=event_id, target=EventStatus.REJECTED, reason="incomplete"
    )

    with pytest.raises(HTTPException) as exc_info:
        await _approve(db, world, None, event_id)

    assert exc_info.value.status_code == 409
    # The failed write rolled back, so only ids captured beforehand are safe to use.
    reloaded = await event_workflow_service.get_event(db, event_id)
    assert reloaded.status == EventStatus.REJECTED.value
    assert reloaded.reason == "incomplete"


# ── Department actions ──

@pytest.mark.asyncio
async def test_department_cannot_act_before_release(db, world) -> None:
    event = await _submit(db, world)

    with pytest.raises(HTTPException) as exc_info:
        await event_workflow_service.update_requirement_status(
            db,
            actor=world["gso_member"],
            hub=None,
            event_id=event.id,
            requirement_id="11",
            new_status=AllocationStatus.CONFIRMED,
        )

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail["code"] == "requirement_on_hold"


@pytest.mark.asyncio
async def test_untagged_department_is_forbidden(db, world) -> None:
    event = await _submit(db, world)
    await _approve(db, world, None, event.id)

    with pytest.raises(HTTPException) as exc_info:
        await event_workflow_service.update_requirement_notes(
            db,
            actor=world["requestor"],
            hub=None,
            event_id=event.id,
            requirement_id="11",
            department_notes="hello",
        )

    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_declined_without_reason_stays_unset(db, world) -> None:
    event = await _submit(db, world)
    await _approve(db, world, None, event.id)

    updated = await event_workflow_service.update_requirement_status(
        db,
        actor=world["gso_member"],
        hub=None,
        event_id=event.id,
        requirement_id="11",
        new_status=AllocationStatus.DECLINED,
    )

    _, chairs = _allocations(updated)["11"]
    assert chairs.status == AllocationStatus.DECLINED
    assert chairs.decline_reason is None


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_status_update(db, world, monkeypatch) -> None:
    event = await _submit(db, world)
    await _approve(db, world, None, event.id)

    async def broken(*_args, **_kwargs):
        raise RuntimeError("notification store down")

    monkeypatch.setattr(notification_service, "persist_status_notification", broken)

    updated = await event_workflow_service.update_requirement_status(
        db,
        actor=world["gso_member"],
        hub=None,
        event_id=event.id,
        requirement_id="11",
        new_status=AllocationStatus.IN_PREPARATION,
    )

    assert _allocations(updated)["11"][1].status == AllocationStatus.IN_PREPARATION


@pytest.mark.asyncio
async def test_notification_table_failure_keeps_committed_status_readable(db, world) -> None:
    event = await _submit(db, world)
    event_id = event.id
    await _approve(db, world, None, event_id)
    await db.execute(text("DROP TABLE notifications"))
    await db.commit()

    updated = await event_workflow_service.update_requirement_status(
        db,
        actor=world["gso_member"],
        hub=None,
        event_id=event_id,
        requirement_id="11",
        new_status=AllocationStatus.CONFIRMED,
    )

    body = event_to_response(updated).model_dump(mode="json")
    assert body["department_requirements"]["GSO"][0]["status"] == AllocationStatus.CONFIRMED.value
    assert body["creator"]["username"] == "ana"

    stored = await event_repository.get_by_id(db, event_id)
    assert _allocations(stored)["11"][1].status == AllocationStatus.CONFIRMED


@pytest.mark.asyncio
async def test_holding_department_can_retag_and_empty_department_drops_out(db, world, hub) -> None:
    event = await _submit(db, world)
    await _approve(db, world, None, event.id)

    moved = await event_workflow_service.retag_requirement(
        db,
        actor=world["pio_member"],
        hub=hub,
        event_id=event.id,
        requirement_id="21",
        departments=["gso"],
    )

    assert moved.tagged_departments == ["GSO"]
    department, coverage = _allocations(moved)["21"]
    assert department == "GSO"
    assert coverage.requirements_status == ReleaseState.RELEASED
    assert hub.events("department", "GSO") == ["status-update"]


@pytest.mark.asyncio
async def test_other_department_cannot_retag(db, world) -> None:
    event = await _submit(db, world)

    with pytest.raises(HTTPException) as exc_info:
        await event_workflow_service.retag_requirement(
            db,
            actor=world["gso_member"],
            hub=None,
            event_id=event.id,
            requirement_id="21",
            departments=["GSO"],
        )

    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_add_department_after_approval_is_released(db, world, hub) -> None:
    event = await _submit(db, world, departmentRequirements={"GSO": [{"id": "11", "name": "Monobloc Chairs"}]})
    await _approve(db, world, None, event.id)

    updated = await event_workflow_service.add_department(
        db,
        actor=world["requestor"],
        hub=hub,
        event_id=event.id,
        department_name="pio",
        entries=[{"id": "21", "name": "Photo Coverage", "type": "service"}],
    )

    assert updated.tagged_departments == ["GSO", "PIO"]
    assert _allocations(updated)["21"][1].requirements_status == ReleaseState.RELEASED
    assert hub.events("department", "PIO") == ["status-update"]


@pytest.mark.asyncio
async def test_reply_role_is_checked_against_identity(db, world, hub) -> None:
    event = await _submit(db, world)

    updated = await event_workflow_service.reply_to_requirement(
        db,
        actor=world["requestor"],
        hub=hub,
        event_id=event.id,
        requirement_id="11",
        message="  Please deliver by 7AM  ",
    )
    [reply] = _allocations(updated)["11"][1].replies
    assert reply.role == ReplyRole.REQUESTOR
    assert reply.message == "Please deliver by 7AM"
    assert hub.events() == ["reply-update", "reply-update"]

    with pytest.raises(HTTPException) as exc_info:
        await event_workflow_service.reply_to_requirement(
            db,
            actor=world["pio_member"],
            hub=None,
            event_id=event.id,
            requirement_id="21",
            message="We are the requestor",
            requested_role=ReplyRole.REQUESTOR,
        )
    assert exc_info.value.status_code == 403


# ── Requestor edits ──

def _details(**overrides) -> EventDetailsUpdateRequest:
    data = {
        "eventTitle": "Provincial Budget Forum 2027",
        "requestor": "Ana Reyes",
        "participants": 150,
        "contactNumber": "09171234567",
        "contactEmail": "ana.reyes@example.gov.ph",
    }
    data.update(overrides)
    return EventDetailsUpdateRequest.model_validate(data)


@pytest.mark.asyncio
async def test_details_edit_appends_attachments(db, world, hub) -> None:
    event = await event_workflow_service.submit_event(
        db,
        actor=world["requestor"],
        payload=submit_payload(),
        attachments=[{"filename": "attachments-1.pdf"}],
    )

    updated = await event_workflow_service.update_details(
        db,
        actor=world["requestor"],
        hub=hub,
        event_id=event.id,
        payload=_details(),
        new_attachments=[{"filename": "attachments-2.pdf"}],
    )

    assert updated.event_title == "Provincial Budget Forum 2027"
    assert updated.participants == 150
    assert [item["filename"] for item in updated.attachments] == ["attachments-1.pdf", "attachments-2.pdf"]
    assert hub.events("user", world["requestor"].id) == ["event-updated"]


@pytest.mark.asyncio
async def test_details_edit_only_while_submitted(db, world) -> None:
    event = await _submit(db, world)
    await _approve(db, world, None, event.id)

    with pytest.raises(HTTPException) as exc_info:
        await event_workflow_service.update_details(
            db, actor=world["requestor"], hub=None, event_id=event.id, payload=_details()
        )

    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_reschedule_to_custom_location_logs_activity(db, world, hub) -> None:
    event = await _submit(db, world)

    updated = await event_workflow_service.reschedule(
        db,
        actor=world["requestor"],
        hub=hub,
        event_id=event.id,
        payload=EventRescheduleRequest.model_validate(
            {"location": "Annex Room 2", "startDate": "2026-11-10", "endDate": "2026-11-10"}
        ),
    )

    assert updated.location == "Annex Room 2"
    assert updated.start_date == date(2026, 11, 10)
    locations = (await db.execute(select(LocationAvailability.location_name, LocationAvailability.date))).all()
    assert [tuple(row) for row in locations] == [("Annex Room 2", date(2026, 11, 10))]
    logs = (
        await db.execute(select(UserActivityLog).where(UserActivityLog.action == "reschedule_event"))
    ).scalars().all()
    assert len(logs) == 1
    assert "Annex Room 2" in logs[0].description
    assert hub.events("broadcast") == ["event-updated"]


@pytest.mark.asyncio
async def test_reschedule_rejects_backwards_window(db, world) -> None:
    event = await _submit(db, world)

    with pytest.raises(HTTPException) as exc_info:
        await event_workflow_service.reschedule(
            db,
            actor=world["requestor"],
            hub=None,
            event_id=event.id,
            payload=EventRescheduleRequest.model_validate({"endDate": "2026-11-01"}),
        )

    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_only_owner_or_admin_can_delete(db, world, hub) -> None:
    event = await _submit(db, world)

    with pytest.raises(HTTPException) as exc_info:
        await event_workflow_service.delete_event(db, actor=world["gso_member"], hub=None, event_id=event.id)
    assert exc_info.value.status_code == 403

    await event_workflow_service.delete_event(db, actor=world["admin"], hub=hub, event_id=event.id)

    assert await event_repository.get_by_id(db, event.id) is None
    assert hub.sent[-1][2:] == ("event-updated", {"event_id": event.id, "event_title": event.event_title, "action": "deleted"})


# ── Reports ──

@pytest.mark.asyncio
async def test_reports_complete_only_when_every_slot_is_filled(db, world) -> None:
    event = await _submit(db, world)
    await _approve(db, world, None, event.id)
    await event_workflow_service.change_status(
        db, actor=world["admin"], hub=None, event_id=event.id, target=EventStatus.COMPLETED
    )

    partial = await event_workflow_service.attach_reports(
        db,
        actor=world["requestor"],
        event_id=event.id,
        reports={"completion_report": {"filename": "completionReport-1.pdf"}},
    )
    assert partial.reports_status == "pending"
    assert partial.event_reports["completion_report"]["uploaded"] is True

    complete = await event_workflow_service.attach_reports(
        db,
        actor=world["requestor"],
        event_id=event.id,
        reports={
            "post_activity_report": {"filename": "a.pdf"},
            "assessment_report": {"filename": "b.pdf"},
            "feedback_form": {"filename": "c.pdf"},
        },
    )
    assert complete.reports_status == "completed"


@pytest.mark.asyncio
async def test_reports_require_completed_event(db, world) -> None:
    event = await _submit(db, world)

    with pytest.raises(HTTPException) as exc_info:
        await event_workflow_service.attach_reports(
            db, actor=world["requestor"], event_id=event.id, reports={"feedback_form": {"filename": "c.pdf"}}
        )

    assert exc_info.value.status_code == 400


# ── Auto-complete sweep ──

@pytest.mark.asyncio
async def test_auto_complete_uses_latest_end_and_skips_cancelled(db, world, hub) -> None:
    single_day = await _submit(db, world)
    await _approve(db, world, None, single_day.id)
    multi_day = await _submit(
        db,
        world,
        dateTimeSlots=[{"startDate": "2026-11-06", "startTime": "08:00", "endDate": "2026-11-06", "endTime": "12:00"}],
    )
    await _approve(db, world, None, multi_day.id)
    cancelled = await _submit(db, world)
    await event_workflow_service.change_status(
        db, actor=world["admin"], hub=None, event_id=cancelled.id, target=EventStatus.CANCELLED
    )

    # 08:00 on Nov 6 in Manila: the single-day event is over, the extra slot is not.
    first = await event_workflow_service.auto_complete_due(
        db, hub=hub, now=datetime(2026, 11, 6, 0, 0, tzinfo=timezone.utc)
    )
    assert first == [single_day.id]
    assert hub.events("broadcast") == ["event-status-updated", "event-updated"]

    # 13:00 on Nov 6 in Manila.
    second = await event_workflow_service.auto_complete_due(
        db, hub=None, now=datetime(2026, 11, 6, 5, 0, tzinfo=timezone.utc)
    )
    assert second == [multi_day.id]

    assert (await event_workflow_service.get_event(db, cancelled.id)).status == EventStatus.CANCELLED.value
    assert await event_workflow_service.auto_complete_due(
        db, hub=None, now=datetime(2026, 12, 1, tzinfo=timezone.utc)
    ) == []


# ── Optimistic concurrency ──

class _StaleSession:
    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0

    async def commit(self):
        self.commits += 1
        raise StaleDataError("UPDATE statement on table 'events' expected to update 1 row(s); 0 were matched.")

    async def rollback(self):
        self.rollbacks += 1

    def __contains__(self, _instance) -> bool:
        return False


@pytest.mark.asyncio
async def test_stale_writes_retry_then_surface_as_409(monkeypatch) -> None:
    event = SimpleNamespace(id=5, created_by=1, status="completed", event_reports={}, reports_status="pending")

    async def fake_get_by_id(_db, _event_id):
        return event

    monkeypatch.setattr(workflow_module.event_repository, "get_by_id", fake_get_by_id)
    db = _StaleSession()

    with pytest.raises(HTTPException) as exc_info:
        await event_workflow_service.attach_reports(
            db,
            actor=SimpleNamespace(id=1),
            event_id=5,
            reports={"feedback_form": {"filename": "c.pdf"}},
        )

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail["code"] == "event_write_conflict"
    assert db.commits == WRITE_ATTEMPTS
    assert db.rollbacks == WRITE_ATTEMPTS
