import asyncio
from types import SimpleNamespace

import pytest

from app.domain.events.allocations import AllocationStatus, PhysicalAllocation, StatusChange
from app.models.notification import Notification
from app.services.notification_service import NotificationService, notification_service


def _notification(user_id: int, notification_id: str, **extra) -> Notification:
    return Notification(
        id=notification_id,
        user_id=user_id,
        title="Status Updated",
        message="Monobloc Chairs status: approved",
        type=extra.pop("type", "status"),
        category="status",
        **extra,
    )


def test_status_update_payload_carries_decline_reason_only_when_declined():
    service = NotificationService()
    event = SimpleNamespace(id=9, event_title="Budget Forum", created_by=3)
    allocation = PhysicalAllocation(id="11", name="Monobloc Chairs", decline_reason="Booked", department_notes="")

    declined = service.status_update_payload(
        event,
        StatusChange(
            department="GSO", allocation=allocation, old_status=AllocationStatus.PENDING, new_status=AllocationStatus.DECLINED
        ),
        acting_department="GSO",
    )
    confirmed = service.status_update_payload(
        event,
        StatusChange(
            department="GSO", allocation=allocation, old_status=AllocationStatus.PENDING, new_status=AllocationStatus.CONFIRMED
        ),
        acting_department="GSO",
    )

    assert declined["decline_reason"] == "Booked"
    assert declined["requestor_id"] == 3
    assert confirmed["decline_reason"] is None
    assert confirmed["type"] == confirmed["notification_type"] == "status_update"


def test_event_status_payload_message_names_admin():
    event = SimpleNamespace(id=4, event_title="Job Fair", reason=None)

    payload = NotificationService().event_status_payload(event, status="approved", admin_name="admin")

    assert payload["message"] == 'Your event "Job Fair" has been approved by admin'
    assert payload["status"] == payload["event_status"] == "approved"


@pytest.mark.asyncio
async def test_mark_read_is_idempotent(db, world) -> None:
    user = world["requestor"]

    first, created = await notification_service.mark_read(db, user=user, notification_id="status-1-11-1", event_id=1)
    await db.commit()
    again, created_again = await notification_service.mark_read(db, user=user, notification_id="status-1-11-1")
    await db.commit()

    assert created is True
    assert created_again is False
    assert again.id == first.id
    assert await notification_service.read_notification_ids(db, user=user) == ["status-1-11-1"]


@pytest.mark.asyncio
async def test_mark_many_read_returns_only_new_markers(db, world) -> None:
    user = world["requestor"]
    await notification_service.mark_read(db, user=user, notification_id="a")

    created = await notification_service.mark_many_read(
        db,
        user=user,
        items=[
            {"notification_id": "a"},
            {"notification_id": "b", "notification_type": "status"},
            {"notification_id": "c", "notification_type": "event_status_update"},
        ],
    )
    await db.commit()

    assert [marker.notification_id for marker in created] == ["b", "c"]
    assert sorted(await notification_service.read_notification_ids(db, user=user)) == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_feed_and_stats_reflect_read_markers(db, world) -> None:
    user = world["requestor"]
    other = world["gso_member"]
    db.add_all(
        [
            _notification(user.id, "n-1"),
            _notification(user.id, "n-2"),
            _notification(other.id, "n-3"),
        ]
    )
    await db.commit()
    await notification_service.mark_read(db, user=user, notification_id="n-1", notification_type="status")
    await db.commit()

    feed = await notification_service.list_feed(db, user=user)
    unread = await notification_service.list_feed(db, user=user, unread_only=True)
    stats = await notification_service.stats(db, user=user)

    assert {item["id"]: item["read"] for item in feed} == {"n-1": True, "n-2": False}
    assert [item["id"] for item in unread] == ["n-2"]
    assert stats["total"] == 2
    assert stats["unread"] == 1
    assert stats["total_read"] == 1
    assert stats["read_by_type"] == [{"type": "status", "count": 1}]


def test_emit_read_targets_the_readers_own_room(hub):
    user = SimpleNamespace(id=7)
    markers = [SimpleNamespace(notification_id="n-1", event_id=2, read_at=None)]

    asyncio.run(notification_service.emit_read(hub, user=user, markers=markers))

    assert hub.sent == [
        ("user", 7, "notification-read", {"user_id": 7, "notification_id": "n-1", "event_id": 2, "read_at": None})
    ]
