"""
Notification service: fan-out payloads, persisted status notifications
and per-user read tracking.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.core.realtime import RealtimeHub
from app.domain.events.allocations import AllocationStatus, StatusChange
from app.models.event import Event
from app.models.notification import Notification, NotificationRead
from app.models.user import User

logger = get_logger("services.notifications")

STATUS_NOTIFICATION_TITLE = "Status Updated"


def _now_ms() -> int:
    return int(time.time() * 1000)


class NotificationService:
    # ── Payloads ──

    def status_update_payload(self, event: Event, change: StatusChange, *, acting_department: str) -> dict[str, Any]:
        allocation = change.allocation
        return {
            "event_id": event.id,
            "event_title": event.event_title,
            "requestor_id": event.created_by,
            "department_name": acting_department,
            "requirement_id": allocation.id,
            "requirement_name": allocation.name,
            "old_status": change.old_status.value,
            "new_status": change.new_status.value,
            "department_notes": allocation.department_notes or "",
            "decline_reason": allocation.decline_reason if change.new_status == AllocationStatus.DECLINED else None,
            "type": "status_update",
            "notification_type": "status_update",
        }

    def event_status_payload(self, event: Event, *, status: str, admin_name: str) -> dict[str, Any]:
        return {
            "type": "event_status_update",
            "event_id": event.id,
            "event_title": event.event_title,
            "event_status": status,
            "status": status,
            "admin_name": admin_name,
            "updated_by": admin_name,
            "reason": event.reason,
            "message": f'Your event "{event.event_title}" has been {status} by {admin_name}',
            "timestamp": _now_ms(),
        }

    # ── Persistence ──

    async def persist_status_notification(
        self,
        db: AsyncSession,
        *,
        event: Event,
        change: StatusChange,
        acting_department: str,
    ) -> Notification | None:
        """Store one status notification for the requestor. Failures are logged, not raised.

        The insert runs inside a savepoint, so a failed write never rolls back
        or expires objects the caller already committed.
        """
        allocation = change.allocation
        event_id, recipient_id = event.id, event.created_by
        notification = Notification(
            id=f"status-{event_id}-{allocation.id}-{_now_ms()}",
            user_id=recipient_id,
            title=STATUS_NOTIFICATION_TITLE,
            message=(
                f'"{allocation.name}" status: "{change.new_status.value}" by {acting_department} '
                f'for event "{event.event_title}"'
            ),
            type="status",
            category="status",
            event_id=event_id,
            requirement_id=allocation.id,
            department_name=acting_department,
            old_status=change.old_status.value,
            new_status=change.new_status.value,
            department_notes=allocation.department_notes or "",
        )
        notification_id = notification.id
        try:
            async with db.begin_nested():
                db.add(notification)
                await db.flush()
            await db.commit()
        except SQLAlchemyError as exc:
            logger.warning(
                "notification_persist_failed",
                event_id=event_id,
                requirement_id=allocation.id,
                notification_id=notification_id,
                error=exc.__class__.__name__,
            )
            return None
        logger.info("notification_persisted", notification_id=notification_id, user_id=recipient_id)
        return notification

    # ── Feed ──

    async def list_feed(
        self,
        db: AsyncSession,
        *,
        user: User,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        read_ids = set(await self.read_notification_ids(db, user=user))
        rows = await db.execute(
            select(Notification)
            .where(Notification.user_id == user.id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        feed = []
        for item in rows.scalars().all():
            is_read = item.id in read_ids
            if unread_only and is_read:
                continue
            feed.append(
                {
                    "id": item.id,
                    "title": item.title,
                    "message": item.message,
                    "type": item.type,
                    "category": item.category,
                    "event_id": item.event_id,
                    "requirement_id": item.requirement_id,
                    "department_name": item.department_name,
                    "old_status": item.old_status,
                    "new_status": item.new_status,
                    "department_notes": item.department_notes,
                    "created_at": item.created_at,
                    "read": is_read,
                }
            )
        return feed

    async def read_notification_ids(self, db: AsyncSession, *, user: User) -> list[str]:
        rows = await db.execute(
            select(NotificationRead.notification_id)
            .where(NotificationRead.user_id == user.id)
            .order_by(NotificationRead.read_at.asc(), NotificationRead.id.asc())
        )
        return [row[0] for row in rows.all()]

    async def mark_read(
        self,
        db: AsyncSession,
        *,
        user: User,
        notification_id: str,
        event_id: int | None = None,
        notification_type: str | None = None,
        category: str | None = None,
    ) -> tuple[NotificationRead, bool]:
        """Idempotent. Returns the read marker and whether it was created now."""
        existing = await self._find_read(db, user_id=user.id, notification_id=notification_id)
        if existing is not None:
            return existing, False

        marker = NotificationRead(
            user_id=user.id,
            notification_id=notification_id,
            event_id=event_id,
            notification_type=notification_type,
            category=category,
            read_at=datetime.now(timezone.utc),
        )
        try:
            async with db.begin_nested():
                db.add(marker)
                await db.flush()
        except IntegrityError:
            # Another request marked it between the lookup and the insert.
            existing = await self._find_read(db, user_id=user.id, notification_id=notification_id)
            if existing is None:
                raise
            return existing, False
        return marker, True

    async def mark_many_read(
        self,
        db: AsyncSession,
        *,
        user: User,
        items: list[dict[str, Any]],
    ) -> list[NotificationRead]:
        created: list[NotificationRead] = []
        for item in items:
            marker, was_created = await self.mark_read(
                db,
                user=user,
                notification_id=item["notification_id"],
                event_id=item.get("event_id"),
                notification_type=item.get("notification_type"),
                category=item.get("category"),
            )
            if was_created:
                created.append(marker)
        return created

    async def stats(self, db: AsyncSession, *, user: User) -> dict[str, Any]:
        total = int(
            (await db.execute(select(func.count(Notification.id)).where(Notification.user_id == user.id))).scalar_one()
            or 0
        )
        unread = int(
            (
                await db.execute(
                    select(func.count(Notification.id)).where(
                        Notification.user_id == user.id,
                        Notification.id.not_in(
                            select(NotificationRead.notification_id).where(NotificationRead.user_id == user.id)
                        ),
                    )
                )
            ).scalar_one()
            or 0
        )
        by_type_rows = await db.execute(
            select(NotificationRead.notification_type, func.count(NotificationRead.id))
            .where(NotificationRead.user_id == user.id)
            .group_by(NotificationRead.notification_type)
        )
        read_by_type = [{"type": row[0], "count": int(row[1])} for row in by_type_rows.all()]
        return {
            "total": total,
            "unread": unread,
            "total_read": sum(item["count"] for item in read_by_type),
            "read_by_type": read_by_type,
        }

    async def emit_read(self, hub: RealtimeHub, *, user: User, markers: list[NotificationRead]) -> None:
        for marker in markers:
            await hub.emit_to_user(
                user.id,
                "notification-read",
                {
                    "user_id": user.id,
                    "notification_id": marker.notification_id,
                    "event_id": marker.event_id,
                    "read_at": marker.read_at,
                },
            )

    async def _find_read(self, db: AsyncSession, *, user_id: int, notification_id: str) -> NotificationRead | None:
        result = await db.execute(
            select(NotificationRead).where(
                NotificationRead.user_id == user_id,
                NotificationRead.notification_id == notification_id,
            )
        )
        return result.scalar_one_or_none()


notification_service = NotificationService()
