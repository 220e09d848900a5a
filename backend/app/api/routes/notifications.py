"""Notification feed and per-user read markers."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.realtime import get_realtime
from app.api.envelope import success_envelope
from app.api.routes.users import get_current_user
from app.core.database import get_db
from app.core.realtime import RealtimeHub
from app.models.user import User
from app.schemas.notifications import MarkManyReadRequest, MarkReadRequest
from app.services.notification_service import notification_service

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/")
async def list_notifications(
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    feed = await notification_service.list_feed(db, user=current_user, unread_only=unread_only, limit=limit)
    return success_envelope(feed, meta={"count": len(feed)})


@router.get("/read-status")
async def read_status(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return success_envelope(await notification_service.read_notification_ids(db, user=current_user))


@router.post("/mark-read")
async def mark_read(
    payload: MarkReadRequest,
    db: AsyncSession = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
    current_user: User = Depends(get_current_user),
):
    marker, created = await notification_service.mark_read(
        db,
        user=current_user,
        notification_id=payload.notification_id,
        event_id=payload.event_id,
        notification_type=payload.notification_type,
        category=payload.category,
    )
    await db.commit()
    if created:
        await notification_service.emit_read(hub, user=current_user, markers=[marker])
    return success_envelope(
        {"notification_id": marker.notification_id, "read_at": marker.read_at},
        message="Notification marked as read",
    )


@router.post("/mark-multiple-read")
async def mark_multiple_read(
    payload: MarkManyReadRequest,
    db: AsyncSession = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
    current_user: User = Depends(get_current_user),
):
    created = await notification_service.mark_many_read(
        db,
        user=current_user,
        items=[item.model_dump() for item in payload.items],
    )
    await db.commit()
    await notification_service.emit_read(hub, user=current_user, markers=created)
    return success_envelope(
        {"marked": len(created), "requested": len(payload.items)},
        message=f"{len(created)} notifications marked as read",
    )


@router.get("/stats")
async def notification_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return success_envelope(await notification_service.stats(db, user=current_user))
