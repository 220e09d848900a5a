"""Event chat between requestors, department members and admins."""

from __future__ import annotations

import math

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.realtime import get_realtime
from app.api.envelope import success_envelope
from app.api.routes.users import get_current_user
from app.api.uploads import form_fields, form_files, store_uploads
from app.core.config import get_settings
from app.core.database import get_db
from app.core.logging import get_logger
from app.core.realtime import RealtimeHub
from app.models.user import User
from app.schemas.messages import MAX_MESSAGE_LENGTH, MessageSendRequest, message_to_response
from app.services.file_storage import MESSAGES_CATEGORY, file_storage
from app.services.message_service import attachment_caption, attachment_message_type, message_service

router = APIRouter(prefix="/messages", tags=["Messages"])
logger = get_logger("api.messages")
settings = get_settings()


def _serialize(message) -> dict:
    return message_to_response(message).model_dump(mode="json")


def _int_field(fields: dict, key: str, label: str) -> int:
    try:
        return int(fields[key])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{label} is required")


@router.get("/conversation/{event_id}/{user_id}")
async def get_conversation(
    event_id: int,
    user_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    messages, total = await message_service.list_conversation(
        db,
        actor=current_user,
        event_id=event_id,
        other_user_id=user_id,
        page=page,
        limit=limit,
    )
    return success_envelope(
        [_serialize(item) for item in messages],
        meta={
            "pagination": {
                "current": page,
                "pages": math.ceil(total / limit),
                "total": total,
                "limit": limit,
            }
        },
    )


@router.post("/send", status_code=status.HTTP_201_CREATED)
async def send_message(
    payload: MessageSendRequest,
    db: AsyncSession = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
    current_user: User = Depends(get_current_user),
):
    message = await message_service.send(
        db,
        actor=current_user,
        hub=hub,
        event_id=payload.event_id,
        receiver_id=payload.receiver_id,
        content=payload.content,
        message_type=payload.message_type,
    )
    return success_envelope(_serialize(message), message="Message sent successfully", status_code=201)


@router.post("/send-file", status_code=status.HTTP_201_CREATED)
async def send_file_message(
    request: Request,
    db: AsyncSession = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
    current_user: User = Depends(get_current_user),
):
    form = await request.form()
    fields = form_fields(form)
    event_id = _int_field(fields, "eventId", "Event ID")
    receiver_id = _int_field(fields, "receiverId", "Receiver ID")
    uploads = form_files(form, "file")[:1]
    if not uploads:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File is required")
    content = (fields.get("content") or "").strip()
    if len(content) > MAX_MESSAGE_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters",
        )

    [meta] = await store_uploads(
        uploads,
        category=MESSAGES_CATEGORY,
        field="file",
        max_bytes=settings.upload_max_message_mb * 1024 * 1024,
        allowed_extensions=settings.message_extensions_set,
    )
    message_type = attachment_message_type(meta["mimetype"])
    attachment = {**meta, "file_url": f"/api/messages/file/{meta['filename']}"}
    try:
        message = await message_service.send(
            db,
            actor=current_user,
            hub=hub,
            event_id=event_id,
            receiver_id=receiver_id,
            content=content or attachment_caption(meta["original_name"], message_type),
            message_type=message_type,
            attachments=[attachment],
        )
    except Exception:
        file_storage.remove(MESSAGES_CATEGORY, meta["filename"])
        raise

    logger.info("message_file_stored", message_id=message.id, stored_name=meta["filename"], size=meta["size"])
    return success_envelope(_serialize(message), message="File message sent successfully", status_code=201)


@router.get("/unread-count/{event_id}/{user_id}")
async def unread_count(
    event_id: int,
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    count = await message_service.unread_count(db, actor=current_user, event_id=event_id, sender_id=user_id)
    return success_envelope({"unread_count": count})


@router.put("/mark-conversation-read/{event_id}/{user_id}")
async def mark_conversation_read(
    event_id: int,
    user_id: int,
    db: AsyncSession = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
    current_user: User = Depends(get_current_user),
):
    marked = await message_service.mark_conversation_read(
        db,
        actor=current_user,
        hub=hub,
        event_id=event_id,
        sender_id=user_id,
    )
    return success_envelope({"marked_count": marked}, message="Conversation marked as read")


@router.get("/file/{filename}")
async def get_message_file(
    filename: str,
    download: bool = False,
    current_user: User = Depends(get_current_user),
):
    try:
        path = file_storage.resolve(MESSAGES_CATEGORY, filename)
    except FileNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    if download:
        return FileResponse(path, filename=filename)
    return FileResponse(path)


@router.put("/{message_id}/read")
async def mark_message_read(
    message_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    message = await message_service.mark_read(db, actor=current_user, message_id=message_id)
    return success_envelope(_serialize(message), message="Message marked as read")


@router.delete("/{message_id}")
async def delete_message(
    message_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await message_service.delete(db, actor=current_user, message_id=message_id)
    return success_envelope(None, message="Message deleted successfully")
