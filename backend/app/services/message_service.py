"""
Message service: one-to-one chat between the people working on an event.

A conversation is the pair of users plus the event; its real-time room is
``conversation-{event}-{low user id}-{high user id}`` so both sides join
the same room regardless of who opened it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.core.realtime import RealtimeHub, conversation_room
from app.domain.events.allocations import normalize_department
from app.models.event import Event
from app.models.message import Message, MessageType
from app.models.user import User
from app.schemas.messages import message_to_response
from app.services.event_workflow_service import event_workflow_service
from app.services.side_effects import PostCommitHooks

logger = get_logger("services.messages")

FILE_PREVIEW_LENGTH = 30


def conversation_id(event_id: int, first_user_id: int, second_user_id: int) -> str:
    low, high = sorted((int(first_user_id), int(second_user_id)))
    return f"{event_id}-{low}-{high}"


def conversation_members(value: str) -> tuple[int, int, int] | None:
    """Split a conversation id into (event, user, user); None when malformed."""
    parts = str(value).split("-")
    if len(parts) != 3 or not all(part.isdigit() for part in parts):
        return None
    event_id, first, second = (int(part) for part in parts)
    return event_id, first, second


def is_involved(event: Event, user: User) -> bool:
    if user.is_admin or event.created_by == user.id:
        return True
    return normalize_department(user.department) in (event.tagged_departments or [])


def attachment_message_type(mimetype: str | None) -> MessageType:
    return MessageType.image if (mimetype or "").startswith("image/") else MessageType.file


def attachment_caption(original_name: str, message_type: MessageType) -> str:
    if message_type == MessageType.image:
        return "Image"
    if len(original_name) > FILE_PREVIEW_LENGTH:
        original_name = original_name[: FILE_PREVIEW_LENGTH - 3] + "..."
    return f"Attachment: {original_name}"


class MessageService:
    async def _conversation_parties(
        self,
        db: AsyncSession,
        *,
        actor: User,
        event_id: int,
        other_user_id: int,
    ) -> tuple[Event, User]:
        event = await event_workflow_service.get_event(db, event_id)
        if other_user_id == actor.id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot message yourself")
        other = await db.get(User, other_user_id)
        if other is None or not other.is_active:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Receiver not found")
        if not is_involved(event, actor) or not is_involved(event, other):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Both users must be involved in the event",
            )
        return event, other

    async def send(
        self,
        db: AsyncSession,
        *,
        actor: User,
        hub: RealtimeHub | None,
        event_id: int,
        receiver_id: int,
        content: str,
        message_type: MessageType = MessageType.text,
        attachments: list[dict[str, Any]] | None = None,
    ) -> Message:
        await self._conversation_parties(db, actor=actor, event_id=event_id, other_user_id=receiver_id)
        message = Message(
            event_id=event_id,
            sender_id=actor.id,
            receiver_id=receiver_id,
            content=content.strip(),
            message_type=message_type.value,
            attachments=attachments or [],
            is_read=False,
            created_at=datetime.now(timezone.utc),
        )
        db.add(message)
        await db.commit()
        await db.refresh(message, attribute_names=["sender", "receiver"])
        logger.info(
            "message_sent",
            message_id=message.id,
            event_id=event_id,
            sender_id=actor.id,
            receiver_id=receiver_id,
            message_type=message.message_type,
            attachments=len(message.attachments or []),
        )

        if hub is not None:
            room = conversation_id(event_id, actor.id, receiver_id)
            payload = {
                "message": message_to_response(message).model_dump(mode="json"),
                "conversation_id": room,
            }
            hooks = PostCommitHooks()
            hooks.add("receiver_message", lambda: hub.emit_to_user(receiver_id, "new-message", payload))
            hooks.add("conversation_message", lambda: hub.emit(conversation_room(room), "new-message", payload))
            await hooks.run()
        return message

    async def list_conversation(
        self,
        db: AsyncSession,
        *,
        actor: User,
        event_id: int,
        other_user_id: int,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[Message], int]:
        """One page of the conversation, oldest first, plus the total count."""
        await self._conversation_parties(db, actor=actor, event_id=event_id, other_user_id=other_user_id)
        between = (
            Message.event_id == event_id,
            Message.is_deleted.is_(False),
            or_(
                (Message.sender_id == actor.id) & (Message.receiver_id == other_user_id),
                (Message.sender_id == other_user_id) & (Message.receiver_id == actor.id),
            ),
        )
        total = int((await db.execute(select(func.count(Message.id)).where(*between))).scalar_one() or 0)
        rows = await db.execute(
            select(Message)
            .where(*between)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(reversed(rows.scalars().all())), total

    async def unread_count(self, db: AsyncSession, *, actor: User, event_id: int, sender_id: int) -> int:
        result = await db.execute(
            select(func.count(Message.id)).where(
                Message.event_id == event_id,
                Message.sender_id == sender_id,
                Message.receiver_id == actor.id,
                Message.is_read.is_(False),
                Message.is_deleted.is_(False),
            )
        )
        return int(result.scalar_one() or 0)

    async def mark_conversation_read(
        self,
        db: AsyncSession,
        *,
        actor: User,
        hub: RealtimeHub | None,
        event_id: int,
        sender_id: int,
    ) -> int:
        unread = await db.execute(
            select(Message.id).where(
                Message.event_id == event_id,
                Message.sender_id == sender_id,
                Message.receiver_id == actor.id,
                Message.is_read.is_(False),
                Message.is_deleted.is_(False),
            )
        )
        message_ids = list(unread.scalars().all())
        if not message_ids:
            return 0
        await db.execute(update(Message).where(Message.id.in_(message_ids)).values(is_read=True))
        await db.commit()
        if hub is not None:
            payload = {
                "event_id": event_id,
                "reader_id": actor.id,
                "conversation_id": conversation_id(event_id, actor.id, sender_id),
            }
            hooks = PostCommitHooks()
            hooks.add("messages_read", lambda: hub.emit_to_user(sender_id, "messages-read", payload))
            await hooks.run()
        return len(message_ids)

    async def mark_read(self, db: AsyncSession, *, actor: User, message_id: int) -> Message:
        message = await self._owned(db, message_id, receiver_id=actor.id)
        if message is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Message not found or you are not authorized to mark it as read",
            )
        message.is_read = True
        await db.commit()
        return message

    async def delete(self, db: AsyncSession, *, actor: User, message_id: int) -> Message:
        message = await self._owned(db, message_id, sender_id=actor.id)
        if message is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Message not found or you are not authorized to delete it",
            )
        message.is_deleted = True
        message.deleted_at = datetime.now(timezone.utc)
        await db.commit()
        logger.info("message_deleted", message_id=message_id, sender_id=actor.id)
        return message

    async def _owned(
        self,
        db: AsyncSession,
        message_id: int,
        *,
        sender_id: int | None = None,
        receiver_id: int | None = None,
    ) -> Message | None:
        query = select(Message).where(Message.id == message_id, Message.is_deleted.is_(False))
        if sender_id is not None:
            query = query.where(Message.sender_id == sender_id)
        if receiver_id is not None:
            query = query.where(Message.receiver_id == receiver_id)
        return (await db.execute(query)).scalar_one_or_none()


message_service = MessageService()
