from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.models.message import Message, MessageType

MAX_MESSAGE_LENGTH = 2000


class MessageSendRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    event_id: int
    receiver_id: int
    content: str = Field(..., max_length=MAX_MESSAGE_LENGTH)
    message_type: MessageType = MessageType.text

    @field_validator("content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        clean = value.strip()
        if not clean:
            raise ValueError("Message content cannot be empty")
        return clean


class MessageParticipant(BaseModel):
    id: int
    username: str
    email: str
    department: str


class MessageResponse(BaseModel):
    id: int
    event_id: int
    sender: MessageParticipant
    receiver: MessageParticipant
    content: str
    message_type: str
    attachments: list[dict[str, Any]] = Field(default_factory=list)
    is_read: bool
    created_at: datetime | None = None


def _participant(user) -> MessageParticipant:
    return MessageParticipant(id=user.id, username=user.username, email=user.email, department=user.department)


def message_to_response(message: Message) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        event_id=message.event_id,
        sender=_participant(message.sender),
        receiver=_participant(message.receiver),
        content=message.content,
        message_type=message.message_type,
        attachments=list(message.attachments or []),
        is_read=bool(message.is_read),
        created_at=message.created_at,
    )
