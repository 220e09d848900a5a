"""
PGB Event Scheduler - Message Model
===================================
One-to-one chat between two users about a single event.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from app.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageType(str, enum.Enum):
    text = "text"
    image = "image"
    file = "file"


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    receiver_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    content = Column(Text, nullable=False)
    message_type = Column(String(20), nullable=False, default=MessageType.text.value)
    # Stored-file metadata as returned by the upload helper.
    attachments = Column(JSON, nullable=False, default=list)

    is_read = Column(Boolean, nullable=False, default=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    sender = relationship("User", foreign_keys=[sender_id], lazy="selectin")
    receiver = relationship("User", foreign_keys=[receiver_id], lazy="selectin")

    __table_args__ = (
        Index("ix_messages_event_participants", "event_id", "sender_id", "receiver_id"),
        Index("ix_messages_created_at", "created_at"),
    )
