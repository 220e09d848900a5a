"""
PGB Event Scheduler - Notification Models
=========================================
Append-only status notifications and per-user read markers.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint

from app.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(160), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(40), nullable=False, default="status")
    category = Column(String(40), nullable=False, default="status")
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=True)
    requirement_id = Column(String(64), nullable=True)
    department_name = Column(String(120), nullable=True)
    old_status = Column(String(40), nullable=True)
    new_status = Column(String(40), nullable=True)
    department_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_notifications_user_created_at", "user_id", "created_at"),
    )


class NotificationRead(Base):
    __tablename__ = "notification_reads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # Not a foreign key: clients also mark synthesized feed entries as read.
    notification_id = Column(String(160), nullable=False)
    event_id = Column(Integer, nullable=True)
    notification_type = Column(String(40), nullable=True)
    category = Column(String(40), nullable=True)
    read_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "notification_id", name="uq_notification_read_user"),
    )
