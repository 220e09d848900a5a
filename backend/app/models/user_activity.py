"""
PGB Event Scheduler - User Activity Log Model
=============================================
Tracks account management and event scheduling activity for admin audit.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from app.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserActivityLog(Base):
    __tablename__ = "user_activity_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_username = Column(String(50), nullable=True, index=True)
    actor_department = Column(String(120), nullable=True)
    action = Column(String(80), nullable=False, index=True)
    description = Column(Text, nullable=True)
    entity_type = Column(String(40), nullable=True)
    entity_id = Column(String(64), nullable=True)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)

    __table_args__ = (
        Index("ix_user_activity_entity", "entity_type", "entity_id"),
    )
