"""
PGB Event Scheduler - Availability Ledger
=========================================
Per-date overrides of catalog quantities and location capacity.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from app.core.database import Base


class LocationStatus(str, enum.Enum):
    available = "available"
    unavailable = "unavailable"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResourceAvailability(Base):
    __tablename__ = "resource_availabilities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=False)
    department_name = Column(String(120), nullable=False)
    requirement_id = Column(
        Integer,
        ForeignKey("department_requirements.id", ondelete="CASCADE"),
        nullable=False,
    )
    requirement_text = Column(String(255), nullable=False)
    date = Column(Date, nullable=False, index=True)
    is_available = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    max_capacity = Column(Integer, nullable=False, default=0)
    set_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("department_id", "requirement_id", "date", name="uq_resource_availability_day"),
    )


class LocationAvailability(Base):
    __tablename__ = "location_availabilities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, index=True)
    location_name = Column(String(255), nullable=False)
    capacity = Column(Integer, nullable=False, default=1)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=LocationStatus.available.value)
    set_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    department_name = Column(String(120), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("date", "location_name", name="uq_location_availability_day"),
    )
