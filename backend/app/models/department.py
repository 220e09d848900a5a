"""
PGB Event Scheduler - Department Catalog Models
===============================================
Departments and the reusable requirement definitions they offer.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from app.core.database import Base


class RequirementType(str, enum.Enum):
    physical = "physical"
    service = "service"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Department(Base):
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), unique=True, nullable=False, index=True)
    is_visible = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    requirements = relationship(
        "DepartmentRequirement",
        back_populates="department",
        cascade="all, delete-orphan",
        order_by="DepartmentRequirement.id",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Department {self.name}>"


class DepartmentRequirement(Base):
    __tablename__ = "department_requirements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=False)
    text = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False, default=RequirementType.physical.value)
    total_quantity = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_available = Column(Boolean, nullable=False, default=True)
    responsible_person = Column(String(120), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    department = relationship("Department", back_populates="requirements")

    __table_args__ = (
        Index("ix_department_requirements_department_text", "department_id", "text"),
    )
