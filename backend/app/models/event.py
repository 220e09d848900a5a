"""
PGB Event Scheduler - Event Model
=================================
The event request aggregate. Department requirement allocations are kept
as a JSON document on the row; ``tagged_departments`` is stored for
filtering but always rewritten together with the allocation map.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.domain.events.allocations import DepartmentRequirements
from app.domain.events.state_machine import EventStatus


class EventType(str, enum.Enum):
    simple = "simple"
    complex = "complex"


class ReportsStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"


REPORT_SLOTS = ("completion_report", "post_activity_report", "assessment_report", "feedback_form")
GOV_FILE_SLOTS = ("briefer_template", "available_for_dl", "programme")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Request details
    event_title = Column(String(255), nullable=False)
    requestor = Column(String(120), nullable=False)
    requestor_department = Column(String(120), nullable=False)
    location = Column(String(255), nullable=False)
    locations = Column(JSON, nullable=False, default=list)
    multiple_locations = Column(Boolean, nullable=False, default=False)
    participants = Column(Integer, nullable=False, default=0)
    vip = Column(Integer, nullable=False, default=0)
    vvip = Column(Integer, nullable=False, default=0)
    without_gov = Column(Boolean, nullable=False, default=False)
    description = Column(Text, nullable=True)
    event_type = Column(String(20), nullable=False, default=EventType.simple.value)
    contact_number = Column(String(20), nullable=False)
    contact_email = Column(String(255), nullable=False)

    # Schedule
    start_date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)
    end_date = Column(Date, nullable=False)
    end_time = Column(String(5), nullable=False)
    date_time_slots = Column(JSON, nullable=False, default=list)

    # Files
    attachments = Column(JSON, nullable=False, default=list)
    no_attachments = Column(Boolean, nullable=False, default=False)
    gov_files = Column(JSON, nullable=True)

    # Workflow
    status = Column(String(20), nullable=False, default=EventStatus.SUBMITTED.value, index=True)
    reason = Column(Text, nullable=True)
    department_requirements = Column(JSON, nullable=False, default=dict)
    tagged_departments = Column(JSON, nullable=False, default=list)
    submitted_at = Column(DateTime(timezone=True), nullable=True)

    # Post-event reports
    event_reports = Column(JSON, nullable=False, default=dict)
    reports_status = Column(String(20), nullable=False, default=ReportsStatus.pending.value)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    creator = relationship("User", lazy="selectin")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_events_status_start_date", "status", "start_date"),
    )

    def get_requirements(self) -> DepartmentRequirements:
        return DepartmentRequirements.from_json(self.department_requirements or {})

    def set_requirements(self, requirements: DepartmentRequirements) -> None:
        """Persist the allocation map and its derived tag list in one assignment."""
        self.department_requirements = requirements.to_json()
        self.tagged_departments = requirements.tagged_departments

    def __repr__(self):
        return f"<Event {self.id} {self.event_title!r} [{self.status}]>"
