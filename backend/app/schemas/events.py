from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.domain.events.allocations import AllocationStatus, DepartmentRequirements, ReplyRole
from app.domain.events.schedule import parse_hhmm, parse_slots
from app.domain.events.state_machine import EventStatus
from app.models.event import Event

CONTACT_NUMBER_PATTERN = r"^09\d{9}$"
HHMM_PATTERN = r"^([01]?\d|2[0-3]):[0-5]\d$"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TimeSlotPayload(_CamelModel):
    start_date: date
    start_time: str = Field(..., pattern=HHMM_PATTERN)
    end_date: date
    end_time: str = Field(..., pattern=HHMM_PATTERN)


def _check_window(start_date: date, start_time: str, end_date: date, end_time: str) -> None:
    if (end_date, parse_hhmm(end_time)) < (start_date, parse_hhmm(start_time)):
        raise ValueError("Event must end after it starts")


class EventSubmitRequest(_CamelModel):
    event_title: str = Field(..., min_length=1, max_length=255)
    requestor: str = Field(..., min_length=1, max_length=120)
    requestor_department: str = Field(..., min_length=1, max_length=120)
    location: str = Field(..., min_length=1, max_length=255)
    locations: list[str] = Field(default_factory=list)
    multiple_locations: bool = False
    participants: int = Field(..., ge=1)
    vip: int = Field(default=0, ge=0)
    vvip: int = Field(default=0, ge=0)
    without_gov: bool = False
    description: str | None = None
    event_type: str = Field(default="simple", pattern="^(simple|complex)$")
    start_date: date
    start_time: str = Field(..., pattern=HHMM_PATTERN)
    end_date: date
    end_time: str = Field(..., pattern=HHMM_PATTERN)
    date_time_slots: list[TimeSlotPayload] = Field(default_factory=list)
    contact_number: str = Field(..., pattern=CONTACT_NUMBER_PATTERN)
    contact_email: EmailStr
    no_attachments: bool = False
    department_requirements: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)

    @field_validator("event_title", "requestor", "requestor_department", "location")
    @classmethod
    def _strip(cls, value: str) -> str:
        clean = value.strip()
        if not clean:
            raise ValueError("must not be blank")
        return clean

    @model_validator(mode="after")
    def _check_schedule(self) -> "EventSubmitRequest":
        _check_window(self.start_date, self.start_time, self.end_date, self.end_time)
        return self


class EventDetailsUpdateRequest(_CamelModel):
    event_title: str = Field(..., min_length=1, max_length=255)
    requestor: str = Field(..., min_length=1, max_length=120)
    participants: int = Field(..., ge=1)
    vip: int | None = Field(default=None, ge=0)
    vvip: int | None = Field(default=None, ge=0)
    contact_number: str = Field(..., pattern=CONTACT_NUMBER_PATTERN)
    contact_email: EmailStr
    description: str | None = None


class EventRescheduleRequest(_CamelModel):
    location: str | None = Field(default=None, min_length=1, max_length=255)
    start_date: date | None = None
    start_time: str | None = Field(default=None, pattern=HHMM_PATTERN)
    end_date: date | None = None
    end_time: str | None = Field(default=None, pattern=HHMM_PATTERN)
    date_time_slots: list[TimeSlotPayload] | None = None
    department_requirements: dict[str, list[dict[str, Any]]] | None = None


class EventStatusUpdateRequest(_CamelModel):
    status: EventStatus
    reason: str | None = Field(default=None, max_length=2000)


class RequirementStatusUpdateRequest(_CamelModel):
    status: AllocationStatus
    decline_reason: str | None = Field(default=None, max_length=2000)


class RequirementNotesRequest(_CamelModel):
    department_notes: str | None = Field(default=None, max_length=4000)


class RequirementDepartmentsRequest(_CamelModel):
    departments: list[str] = Field(..., min_length=1)


class RequirementReplyRequest(_CamelModel):
    message: str = Field(..., min_length=1, max_length=2000)
    role: ReplyRole | None = None


class AddDepartmentRequest(_CamelModel):
    department_name: str = Field(..., min_length=1, max_length=120)
    requirements: list[dict[str, Any]] = Field(..., min_length=1)


class EventCreatorSummary(BaseModel):
    id: int
    username: str
    email: str
    department: str


class EventResponse(BaseModel):
    id: int
    event_title: str
    requestor: str
    requestor_department: str
    location: str
    locations: list[str] = Field(default_factory=list)
    multiple_locations: bool
    participants: int
    vip: int
    vvip: int
    without_gov: bool
    description: str | None = None
    event_type: str
    start_date: date
    start_time: str
    end_date: date
    end_time: str
    date_time_slots: list[dict[str, str]] = Field(default_factory=list)
    contact_number: str
    contact_email: str
    attachments: list[dict[str, Any]] = Field(default_factory=list)
    no_attachments: bool
    gov_files: dict[str, Any] | None = None
    status: str
    reason: str | None = None
    tagged_departments: list[str] = Field(default_factory=list)
    department_requirements: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    event_reports: dict[str, Any] = Field(default_factory=dict)
    reports_status: str
    submitted_at: datetime | None = None
    created_by: int
    creator: EventCreatorSummary | None = None
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


def event_to_response(event: Event, requirements: DepartmentRequirements | None = None) -> EventResponse:
    """Serialize an event; ``requirements`` overrides the stored allocation map."""
    requirements = requirements if requirements is not None else event.get_requirements()
    creator = None
    if event.creator is not None:
        creator = EventCreatorSummary(
            id=event.creator.id,
            username=event.creator.username,
            email=event.creator.email,
            department=event.creator.department,
        )
    return EventResponse(
        id=event.id,
        event_title=event.event_title,
        requestor=event.requestor,
        requestor_department=event.requestor_department,
        location=event.location,
        locations=list(event.locations or []),
        multiple_locations=bool(event.multiple_locations),
        participants=event.participants,
        vip=event.vip or 0,
        vvip=event.vvip or 0,
        without_gov=bool(event.without_gov),
        description=event.description,
        event_type=event.event_type,
        start_date=event.start_date,
        start_time=event.start_time,
        end_date=event.end_date,
        end_time=event.end_time,
        date_time_slots=[slot.to_json() for slot in parse_slots(event.date_time_slots)],
        contact_number=event.contact_number,
        contact_email=event.contact_email,
        attachments=list(event.attachments or []),
        no_attachments=bool(event.no_attachments),
        gov_files=event.gov_files,
        status=event.status,
        reason=event.reason,
        tagged_departments=requirements.tagged_departments,
        department_requirements=requirements.to_json(),
        event_reports=dict(event.event_reports or {}),
        reports_status=event.reports_status,
        submitted_at=event.submitted_at,
        created_by=event.created_by,
        creator=creator,
        version=event.version,
        created_at=event.created_at,
        updated_at=event.updated_at,
    )
