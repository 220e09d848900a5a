"""
Event request API.
Submission, admin review, requestor edits and department actions on
requirement allocations.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.rbac import require_admin
from app.api.deps.realtime import get_realtime
from app.api.envelope import success_envelope
from app.api.routes.users import get_current_user
from app.api.uploads import form_fields, form_files, store_uploads
from app.core.config import get_settings
from app.core.database import get_db
from app.core.realtime import RealtimeHub
from app.domain.events.allocations import normalize_department
from app.domain.events.state_machine import EventStatus
from app.models.event import Event
from app.models.user import User
from app.repositories.event_repository import event_repository
from app.schemas.events import (
    AddDepartmentRequest,
    EventDetailsUpdateRequest,
    EventRescheduleRequest,
    EventStatusUpdateRequest,
    EventSubmitRequest,
    RequirementDepartmentsRequest,
    RequirementNotesRequest,
    RequirementReplyRequest,
    RequirementStatusUpdateRequest,
    event_to_response,
)
from app.services.availability_service import availability_service
from app.services.event_workflow_service import event_workflow_service
from app.services.file_storage import EVENTS_CATEGORY, file_storage

router = APIRouter(prefix="/events", tags=["Events"])
settings = get_settings()

# Form field name -> stored gov-file slot.
GOV_FILE_FIELDS = {
    "brieferTemplate": "briefer_template",
    "availableForDL": "available_for_dl",
    "programme": "programme",
}
MAX_ATTACHMENTS = 10


def _serialize(event: Event):
    return event_to_response(event).model_dump(mode="json")


async def _serialize_with_availability(db: AsyncSession, events: list[Event]) -> list[dict]:
    refreshed = await availability_service.recompute_totals(db, events)
    return [event_to_response(item, refreshed.get(item.id)).model_dump(mode="json") for item in events]


async def _store_event_files(form, *, include_gov: bool = True) -> tuple[list[dict], dict]:
    max_bytes = settings.upload_max_attachment_mb * 1024 * 1024
    attachments = form_files(form, "attachments")
    if len(attachments) > MAX_ATTACHMENTS:
        raise HTTPException(status_code=400, detail=f"At most {MAX_ATTACHMENTS} attachments are allowed")
    stored = await store_uploads(
        attachments,
        category=EVENTS_CATEGORY,
        field="attachments",
        max_bytes=max_bytes,
        allowed_extensions=settings.attachment_extensions_set,
    )
    gov_files: dict = {}
    for field, slot in GOV_FILE_FIELDS.items():
        uploads = form_files(form, field)[:1] if include_gov else []
        if uploads:
            [meta] = await store_uploads(
                uploads,
                category=EVENTS_CATEGORY,
                field=field,
                max_bytes=max_bytes,
                allowed_extensions=settings.attachment_extensions_set,
            )
            gov_files[slot] = meta
    return stored, gov_files


def _discard_files(attachments: list[dict], gov_files: dict) -> None:
    for meta in [*attachments, *gov_files.values()]:
        file_storage.remove(EVENTS_CATEGORY, meta["filename"])


def _validate(model, data: dict):
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False))


# ── Submission & listing ──

@router.post("/", status_code=status.HTTP_201_CREATED)
async def submit_event(
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    form = await request.form()
    payload = _validate(EventSubmitRequest, form_fields(form))
    attachments, gov_files = await _store_event_files(form, include_gov=payload.without_gov)
    try:
        event = await event_workflow_service.submit_event(
            db,
            actor=current_user,
            payload=payload,
            attachments=attachments,
            gov_files=gov_files,
        )
    except Exception:
        _discard_files(attachments, gov_files)
        raise
    return success_envelope(_serialize(event), message="Event created successfully", status_code=201)


@router.get("/")
async def list_events(
    status_filter: EventStatus | None = Query(default=None, alias="status"),
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    events = await event_repository.list_all(db, status=status_filter.value if status_filter else None)
    return success_envelope(await _serialize_with_availability(db, events))


@router.get("/my")
async def list_my_events(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    events = await event_repository.list_for_creator(db, current_user.id)
    return success_envelope(await _serialize_with_availability(db, events))


@router.get("/tagged")
async def list_tagged_events(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    department = normalize_department(current_user.department)
    if not department:
        raise HTTPException(status_code=400, detail="User department not found")
    events = await event_repository.list_tagged(db, department, status=EventStatus.APPROVED)
    return success_envelope(await _serialize_with_availability(db, events))


# ── Files ──

def _file_response(filename: str, *, download: bool) -> FileResponse:
    try:
        path = file_storage.resolve(EVENTS_CATEGORY, filename)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="File not found")
    if download:
        return FileResponse(path, filename=filename)
    return FileResponse(path)


@router.get("/attachment/{filename}")
async def get_attachment(filename: str, download: bool = False):
    return _file_response(filename, download=download)


@router.get("/govfile/{filename}")
async def get_gov_file(filename: str, download: bool = False):
    return _file_response(filename, download=download)


@router.get("/{event_id}")
async def get_event(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(get_current_user),
):
    event = await event_workflow_service.get_event(db, event_id)
    [data] = await _serialize_with_availability(db, [event])
    return success_envelope(data)


# ── Admin review ──

@router.patch("/{event_id}/status")
async def change_event_status(
    event_id: int,
    payload: EventStatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
    current_user: User = Depends(require_admin),
):
    event = await event_workflow_service.change_status(
        db,
        actor=current_user,
        hub=hub,
        event_id=event_id,
        target=payload.status,
        reason=payload.reason,
    )
    return success_envelope(_serialize(event), message=f"Event {payload.status.value} successfully")


# ── Requestor edits ──

@router.patch("/{event_id}/details")
async def update_event_details(
    event_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
    current_user: User = Depends(get_current_user),
):
    form = await request.form()
    payload = _validate(EventDetailsUpdateRequest, form_fields(form))
    attachments, gov_files = await _store_event_files(form)
    try:
        event = await event_workflow_service.update_details(
            db,
            actor=current_user,
            hub=hub,
            event_id=event_id,
            payload=payload,
            new_attachments=attachments,
            gov_files=gov_files,
        )
    except Exception:
        _discard_files(attachments, gov_files)
        raise
    return success_envelope(_serialize(event), message="Event details updated successfully")


@router.put("/{event_id}")
async def reschedule_event(
    event_id: int,
    payload: EventRescheduleRequest,
    db: AsyncSession = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
    current_user: User = Depends(get_current_user),
):
    event = await event_workflow_service.reschedule(
        db,
        actor=current_user,
        hub=hub,
        event_id=event_id,
        payload=payload,
    )
    return success_envelope(_serialize(event), message="Event updated successfully")


@router.delete("/{event_id}")
async def delete_event(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
    current_user: User = Depends(get_current_user),
):
    await event_workflow_service.delete_event(db, actor=current_user, hub=hub, event_id=event_id)
    return success_envelope({"id": event_id}, message="Event deleted successfully")


# ── Requirement allocations ──

@router.patch("/{event_id}/requirements/{requirement_id}/status")
async def update_requirement_status(
    event_id: int,
    requirement_id: str,
    payload: RequirementStatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
    current_user: User = Depends(get_current_user),
):
    event = await event_workflow_service.update_requirement_status(
        db,
        actor=current_user,
        hub=hub,
        event_id=event_id,
        requirement_id=requirement_id,
        new_status=payload.status,
        decline_reason=payload.decline_reason,
    )
    return success_envelope(_serialize(event), message="Requirement status updated successfully")


@router.patch("/{event_id}/requirements/{requirement_id}/notes")
async def update_requirement_notes(
    event_id: int,
    requirement_id: str,
    payload: RequirementNotesRequest,
    db: AsyncSession = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
    current_user: User = Depends(get_current_user),
):
    event = await event_workflow_service.update_requirement_notes(
        db,
        actor=current_user,
        hub=hub,
        event_id=event_id,
        requirement_id=requirement_id,
        department_notes=payload.department_notes,
    )
    return success_envelope(_serialize(event), message="Department notes updated successfully")


@router.patch("/{event_id}/requirements/{requirement_id}/departments")
async def retag_requirement(
    event_id: int,
    requirement_id: str,
    payload: RequirementDepartmentsRequest,
    db: AsyncSession = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
    current_user: User = Depends(get_current_user),
):
    event = await event_workflow_service.retag_requirement(
        db,
        actor=current_user,
        hub=hub,
        event_id=event_id,
        requirement_id=requirement_id,
        departments=payload.departments,
    )
    return success_envelope(_serialize(event), message="Requirement departments updated successfully")


@router.post("/{event_id}/requirements/{requirement_id}/replies", status_code=status.HTTP_201_CREATED)
async def reply_to_requirement(
    event_id: int,
    requirement_id: str,
    payload: RequirementReplyRequest,
    db: AsyncSession = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
    current_user: User = Depends(get_current_user),
):
    event = await event_workflow_service.reply_to_requirement(
        db,
        actor=current_user,
        hub=hub,
        event_id=event_id,
        requirement_id=requirement_id,
        message=payload.message,
        requested_role=payload.role,
    )
    return success_envelope(_serialize(event), message="Reply added successfully", status_code=201)


@router.post("/{event_id}/add-department")
async def add_department(
    event_id: int,
    payload: AddDepartmentRequest,
    db: AsyncSession = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
    current_user: User = Depends(get_current_user),
):
    event = await event_workflow_service.add_department(
        db,
        actor=current_user,
        hub=hub,
        event_id=event_id,
        department_name=payload.department_name,
        entries=payload.requirements,
    )
    return success_envelope(_serialize(event), message="Department added successfully")
