"""
Event workflow service.

Owns every write to an event: submission, admin status transitions,
requestor edits, and department actions on individual requirement
allocations. Writes are guarded by the event's version counter; a stale
write is retried against a fresh read and surfaces as 409 when retries
run out. Socket fan-out and notification rows are queued as post-commit
hooks so they can never fail a committed change.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_random

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.realtime import RealtimeHub
from app.domain.events.allocations import (
    AllocationReply,
    AllocationStatus,
    DepartmentRequirements,
    ReleaseState,
    ReplyRole,
    normalize_department,
)
from app.domain.events.errors import UnknownDepartment, WorkflowError
from app.domain.events.schedule import (
    event_date_key,
    has_ended,
    local_today,
    parse_date,
    parse_hhmm,
    parse_slots,
)
from app.domain.events.state_machine import EventStatus, REASON_STATES, coerce_status, is_auto_completable
from app.models.department import Department
from app.models.event import GOV_FILE_SLOTS, REPORT_SLOTS, Event, ReportsStatus
from app.models.user import User
from app.repositories.event_repository import event_repository
from app.schemas.events import (
    EventDetailsUpdateRequest,
    EventRescheduleRequest,
    EventSubmitRequest,
    event_to_response,
)
from app.services.activity_log_service import activity_log_service
from app.services.availability_service import availability_service
from app.services.file_storage import EVENTS_CATEGORY, REPORTS_CATEGORY, file_storage
from app.services.notification_service import notification_service
from app.services.side_effects import PostCommitHooks
from app.services.state_transition_service import state_transition_service

settings = get_settings()
logger = get_logger("services.event_workflow")

T = TypeVar("T")

WRITE_ATTEMPTS = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventWorkflowService:
    # ── Loading & guarded writes ──

    async def get_event(self, db: AsyncSession, event_id: int) -> Event:
        event = await event_repository.get_by_id(db, event_id)
        if event is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
        return event

    async def _apply(
        self,
        db: AsyncSession,
        event_id: int,
        mutate: Callable[[Event], T],
        *,
        actor: User | None = None,
    ) -> tuple[Event, T]:
        """Load, mutate and commit one event under its version counter.

        ``actor`` is reloaded after a stale-write rollback so the retried
        mutation never reads expired attributes.
        """
        event: Event | None = None
        outcome: Any = None
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(WRITE_ATTEMPTS),
                retry=retry_if_exception_type(StaleDataError),
                wait=wait_random(0, 0.05),
                reraise=True,
            ):
                with attempt:
                    event = await self.get_event(db, event_id)
                    try:
                        outcome = mutate(event)
                    except (HTTPException, WorkflowError):
                        await db.rollback()
                        raise
                    try:
                        await db.commit()
                    except StaleDataError:
                        await db.rollback()
                        if actor is not None and actor in db:
                            await db.refresh(actor)
                        logger.warning(
                            "event_write_stale",
                            event_id=event_id,
                            attempt=attempt.retry_state.attempt_number,
                        )
                        raise
        except StaleDataError as exc:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={
                    "code": "event_write_conflict",
                    "message": "The event was changed by another request. Reload and retry.",
                    "event_id": event_id,
                },
            ) from exc
        return event, outcome

    async def assert_known_departments(self, db: AsyncSession, names: list[str]) -> list[str]:
        wanted = []
        for name in names:
            key = normalize_department(name)
            if key and key not in wanted:
                wanted.append(key)
        if not wanted:
            return []
        rows = await db.execute(select(Department.name).where(Department.name.in_(wanted)))
        known = {normalize_department(row[0]) for row in rows.all()}
        missing = [name for name in wanted if name not in known]
        if missing:
            raise UnknownDepartment(missing)
        return wanted

    # ── Access helpers ──

    def _assert_owner(self, event: Event, actor: User, message: str = "You can only edit your own events") -> None:
        if event.created_by != actor.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=message)

    def _assert_department_tagged(self, event: Event, actor: User) -> str:
        department = normalize_department(actor.department)
        if department not in (event.tagged_departments or []):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Your department is not tagged in this event",
            )
        return department

    def _assert_released(self, requirements: DepartmentRequirements, requirement_id: str) -> None:
        _, allocation = requirements.find(requirement_id)
        if allocation.requirements_status != ReleaseState.RELEASED:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={
                    "code": "requirement_on_hold",
                    "message": "Requirements are released to departments only after the event is approved",
                    "requirement_id": requirement_id,
                },
            )

    # ── Submission ──

    async def submit_event(
        self,
        db: AsyncSession,
        *,
        actor: User,
        payload: EventSubmitRequest,
        attachments: list[dict[str, Any]] | None = None,
        gov_files: dict[str, Any] | None = None,
    ) -> Event:
        requirements = DepartmentRequirements.from_json(payload.department_requirements)
        await self.assert_known_departments(db, requirements.tagged_departments)
        requirements.hold_all()

        event = Event(
            event_title=payload.event_title,
            requestor=payload.requestor,
            requestor_department=payload.requestor_department,
            location=payload.location,
            locations=[item.strip() for item in payload.locations if item and item.strip()],
            multiple_locations=payload.multiple_locations,
            participants=payload.participants,
            vip=payload.vip,
            vvip=payload.vvip,
            without_gov=payload.without_gov,
            description=payload.description,
            event_type=payload.event_type,
            start_date=payload.start_date,
            start_time=payload.start_time,
            end_date=payload.end_date,
            end_time=payload.end_time,
            date_time_slots=[slot.model_dump(mode="json") for slot in payload.date_time_slots],
            contact_number=payload.contact_number,
            contact_email=str(payload.contact_email),
            attachments=list(attachments or []),
            no_attachments=payload.no_attachments,
            gov_files=gov_files if payload.without_gov else None,
            status=EventStatus.SUBMITTED.value,
            submitted_at=_utcnow(),
            event_reports={},
            reports_status=ReportsStatus.pending.value,
            created_by=actor.id,
        )
        event.set_requirements(requirements)
        # Validates slot shapes before anything is written.
        parse_slots(event.date_time_slots)
        db.add(event)
        await db.flush()

        await self._ensure_custom_locations(db, event=event, actor=actor)
        await activity_log_service.log(
            db,
            action="submit_event",
            actor=actor,
            description=f'Submitted event "{event.event_title}"',
            entity_type="event",
            entity_id=event.id,
        )
        await db.commit()
        logger.info(
            "event_submitted",
            event_id=event.id,
            user_id=actor.id,
            departments=event.tagged_departments,
        )
        return await self.get_event(db, event.id)

    async def _ensure_custom_locations(self, db: AsyncSession, *, event: Event, actor: User) -> None:
        names = [event.location, *(event.locations or [])]
        seen: set[str] = set()
        for name in names:
            clean = (name or "").strip()
            if not clean or clean in seen:
                continue
            seen.add(clean)
            try:
                await availability_service.ensure_custom_location(
                    db,
                    location_name=clean,
                    on_date=event_date_key(event),
                    actor=actor,
                )
            except SQLAlchemyError as exc:
                logger.warning(
                    "custom_location_create_failed",
                    event_id=event.id,
                    location=clean,
                    error=exc.__class__.__name__,
                )

    # ── Admin status transitions ──

    async def change_status(
        self,
        db: AsyncSession,
        *,
        actor: User,
        hub: RealtimeHub | None,
        event_id: int,
        target: EventStatus | str,
        reason: str | None = None,
    ) -> Event:
        target_state = coerce_status(target)

        def mutate(event: Event) -> EventStatus:
            previous = state_transition_service.transition_event(event, target_state)
            if target_state in REASON_STATES:
                event.reason = reason.strip() if reason and reason.strip() else None
            requirements = event.get_requirements()
            if target_state == EventStatus.APPROVED:
                requirements.release_all()
            elif target_state == EventStatus.CANCELLED:
                requirements.reset_all()
            event.set_requirements(requirements)
            return previous

        event, previous = await self._apply(db, event_id, mutate, actor=actor)
        logger.info(
            "event_status_changed",
            event_id=event.id,
            from_state=previous.value,
            to_state=target_state.value,
            admin_id=actor.id,
        )

        hooks = PostCommitHooks()
        if hub is not None:
            self._queue_status_fanout(hooks, hub, event=event, status_value=target_state, admin_name=actor.username)
        await hooks.run()
        return event

    def _queue_status_fanout(
        self,
        hooks: PostCommitHooks,
        hub: RealtimeHub,
        *,
        event: Event,
        status_value: EventStatus,
        admin_name: str,
    ) -> None:
        notification = notification_service.event_status_payload(event, status=status_value.value, admin_name=admin_name)
        legacy = {
            "event_id": event.id,
            "event_title": event.event_title,
            "status": status_value.value,
            "message": f'Your event "{event.event_title}" has been {status_value.value}',
        }
        snapshot = event_to_response(event).model_dump(mode="json")
        departments = list(event.tagged_departments or [])

        hooks.add("requestor_notification", lambda: hub.emit_to_user(event.created_by, "new-notification", notification))
        hooks.add("requestor_status", lambda: hub.emit_to_user(event.created_by, "event-status-updated", legacy))
        hooks.add("event_updated", lambda: hub.broadcast("event-updated", snapshot))

        if status_value == EventStatus.APPROVED:
            approved = {
                "type": "event_approved",
                "event_id": event.id,
                "event_title": event.event_title,
                "status": EventStatus.APPROVED.value,
                "message": f'Event "{event.event_title}" has been approved',
                "timestamp": notification["timestamp"],
            }
            hooks.add("approved_broadcast", lambda: hub.broadcast("new-notification", approved))
            for department in departments:
                payload = {
                    "event_id": event.id,
                    "event_title": event.event_title,
                    "department": department,
                    "status": EventStatus.APPROVED.value,
                    "message": (
                        f'Event "{event.event_title}" has been approved. '
                        "Requirements are now available for your department."
                    ),
                }
                hooks.add(
                    f"released:{department}",
                    lambda department=department, payload=payload: hub.emit_to_department(
                        department, "status-update", payload
                    ),
                )
        elif status_value == EventStatus.CANCELLED:
            for department in departments:
                payload = {
                    "event_id": event.id,
                    "event_title": event.event_title,
                    "department": department,
                    "status": EventStatus.CANCELLED.value,
                    "message": f'Event "{event.event_title}" has been cancelled. All requirements have been reset.',
                }
                hooks.add(
                    f"cancelled:{department}",
                    lambda department=department, payload=payload: hub.emit_to_department(
                        department, "status-update", payload
                    ),
                )

    # ── Requestor edits ──

    async def update_details(
        self,
        db: AsyncSession,
        *,
        actor: User,
        hub: RealtimeHub | None,
        event_id: int,
        payload: EventDetailsUpdateRequest,
        new_attachments: list[dict[str, Any]] | None = None,
        gov_files: dict[str, Any] | None = None,
    ) -> Event:
        def mutate(event: Event) -> None:
            self._assert_owner(event, actor)
            if event.status != EventStatus.SUBMITTED.value:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="You can only edit details of submitted events (before admin approval)",
                )
            event.event_title = payload.event_title.strip()
            event.requestor = payload.requestor.strip()
            event.participants = payload.participants
            event.contact_number = payload.contact_number
            event.contact_email = str(payload.contact_email)
            if payload.vip is not None:
                event.vip = payload.vip
            if payload.vvip is not None:
                event.vvip = payload.vvip
            if payload.description is not None:
                event.description = payload.description
            if new_attachments:
                event.attachments = [*(event.attachments or []), *new_attachments]
                event.no_attachments = False
            if gov_files:
                merged = dict(event.gov_files or {})
                merged.update({slot: meta for slot, meta in gov_files.items() if slot in GOV_FILE_SLOTS})
                event.gov_files = merged

        event, _ = await self._apply(db, event_id, mutate, actor=actor)
        logger.info("event_details_updated", event_id=event.id, user_id=actor.id)

        hooks = PostCommitHooks()
        if hub is not None:
            update = {
                "event_id": event.id,
                "event_title": event.event_title,
                "action": "details-updated",
            }
            hooks.add("details_updated", lambda: hub.emit_to_user(actor.id, "event-updated", update))
        await hooks.run()
        return event

    async def reschedule(
        self,
        db: AsyncSession,
        *,
        actor: User,
        hub: RealtimeHub | None,
        event_id: int,
        payload: EventRescheduleRequest,
    ) -> Event:
        replacement: DepartmentRequirements | None = None
        if payload.department_requirements is not None:
            replacement = DepartmentRequirements.from_json(payload.department_requirements)
            await self.assert_known_departments(db, replacement.tagged_departments)

        def mutate(event: Event) -> dict[str, Any]:
            self._assert_owner(event, actor, "Access denied. You can only edit your own events.")
            state = coerce_status(event.status)
            if state in (EventStatus.REJECTED, EventStatus.CANCELLED, EventStatus.COMPLETED):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"A {state.value} event can no longer be rescheduled",
                )
            before = {
                "location": event.location,
                "start_date": event.start_date,
                "start_time": event.start_time,
                "end_date": event.end_date,
                "end_time": event.end_time,
            }
            for field in ("location", "start_date", "start_time", "end_date", "end_time"):
                value = getattr(payload, field)
                if value is not None:
                    setattr(event, field, value.strip() if isinstance(value, str) else value)
            if payload.date_time_slots is not None:
                event.date_time_slots = [slot.model_dump(mode="json") for slot in payload.date_time_slots]
            self._assert_schedule(event)

            if replacement is not None:
                if state != EventStatus.SUBMITTED:
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail="Requirements can only be replaced before the event is approved",
                    )
                requirements = replacement.copy()
                requirements.hold_all()
                event.set_requirements(requirements)

            after = {field: getattr(event, field) for field in before}
            return {"before": before, "after": after}

        event, change = await self._apply(db, event_id, mutate, actor=actor)
        before, after = change["before"], change["after"]
        location_changed = before["location"] != after["location"]
        schedule_changed = any(before[key] != after[key] for key in before if key != "location")

        if location_changed:
            await self._ensure_custom_locations(db, event=event, actor=actor)
        if location_changed or schedule_changed:
            await activity_log_service.log(
                db,
                action="reschedule_event",
                actor=actor,
                description=self._reschedule_description(event, before, after, location_changed, schedule_changed),
                entity_type="event",
                entity_id=event.id,
                details={"before": before, "after": after},
            )
        await db.commit()
        logger.info(
            "event_rescheduled",
            event_id=event.id,
            location_changed=location_changed,
            schedule_changed=schedule_changed,
        )

        hooks = PostCommitHooks()
        if hub is not None:
            snapshot = event_to_response(event).model_dump(mode="json")
            hooks.add("event_updated", lambda: hub.broadcast("event-updated", snapshot))
        await hooks.run()
        return event

    def _assert_schedule(self, event: Event) -> None:
        parse_slots(event.date_time_slots)
        start = (parse_date(event.start_date), parse_hhmm(event.start_time))
        end = (parse_date(event.end_date), parse_hhmm(event.end_time))
        if end < start:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Event must end after it starts")

    def _reschedule_description(
        self,
        event: Event,
        before: dict[str, Any],
        after: dict[str, Any],
        location_changed: bool,
        schedule_changed: bool,
    ) -> str:
        def window(values: dict[str, Any]) -> str:
            return f"{values['start_date']} {values['start_time']} - {values['end_date']} {values['end_time']}"

        if location_changed and schedule_changed:
            return (
                f'Rescheduled event "{event.event_title}" from {window(before)} at {before["location"]} '
                f'to {window(after)} at {after["location"]}'
            )
        if location_changed:
            return f'Changed location for event "{event.event_title}" from {before["location"]} to {after["location"]}'
        return f'Rescheduled event "{event.event_title}" from {window(before)} to {window(after)}'

    # ── Department actions on allocations ──

    async def update_requirement_status(
        self,
        db: AsyncSession,
        *,
        actor: User,
        hub: RealtimeHub | None,
        event_id: int,
        requirement_id: str,
        new_status: AllocationStatus,
        decline_reason: str | None = None,
    ) -> Event:
        def mutate(event: Event):
            department = self._assert_department_tagged(event, actor)
            requirements = event.get_requirements()
            self._assert_released(requirements, requirement_id)
            change = requirements.update_status(requirement_id, new_status, decline_reason=decline_reason)
            event.set_requirements(requirements)
            return department, change

        event, (department, change) = await self._apply(db, event_id, mutate, actor=actor)
        logger.info(
            "requirement_status_changed",
            event_id=event.id,
            requirement_id=requirement_id,
            department=department,
            from_status=change.old_status.value,
            to_status=change.new_status.value,
        )

        if not change.changed:
            return event

        hooks = PostCommitHooks()
        payload = notification_service.status_update_payload(event, change, acting_department=department)
        if hub is not None:
            notice = {
                **payload,
                "event_title": event.event_title,
                "message": f'{change.allocation.name} status changed to "{change.new_status.value}" by {department}',
            }
            hooks.add("requestor_status", lambda: hub.emit_to_user(event.created_by, "status-update", payload))
            hooks.add("requestor_notification", lambda: hub.emit_to_user(event.created_by, "new-notification", notice))
            if actor.id != event.created_by:
                hooks.add("actor_status", lambda: hub.emit_to_user(actor.id, "status-update", payload))
        hooks.add(
            "persist_notification",
            lambda: notification_service.persist_status_notification(
                db,
                event=event,
                change=change,
                acting_department=department,
            ),
        )
        await hooks.run()
        return event

    async def update_requirement_notes(
        self,
        db: AsyncSession,
        *,
        actor: User,
        hub: RealtimeHub | None,
        event_id: int,
        requirement_id: str,
        department_notes: str | None,
    ) -> Event:
        def mutate(event: Event) -> str:
            department = self._assert_department_tagged(event, actor)
            requirements = event.get_requirements()
            self._assert_released(requirements, requirement_id)
            requirements.update_department_notes(requirement_id, department_notes)
            event.set_requirements(requirements)
            return department

        event, department = await self._apply(db, event_id, mutate, actor=actor)
        logger.info("requirement_notes_updated", event_id=event.id, requirement_id=requirement_id, department=department)

        hooks = PostCommitHooks()
        if hub is not None:
            payload = {
                "event_id": event.id,
                "requirement_id": requirement_id,
                "department_name": department,
                "department_notes": department_notes or "",
                "action": "notes-updated",
            }
            hooks.add("requestor_notes", lambda: hub.emit_to_user(event.created_by, "event-updated", payload))
        await hooks.run()
        return event

    async def retag_requirement(
        self,
        db: AsyncSession,
        *,
        actor: User,
        hub: RealtimeHub | None,
        event_id: int,
        requirement_id: str,
        departments: list[str],
    ) -> Event:
        targets = await self.assert_known_departments(db, departments)
        if not targets:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Departments array is required and cannot be empty",
            )

        def mutate(event: Event) -> str:
            requirements = event.get_requirements()
            source, _ = requirements.find(requirement_id)
            if not actor.is_admin and event.created_by != actor.id and normalize_department(actor.department) != source:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Only the requestor, an admin or the holding department can move this requirement",
                )
            requirements.retag(requirement_id, targets)
            event.set_requirements(requirements)
            return source

        event, source = await self._apply(db, event_id, mutate, actor=actor)
        logger.info(
            "requirement_retagged",
            event_id=event.id,
            requirement_id=requirement_id,
            from_department=source,
            to_departments=targets,
        )

        hooks = PostCommitHooks()
        if hub is not None and event.status == EventStatus.APPROVED.value:
            for department in targets:
                payload = {
                    "event_id": event.id,
                    "event_title": event.event_title,
                    "department": department,
                    "requirement_id": requirement_id,
                    "message": f'A requirement for "{event.event_title}" was assigned to your department.',
                }
                hooks.add(
                    f"retagged:{department}",
                    lambda department=department, payload=payload: hub.emit_to_department(
                        department, "status-update", payload
                    ),
                )
        await hooks.run()
        return event

    async def add_department(
        self,
        db: AsyncSession,
        *,
        actor: User,
        hub: RealtimeHub | None,
        event_id: int,
        department_name: str,
        entries: list[dict[str, Any]],
    ) -> Event:
        known = await self.assert_known_departments(db, [department_name])
        if not known:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Department name is required")
        department = known[0]

        def mutate(event: Event) -> int:
            if not actor.is_admin and event.created_by != actor.id:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Only the requestor or an admin can add departments",
                )
            state = coerce_status(event.status)
            release = ReleaseState.RELEASED if state == EventStatus.APPROVED else ReleaseState.ON_HOLD
            requirements = event.get_requirements()
            added = requirements.add_allocations(department, entries, release_state=release)
            event.set_requirements(requirements)
            return len(added)

        event, added = await self._apply(db, event_id, mutate, actor=actor)
        logger.info("event_department_added", event_id=event.id, department=department, added=added)

        hooks = PostCommitHooks()
        if hub is not None and added and event.status == EventStatus.APPROVED.value:
            payload = {
                "event_id": event.id,
                "event_title": event.event_title,
                "department": department,
                "message": f'Event "{event.event_title}" has new requirements for your department.',
            }
            hooks.add("department_added", lambda: hub.emit_to_department(department, "status-update", payload))
        await hooks.run()
        return event

    async def reply_to_requirement(
        self,
        db: AsyncSession,
        *,
        actor: User,
        hub: RealtimeHub | None,
        event_id: int,
        requirement_id: str,
        message: str,
        requested_role: ReplyRole | None = None,
    ) -> Event:
        def mutate(event: Event):
            allowed: list[ReplyRole] = []
            if event.created_by == actor.id:
                allowed.append(ReplyRole.REQUESTOR)
            if normalize_department(actor.department) in (event.tagged_departments or []):
                allowed.append(ReplyRole.DEPARTMENT)
            if not allowed or (requested_role is not None and requested_role not in allowed):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Only the requestor or a tagged department can reply to this requirement",
                )
            role = requested_role or allowed[0]
            reply = AllocationReply(
                author_id=actor.id,
                author_name=actor.username,
                role=role,
                message=message.strip(),
            )
            requirements = event.get_requirements()
            department, _ = requirements.append_reply(requirement_id, reply)
            event.set_requirements(requirements)
            return department, reply

        event, (department, reply) = await self._apply(db, event_id, mutate, actor=actor)
        logger.info(
            "requirement_reply_added",
            event_id=event.id,
            requirement_id=requirement_id,
            role=reply.role.value,
        )

        hooks = PostCommitHooks()
        if hub is not None:
            payload = {
                "event_id": event.id,
                "event_title": event.event_title,
                "requirement_id": requirement_id,
                "department": department,
                "reply": reply.model_dump(mode="json"),
            }
            hooks.add("reply_requestor", lambda: hub.emit_to_user(event.created_by, "reply-update", payload))
            hooks.add("reply_department", lambda: hub.emit_to_department(department, "reply-update", payload))
        await hooks.run()
        return event

    # ── Delete ──

    async def delete_event(
        self,
        db: AsyncSession,
        *,
        actor: User,
        hub: RealtimeHub | None,
        event_id: int,
    ) -> None:
        event = await self.get_event(db, event_id)
        if not actor.is_admin and event.created_by != actor.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only delete your own events")

        stored = [(EVENTS_CATEGORY, item.get("filename")) for item in (event.attachments or [])]
        stored += [(EVENTS_CATEGORY, meta.get("filename")) for meta in (event.gov_files or {}).values() if meta]
        stored += [(REPORTS_CATEGORY, meta.get("filename")) for meta in (event.event_reports or {}).values() if meta]
        title = event.event_title

        await db.delete(event)
        await activity_log_service.log(
            db,
            action="delete_event",
            actor=actor,
            description=f'Deleted event "{title}"',
            entity_type="event",
            entity_id=event_id,
        )
        await db.commit()
        logger.info("event_deleted", event_id=event_id, user_id=actor.id)

        hooks = PostCommitHooks()

        async def _remove_files() -> None:
            for category, filename in stored:
                if filename:
                    file_storage.remove(category, filename)

        hooks.add("remove_files", _remove_files)
        if hub is not None:
            payload = {"event_id": event_id, "event_title": title, "action": "deleted"}
            hooks.add("event_deleted", lambda: hub.broadcast("event-updated", payload))
        await hooks.run()

    # ── Reports ──

    async def attach_reports(
        self,
        db: AsyncSession,
        *,
        actor: User,
        event_id: int,
        reports: dict[str, dict[str, Any]],
    ) -> Event:
        def mutate(event: Event) -> None:
            if event.created_by != actor.id:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Only the event creator can upload reports",
                )
            if event.status != EventStatus.COMPLETED.value:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Reports can only be uploaded for completed events",
                )
            merged = dict(event.event_reports or {})
            for slot, meta in reports.items():
                if slot in REPORT_SLOTS:
                    merged[slot] = {**meta, "uploaded": True}
            event.event_reports = merged
            complete = all((merged.get(slot) or {}).get("uploaded") for slot in REPORT_SLOTS)
            event.reports_status = ReportsStatus.completed.value if complete else ReportsStatus.pending.value

        event, _ = await self._apply(db, event_id, mutate, actor=actor)
        logger.info("event_reports_uploaded", event_id=event.id, slots=sorted(reports), status=event.reports_status)
        return event

    # ── Auto-complete sweep ──

    async def auto_complete_due(
        self,
        db: AsyncSession,
        *,
        hub: RealtimeHub | None,
        now: datetime | None = None,
    ) -> list[int]:
        """Complete every open event whose effective end is at or before ``now``."""
        current = now or datetime.now(timezone.utc)
        completed: list[int] = []
        hooks = PostCommitHooks()

        # Decide from one read; a rollback below expires every loaded row.
        due_ids: list[int] = []
        candidates = await event_repository.list_auto_complete_candidates(
            db, local_today=local_today(settings.app_timezone, current)
        )
        for candidate in candidates:
            try:
                due = has_ended(candidate, current, settings.app_timezone)
            except WorkflowError as exc:
                logger.warning("auto_complete_bad_schedule", event_id=candidate.id, error=exc.message)
                continue
            if due:
                due_ids.append(candidate.id)

        def mutate(event: Event) -> bool:
            if not is_auto_completable(event.status):
                return False
            event.status = EventStatus.COMPLETED.value
            return True

        for event_id in due_ids:
            try:
                event, changed = await self._apply(db, event_id, mutate)
            except HTTPException as exc:
                logger.warning("auto_complete_skipped", event_id=event_id, status_code=exc.status_code)
                continue
            if not changed:
                continue
            completed.append(event.id)

            if hub is not None:
                status_payload = {
                    "event_id": event.id,
                    "event_title": event.event_title,
                    "status": EventStatus.COMPLETED.value,
                    "auto_completed": True,
                    "completed_at": current.isoformat(),
                }
                update_payload = {
                    "event_id": event.id,
                    "event_title": event.event_title,
                    "action": "auto-completed",
                }
                hooks.add(
                    f"auto_status:{event.id}",
                    lambda payload=status_payload: hub.broadcast("event-status-updated", payload),
                )
                hooks.add(
                    f"auto_update:{event.id}",
                    lambda payload=update_payload: hub.broadcast("event-updated", payload),
                )

        await hooks.run()
        if completed:
            logger.info("events_auto_completed", count=len(completed), event_ids=completed)
        return completed


event_workflow_service = EventWorkflowService()
