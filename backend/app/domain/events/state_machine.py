from __future__ import annotations

import enum
from dataclasses import dataclass


class EventStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


STATE_TRANSITIONS: dict[EventStatus, set[EventStatus]] = {
    EventStatus.DRAFT: {EventStatus.SUBMITTED, EventStatus.CANCELLED},
    EventStatus.SUBMITTED: {EventStatus.APPROVED, EventStatus.REJECTED, EventStatus.CANCELLED},
    EventStatus.APPROVED: {EventStatus.COMPLETED, EventStatus.CANCELLED, EventStatus.REJECTED},
    EventStatus.REJECTED: set(),
    EventStatus.CANCELLED: set(),
    EventStatus.COMPLETED: set(),
}

TERMINAL_STATES = frozenset(state for state, targets in STATE_TRANSITIONS.items() if not targets)

# Statuses the auto-complete sweep leaves alone.
AUTO_COMPLETE_EXCLUDED = frozenset({EventStatus.COMPLETED, EventStatus.CANCELLED})

# Statuses whose reason text is stored on the event.
REASON_STATES = frozenset({EventStatus.REJECTED, EventStatus.CANCELLED})


@dataclass(slots=True)
class TransitionValidationResult:
    ok: bool
    source: EventStatus
    target: EventStatus
    reason: str | None = None


def coerce_status(value: EventStatus | str) -> EventStatus:
    if isinstance(value, EventStatus):
        return value
    return EventStatus(str(value).strip().lower())


def allowed_targets(state: EventStatus | str) -> set[EventStatus]:
    return set(STATE_TRANSITIONS.get(coerce_status(state), set()))


def can_transition(source: EventStatus | str, target: EventStatus | str) -> bool:
    source_state = coerce_status(source)
    target_state = coerce_status(target)
    if source_state == target_state:
        return True
    return target_state in STATE_TRANSITIONS.get(source_state, set())


def validate_transition(source: EventStatus | str, target: EventStatus | str) -> TransitionValidationResult:
    source_state = coerce_status(source)
    target_state = coerce_status(target)
    if can_transition(source_state, target_state):
        return TransitionValidationResult(ok=True, source=source_state, target=target_state)
    return TransitionValidationResult(
        ok=False,
        source=source_state,
        target=target_state,
        reason=f"Transition {source_state.value} -> {target_state.value} is not allowed",
    )


def is_auto_completable(state: EventStatus | str) -> bool:
    return coerce_status(state) not in AUTO_COMPLETE_EXCLUDED
