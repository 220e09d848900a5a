from __future__ import annotations

from fastapi import HTTPException

from app.domain.events.state_machine import EventStatus, allowed_targets, coerce_status, validate_transition
from app.models.event import Event


class StateTransitionService:
    def assert_transition(self, *, current: EventStatus | str, target: EventStatus | str, entity: str = "event") -> None:
        result = validate_transition(current, target)
        if result.ok:
            return
        raise HTTPException(
            status_code=409,
            detail={
                "code": "invalid_state_transition",
                "message": result.reason,
                "entity": entity,
                "from_state": result.source.value,
                "to_state": result.target.value,
                "allowed_targets": sorted(item.value for item in allowed_targets(result.source)),
            },
        )

    def transition_event(self, event: Event, target: EventStatus | str) -> EventStatus:
        """Validate and apply an admin status change. Returns the previous status."""
        current = coerce_status(event.status or EventStatus.SUBMITTED)
        target_state = coerce_status(target)
        self.assert_transition(current=current, target=target_state, entity=f"event:{event.id}")
        event.status = target_state.value
        return current


state_transition_service = StateTransitionService()
