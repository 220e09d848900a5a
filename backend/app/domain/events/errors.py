"""Workflow errors raised by the event domain and rendered by the API layer."""

from __future__ import annotations

from typing import Any


class WorkflowError(Exception):
    status_code = 400
    code = "workflow_error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class AllocationNotFound(WorkflowError):
    status_code = 404
    code = "requirement_not_found"

    def __init__(self, requirement_id: str) -> None:
        super().__init__("Requirement not found", details={"requirement_id": requirement_id})


class UnknownDepartment(WorkflowError):
    code = "unknown_department"

    def __init__(self, names: list[str]) -> None:
        super().__init__(
            f"Unknown department(s): {', '.join(names)}",
            details={"departments": names},
        )


class InvalidAllocation(WorkflowError):
    code = "invalid_requirement"


class InvalidSchedule(WorkflowError):
    code = "invalid_schedule"
