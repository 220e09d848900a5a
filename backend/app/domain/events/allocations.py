"""
Requirement allocations embedded in an event.

An event holds an ordered mapping ``department name -> [allocation, ...]``.
Each allocation is one department's claim on one catalog requirement.
``DepartmentRequirements`` owns every mutation of that mapping, so the
tagged department list can always be derived from it instead of being
maintained by hand.
"""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Annotated, Any, Iterable, Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from app.domain.events.errors import AllocationNotFound, InvalidAllocation


class AllocationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    PARTIALLY_FULFILL = "partially_fulfill"
    IN_PREPARATION = "in_preparation"


class ReleaseState(str, enum.Enum):
    ON_HOLD = "on-hold"
    RELEASED = "released"


class ReplyRole(str, enum.Enum):
    REQUESTOR = "requestor"
    DEPARTMENT = "department"


def normalize_department(name: str | None) -> str:
    return (name or "").strip().upper()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AllocationReply(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    author_id: int
    author_name: str
    role: ReplyRole
    message: str = Field(..., min_length=1, max_length=2000)
    created_at: datetime = Field(default_factory=_utcnow)


class _AllocationBase(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        use_enum_values=False,
    )

    id: str
    name: str = Field(..., min_length=1)
    selected: bool = True
    quantity: int | None = Field(default=None, ge=0)
    total_quantity: int | None = Field(default=None, ge=0)
    is_available: bool | None = None
    availability_notes: str | None = None
    notes: str | None = None
    status: AllocationStatus = AllocationStatus.PENDING
    department_notes: str | None = None
    decline_reason: str | None = None
    requirements_status: ReleaseState | None = None
    last_updated: datetime | None = None
    replies: list[AllocationReply] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> str:
        text = str(value).strip() if value is not None else ""
        if not text:
            raise ValueError("requirement id is required")
        return text


class PhysicalAllocation(_AllocationBase):
    type: Literal["physical"] = "physical"


class ServiceAllocation(_AllocationBase):
    type: Literal["service"] = "service"
    responsible_person: str | None = None


Allocation = Annotated[Union[PhysicalAllocation, ServiceAllocation], Field(discriminator="type")]

_allocation_adapter: TypeAdapter[Allocation] = TypeAdapter(Allocation)


def parse_allocation(raw: Any) -> PhysicalAllocation | ServiceAllocation:
    if isinstance(raw, (PhysicalAllocation, ServiceAllocation)):
        return raw
    if not isinstance(raw, dict):
        raise InvalidAllocation("Requirement entries must be objects")
    payload = dict(raw)
    payload["type"] = str(payload.get("type") or "physical").strip().lower()
    try:
        return _allocation_adapter.validate_python(payload)
    except ValidationError as exc:
        raise InvalidAllocation(
            "Invalid requirement entry",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


@dataclass(slots=True)
class StatusChange:
    department: str
    allocation: PhysicalAllocation | ServiceAllocation
    old_status: AllocationStatus
    new_status: AllocationStatus

    @property
    def changed(self) -> bool:
        return self.old_status != self.new_status


class DepartmentRequirements:
    """Ordered department -> allocation list mapping."""

    def __init__(self, mapping: dict[str, list[PhysicalAllocation | ServiceAllocation]] | None = None) -> None:
        self._data: dict[str, list[PhysicalAllocation | ServiceAllocation]] = {}
        for department, allocations in (mapping or {}).items():
            key = normalize_department(department)
            if not key:
                continue
            bucket = self._data.setdefault(key, [])
            for allocation in allocations:
                if not any(existing.id == allocation.id for existing in bucket):
                    bucket.append(allocation)
        self._prune()

    # ── Serialization ──

    @classmethod
    def from_json(cls, raw: dict[str, Any] | None) -> "DepartmentRequirements":
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise InvalidAllocation("departmentRequirements must be an object keyed by department")
        mapping: dict[str, list] = {}
        for department, entries in raw.items():
            if entries is None:
                continue
            if not isinstance(entries, list):
                raise InvalidAllocation(
                    "Requirement lists must be arrays",
                    details={"department": department},
                )
            mapping.setdefault(normalize_department(department), []).extend(
                parse_allocation(entry) for entry in entries
            )
        return cls(mapping)

    def to_json(self) -> dict[str, list[dict[str, Any]]]:
        return {
            department: [allocation.model_dump(mode="json") for allocation in allocations]
            for department, allocations in self._data.items()
            if allocations
        }

    # ── Read access ──

    @property
    def tagged_departments(self) -> list[str]:
        return [department for department, allocations in self._data.items() if allocations]

    def __contains__(self, department: str) -> bool:
        return bool(self._data.get(normalize_department(department)))

    def __iter__(self) -> Iterator[tuple[str, PhysicalAllocation | ServiceAllocation]]:
        for department, allocations in self._data.items():
            for allocation in allocations:
                yield department, allocation

    def __len__(self) -> int:
        return sum(len(allocations) for allocations in self._data.values())

    def allocations_for(self, department: str) -> list[PhysicalAllocation | ServiceAllocation]:
        return list(self._data.get(normalize_department(department), []))

    def find(self, requirement_id: str) -> tuple[str, PhysicalAllocation | ServiceAllocation]:
        requirement_id = str(requirement_id)
        for department, allocation in self:
            if allocation.id == requirement_id:
                return department, allocation
        raise AllocationNotFound(requirement_id)

    # ── Whole-map mutations ──

    def release_all(self) -> int:
        count = 0
        for _, allocation in self:
            allocation.requirements_status = ReleaseState.RELEASED
            count += 1
        return count

    def hold_all(self) -> int:
        count = 0
        for _, allocation in self:
            allocation.requirements_status = ReleaseState.ON_HOLD
            count += 1
        return count

    def reset_all(self) -> int:
        count = 0
        for _, allocation in self:
            allocation.status = AllocationStatus.PENDING
            allocation.decline_reason = None
            allocation.notes = None
            count += 1
        return count

    # ── Single-allocation mutations ──

    def retag(self, requirement_id: str, targets: Iterable[str]) -> str:
        """Move one allocation to every department in ``targets``.

        Returns the department it was removed from.
        """
        target_keys: list[str] = []
        for target in targets:
            key = normalize_department(target)
            if key and key not in target_keys:
                target_keys.append(key)
        if not target_keys:
            raise InvalidAllocation("At least one target department is required")

        source, allocation = self.find(requirement_id)
        receivers = [
            key
            for key in target_keys
            if not any(
                existing is not allocation and existing.id == allocation.id for existing in self._data.get(key, [])
            )
        ]
        if not receivers:
            raise InvalidAllocation(
                f"Every target department already holds requirement {allocation.id}",
                details={"requirement_id": allocation.id, "departments": target_keys},
            )

        self._data[source] = [item for item in self._data[source] if item is not allocation]
        self._prune()
        for key in receivers:
            self._data.setdefault(key, []).append(allocation.model_copy(deep=True))
        return source

    def add_allocations(
        self,
        department: str,
        entries: Iterable[Any],
        *,
        release_state: ReleaseState = ReleaseState.ON_HOLD,
    ) -> list[PhysicalAllocation | ServiceAllocation]:
        """Append selected entries to a department, skipping names already present."""
        key = normalize_department(department)
        if not key:
            raise InvalidAllocation("Department name is required")
        bucket = self._data.setdefault(key, [])
        added: list[PhysicalAllocation | ServiceAllocation] = []
        for entry in entries:
            allocation = parse_allocation(entry)
            if not allocation.selected:
                continue
            if any(existing.name == allocation.name or existing.id == allocation.id for existing in bucket):
                continue
            allocation.status = AllocationStatus.PENDING
            allocation.requirements_status = release_state
            bucket.append(allocation)
            added.append(allocation)
        self._prune()
        return added

    def update_status(
        self,
        requirement_id: str,
        status: AllocationStatus,
        *,
        decline_reason: str | None = None,
        now: datetime | None = None,
    ) -> StatusChange:
        department, allocation = self.find(requirement_id)
        old_status = allocation.status
        allocation.status = status
        allocation.last_updated = now or _utcnow()
        # A reason belongs to the decline it came with; anything else clears it.
        allocation.decline_reason = (decline_reason or None) if status == AllocationStatus.DECLINED else None
        return StatusChange(
            department=department,
            allocation=allocation,
            old_status=old_status,
            new_status=status,
        )

    def update_department_notes(
        self,
        requirement_id: str,
        notes: str | None,
        *,
        now: datetime | None = None,
    ) -> tuple[str, PhysicalAllocation | ServiceAllocation]:
        department, allocation = self.find(requirement_id)
        allocation.department_notes = notes
        allocation.last_updated = now or _utcnow()
        return department, allocation

    def append_reply(
        self,
        requirement_id: str,
        reply: AllocationReply,
    ) -> tuple[str, PhysicalAllocation | ServiceAllocation]:
        department, allocation = self.find(requirement_id)
        allocation.replies.append(reply)
        allocation.last_updated = reply.created_at
        return department, allocation

    def copy(self) -> "DepartmentRequirements":
        return DepartmentRequirements(copy.deepcopy(self._data))

    def _prune(self) -> None:
        for department in [key for key, allocations in self._data.items() if not allocations]:
            del self._data[department]
