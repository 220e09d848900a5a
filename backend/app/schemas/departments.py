from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.department import RequirementType


class DepartmentCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    is_visible: bool = True

    @field_validator("name")
    @classmethod
    def _upper(cls, value: str) -> str:
        clean = value.strip().upper()
        if not clean:
            raise ValueError("must not be blank")
        return clean


class DepartmentVisibilityRequest(BaseModel):
    is_visible: bool


class RequirementCreateRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=255)
    type: RequirementType = RequirementType.physical
    total_quantity: int | None = Field(default=1, ge=0)
    is_active: bool = True
    is_available: bool = True
    responsible_person: str | None = Field(default=None, max_length=120)

    @field_validator("text")
    @classmethod
    def _strip(cls, value: str) -> str:
        clean = value.strip()
        if not clean:
            raise ValueError("must not be blank")
        return clean


class RequirementUpdateRequest(BaseModel):
    text: str | None = Field(default=None, min_length=1, max_length=255)
    type: RequirementType | None = None
    total_quantity: int | None = Field(default=None, ge=0)
    is_active: bool | None = None
    is_available: bool | None = None
    responsible_person: str | None = Field(default=None, max_length=120)


class RequirementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    department_id: int
    text: str
    type: str
    total_quantity: int | None = None
    is_active: bool
    is_available: bool
    responsible_person: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DepartmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    is_visible: bool
    requirements: list[RequirementResponse] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
