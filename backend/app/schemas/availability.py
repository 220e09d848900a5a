from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.availability import LocationStatus


class ResourceAvailabilityUpsert(BaseModel):
    department_id: int
    requirement_id: int
    date: dt.date
    is_available: bool = True
    notes: str | None = Field(default=None, max_length=4000)
    quantity: int | None = Field(default=None, ge=0)
    max_capacity: int | None = Field(default=None, ge=0)


class ResourceAvailabilityBulkRequest(BaseModel):
    items: list[ResourceAvailabilityUpsert] = Field(..., min_length=1)


class ResourceDateDeleteRequest(BaseModel):
    department_id: int
    dates: list[dt.date] = Field(..., min_length=1)


class ResourceAvailabilityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    department_id: int
    department_name: str
    requirement_id: int
    requirement_text: str
    date: dt.date
    is_available: bool
    notes: str | None = None
    quantity: int
    max_capacity: int
    set_by: int | None = None
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None


class LocationAvailabilityCreate(BaseModel):
    date: dt.date
    location_name: str = Field(..., min_length=1, max_length=255)
    capacity: int = Field(default=1, ge=0)
    description: str | None = None
    status: LocationStatus = LocationStatus.available

    @field_validator("location_name")
    @classmethod
    def _strip(cls, value: str) -> str:
        clean = value.strip()
        if not clean:
            raise ValueError("must not be blank")
        return clean


class LocationAvailabilityUpdate(BaseModel):
    date: dt.date | None = None
    location_name: str | None = Field(default=None, min_length=1, max_length=255)
    capacity: int | None = Field(default=None, ge=0)
    description: str | None = None
    status: LocationStatus | None = None


class LocationAvailabilityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    date: dt.date
    location_name: str
    capacity: int
    description: str | None = None
    status: str
    set_by: int | None = None
    department_name: str | None = None
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None


class CleanupResponse(BaseModel):
    resource: int = 0
    location: int = 0
    total: int = 0
