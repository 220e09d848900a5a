from __future__ import annotations

from pydantic import BaseModel, Field


class MarkReadRequest(BaseModel):
    notification_id: str = Field(..., min_length=1, max_length=160)
    event_id: int | None = None
    notification_type: str | None = Field(default=None, max_length=40)
    category: str | None = Field(default=None, max_length=40)


class MarkManyReadRequest(BaseModel):
    items: list[MarkReadRequest] = Field(..., min_length=1)
