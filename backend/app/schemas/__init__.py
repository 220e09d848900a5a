"""
PGB Event Scheduler - Pydantic Schemas
======================================
Request/Response schemas for the API layer.
"""

from typing import Any, Optional

from pydantic import BaseModel


# ── General ──

class PaginatedResponse(BaseModel):
    items: list[Any] = []
    total: int = 0
    page: int = 1
    per_page: int = 50
    pages: int = 0


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "1.0.0"
    database: str = "connected"
    realtime_connections: int = 0
    scheduler: Optional[str] = None
