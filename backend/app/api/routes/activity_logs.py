"""Admin view of the user activity audit trail."""

from __future__ import annotations

import math
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.rbac import require_roles
from app.api.envelope import success_envelope
from app.core.database import get_db
from app.models.user import User, UserRole
from app.schemas import PaginatedResponse
from app.schemas.auth import UserActivityItem
from app.services.activity_log_service import activity_log_service

router = APIRouter(prefix="/user-activity-logs", tags=["Activity Logs"])


@router.get("/")
async def list_activity_logs(
    action: str | None = Query(default=None),
    username: str | None = Query(default=None),
    date_from: datetime | None = Query(default=None, alias="dateFrom"),
    date_to: datetime | None = Query(default=None, alias="dateTo"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_roles(UserRole.admin)),
):
    rows, total = await activity_log_service.list_logs(
        db,
        action=action,
        username=username,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    result = PaginatedResponse(
        items=[UserActivityItem.model_validate(item).model_dump(mode="json") for item in rows],
        total=total,
        page=page,
        per_page=limit,
        pages=math.ceil(total / limit) if total else 0,
    )
    return success_envelope(result.model_dump())
