from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.models.user import User
from app.models.user_activity import UserActivityLog

logger = get_logger("services.activity_log")


class ActivityLogService:
    async def log(
        self,
        db: AsyncSession,
        *,
        action: str,
        actor: User | None = None,
        description: str | None = None,
        entity_type: str | None = None,
        entity_id: str | int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Best-effort audit row inside a savepoint.
        A failing write is logged and never breaks the calling workflow.
        """
        try:
            async with db.begin_nested():
                db.add(
                    UserActivityLog(
                        actor_user_id=actor.id if actor else None,
                        actor_username=actor.username if actor else None,
                        actor_department=actor.department if actor else None,
                        action=action,
                        description=description,
                        entity_type=entity_type,
                        entity_id=str(entity_id) if entity_id is not None else None,
                        details=json.dumps(details, ensure_ascii=False, default=str) if details else None,
                    )
                )
                await db.flush()
        except SQLAlchemyError as exc:
            logger.warning(
                "activity_log_write_failed",
                action=action,
                error=str(exc.__class__.__name__),
            )

    async def list_logs(
        self,
        db: AsyncSession,
        *,
        action: str | None = None,
        username: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[UserActivityLog], int]:
        filters = []
        if action:
            filters.append(UserActivityLog.action == action)
        if username:
            filters.append(UserActivityLog.actor_username.ilike(f"%{username}%"))
        if date_from:
            filters.append(UserActivityLog.created_at >= date_from)
        if date_to:
            filters.append(UserActivityLog.created_at <= date_to)

        total = int((await db.execute(select(func.count(UserActivityLog.id)).where(*filters))).scalar_one() or 0)
        rows = await db.execute(
            select(UserActivityLog)
            .where(*filters)
            .order_by(UserActivityLog.created_at.desc(), UserActivityLog.id.desc())
            .offset(max(0, page - 1) * limit)
            .limit(limit)
        )
        return list(rows.scalars().all()), total


activity_log_service = ActivityLogService()
