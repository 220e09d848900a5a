"""Health and maintenance endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.rbac import require_admin
from app.api.envelope import success_envelope
from app.core.database import get_db
from app.core.logging import get_logger
from app.models.user import User
from app.schemas import HealthResponse
from app.services.scheduler import run_cleanup_now, scheduler_state

router = APIRouter(tags=["System"])
logger = get_logger("system")

APP_VERSION = "1.0.0"


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError as exc:
        logger.warning("health_database_unreachable", error=exc.__class__.__name__)
        database = "disconnected"

    hub = getattr(request.app.state, "realtime", None)
    return HealthResponse(
        status="ok" if database == "connected" else "degraded",
        version=APP_VERSION,
        database=database,
        realtime_connections=hub.connection_count if hub is not None else 0,
        scheduler=scheduler_state(),
    )


@router.post("/cleanup-now")
async def cleanup_now(current_user: User = Depends(require_admin)):
    counts = await run_cleanup_now(trigger="manual")
    logger.info("manual_cleanup_requested", user_id=current_user.id, **counts)
    return success_envelope(counts, message=f"Deleted {counts['total']} past availability records")
