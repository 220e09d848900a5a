"""
╔══════════════════════════════════════════════════╗
║      PGB Event Scheduler                           ║
║ Event requests, department requirements and        ║
║ venue availability for provincial offices          ║
║                                                   ║
║    Built with: FastAPI + PostgreSQL + APScheduler  ║
║    Version: 1.0.0                                  ║
╚══════════════════════════════════════════════════╝
"""

import time
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from app.api.envelope import error_envelope
from app.core.config import get_settings
from app.core.correlation import get_request_id, new_request_id, set_request_id
from app.core.database import init_db
from app.core.logging import get_logger, setup_logging
from app.core.realtime import RealtimeHub
from app.domain.events.errors import WorkflowError
from app.services.scheduler import start_scheduler, stop_scheduler

# Import routers
from app.api.routes.activity_logs import router as activity_logs_router
from app.api.routes.departments import router as departments_router
from app.api.routes.event_reports import router as event_reports_router
from app.api.routes.events import router as events_router
from app.api.routes.location_availability import router as location_availability_router
from app.api.routes.messages import router as messages_router
from app.api.routes.notifications import router as notifications_router
from app.api.routes.resource_availability import router as resource_availability_router
from app.api.routes.system import APP_VERSION, router as system_router
from app.api.routes.users import router as users_router
from app.api.routes.ws import router as ws_router

settings = get_settings()
logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup & shutdown lifecycle."""

    # ── Startup ──
    setup_logging(debug=settings.app_debug)
    logger.info("app_starting", app=settings.app_name, env=settings.app_env)

    await init_db()
    logger.info("database_initialized")

    settings.upload_root.mkdir(parents=True, exist_ok=True)

    hub = RealtimeHub()
    app.state.realtime = hub
    start_scheduler(hub=hub)

    logger.info("app_ready", port=settings.app_port, timezone=settings.app_timezone)

    yield

    # ── Shutdown ──
    stop_scheduler()
    await hub.close()
    logger.info("app_shutdown")


# ── Create FastAPI App ──

app = FastAPI(
    title="PGB Event Scheduler",
    description=(
        "Event request and resource scheduling backend.\n\n"
        "Requestors submit events, administrators review them, and tagged "
        "departments confirm the requirements allocated to them. Location and "
        "resource availability is tracked per date."
    ),
    version=APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS Middleware ──

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request Logging Middleware ──

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests with timing."""
    request_id = request.headers.get("x-request-id") or new_request_id()
    set_request_id(request_id)
    structlog.contextvars.bind_contextvars(request_id=request_id)
    start = time.time()
    response = None
    try:
        response = await call_next(request)
        return response
    finally:
        elapsed = round((time.time() - start) * 1000, 2)
        if response is not None:
            response.headers["x-request-id"] = request_id
            status_code = response.status_code
        else:
            status_code = 500

        if request.url.path not in ["/api/health", "/docs", "/redoc", "/openapi.json"]:
            logger.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=status_code,
                elapsed_ms=elapsed,
                request_id=get_request_id(),
            )

        structlog.contextvars.clear_contextvars()
        set_request_id("")


# ── Global Exception Handlers ──

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    logger.warning(
        "http_exception",
        path=request.url.path,
        status_code=exc.status_code,
        detail=str(exc.detail),
    )
    code = "http_error"
    message = str(exc.detail)
    if isinstance(exc.detail, dict):
        code = exc.detail.get("code", code)
        message = exc.detail.get("message", "Request failed")
    return error_envelope(
        code=code,
        message=message,
        status_code=exc.status_code,
        details=exc.detail,
        meta={"path": request.url.path},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("validation_error", path=request.url.path, errors=exc.errors())
    return error_envelope(
        code="validation_error",
        message="Validation failed",
        status_code=400,
        details=exc.errors(),
        meta={"path": request.url.path},
    )


@app.exception_handler(WorkflowError)
async def workflow_exception_handler(request: Request, exc: WorkflowError):
    logger.warning("workflow_error", path=request.url.path, code=exc.code, error=exc.message)
    return error_envelope(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        meta={"path": request.url.path},
    )


@app.exception_handler(StaleDataError)
async def stale_data_handler(request: Request, exc: StaleDataError):
    logger.warning("stale_write", path=request.url.path, error=str(exc))
    return error_envelope(
        code="event_write_conflict",
        message="The record was changed by another request. Reload and retry.",
        status_code=409,
        meta={"path": request.url.path},
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("integrity_error", path=request.url.path, error=exc.__class__.__name__)
    return error_envelope(
        code="conflict",
        message="The request conflicts with existing data",
        status_code=409,
        meta={"path": request.url.path},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return error_envelope(
        code="internal_error",
        message="Internal server error",
        status_code=500,
        details="Internal server error. The team has been notified.",
        meta={"path": request.url.path},
    )


# ── Register Routers ──

app.include_router(system_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(departments_router, prefix="/api")
app.include_router(events_router, prefix="/api")
app.include_router(event_reports_router, prefix="/api")
app.include_router(resource_availability_router, prefix="/api")
app.include_router(location_availability_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(messages_router, prefix="/api")
app.include_router(activity_logs_router, prefix="/api")
app.include_router(ws_router)

app.mount("/uploads", StaticFiles(directory=str(settings.upload_root), check_dir=False), name="uploads")


@app.get("/", tags=["System"])
async def root():
    """Welcome endpoint."""
    return {
        "name": settings.app_name,
        "version": APP_VERSION,
        "status": "operational",
        "docs": "/docs",
    }
