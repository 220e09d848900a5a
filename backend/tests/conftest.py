from __future__ import annotations

import os
import tempfile

os.environ.setdefault("PGB_EVENTS_APP_SECRET_KEY", "test-secret-key-for-pgb-events-0123456789")
os.environ.setdefault("PGB_EVENTS_POSTGRES_PASSWORD", "test-password")
os.environ.setdefault("PGB_EVENTS_APP_ENV", "test")
os.environ.setdefault("PGB_EVENTS_APP_DEBUG", "false")
os.environ.setdefault("PGB_EVENTS_SCHEDULER_ENABLED", "false")
os.environ.setdefault("PGB_EVENTS_DATABASE_URL_OVERRIDE", "sqlite+aiosqlite://")
os.environ.setdefault("PGB_EVENTS_UPLOAD_DIR", tempfile.mkdtemp(prefix="pgb-events-uploads-"))

from typing import Any  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import event as sa_event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import app.models  # noqa: E402,F401
from app.core.database import Base  # noqa: E402
from app.core.security import hash_password  # noqa: E402
from app.models.department import Department, DepartmentRequirement  # noqa: E402
from app.models.user import User, UserRole  # noqa: E402
from app.schemas.events import EventSubmitRequest  # noqa: E402


class FakeHub:
    """Records every emit instead of writing to sockets."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, Any, str, Any]] = []

    async def emit_to_user(self, user_id, event: str, payload: Any) -> int:
        self.sent.append(("user", user_id, event, payload))
        return 1

    async def emit_to_department(self, department: str, event: str, payload: Any) -> int:
        self.sent.append(("department", department, event, payload))
        return 1

    async def emit(self, room: str, event: str, payload: Any) -> int:
        self.sent.append(("room", room, event, payload))
        return 1

    async def broadcast(self, event: str, payload: Any) -> int:
        self.sent.append(("broadcast", None, event, payload))
        return 1

    def events(self, kind: str | None = None, target: Any = None) -> list[str]:
        return [
            name
            for sent_kind, sent_target, name, _ in self.sent
            if (kind is None or sent_kind == kind) and (target is None or sent_target == target)
        ]


class FakeSocket:
    def __init__(self, *, fail: bool = False) -> None:
        self.messages: list[dict] = []
        self.closed_with: int | None = None
        self.fail = fail

    async def send_json(self, message: dict) -> None:
        if self.fail:
            raise RuntimeError("socket gone")
        self.messages.append(message)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT to nest correctly.
    @sa_event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @sa_event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def hub() -> FakeHub:
    return FakeHub()


async def make_user(
    db: AsyncSession,
    username: str,
    *,
    department: str,
    role: UserRole = UserRole.user,
    password: str = "secret-pass",
) -> User:
    user = User(
        username=username,
        email=f"{username}@example.gov.ph",
        hashed_password=hash_password(password),
        role=role.value,
        department=department,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


async def make_department(db: AsyncSession, name: str, requirements: list[tuple[str, str, int | None]]) -> Department:
    department = Department(name=name, is_visible=True)
    department.requirements = [
        DepartmentRequirement(text=text, type=kind, total_quantity=quantity)
        for text, kind, quantity in requirements
    ]
    db.add(department)
    await db.commit()
    await db.refresh(department, attribute_names=["requirements"])
    return department


def submit_payload(**overrides: Any) -> EventSubmitRequest:
    data: dict[str, Any] = {
        "eventTitle": "Provincial Budget Forum",
        "requestor": "Ana Reyes",
        "requestorDepartment": "PGO",
        "location": "Function Hall",
        "participants": 120,
        "startDate": "2026-11-05",
        "startTime": "08:00",
        "endDate": "2026-11-05",
        "endTime": "17:00",
        "contactNumber": "09171234567",
        "contactEmail": "ana.reyes@example.gov.ph",
        "departmentRequirements": {
            "GSO": [
                {"id": "11", "name": "Monobloc Chairs", "type": "physical", "quantity": 100},
                {"id": "12", "name": "Sound System", "type": "physical", "quantity": 1},
            ],
            "PIO": [
                {"id": "21", "name": "Photo Coverage", "type": "service", "responsiblePerson": "J. Cruz"},
            ],
        },
    }
    data.update(overrides)
    return EventSubmitRequest.model_validate(data)


@pytest_asyncio.fixture
async def world(db):
    """Admin, a requestor and two department members with their catalogs."""
    gso = await make_department(
        db,
        "GSO",
        [("Monobloc Chairs", "physical", 300), ("Sound System", "physical", 2)],
    )
    pio = await make_department(db, "PIO", [("Photo Coverage", "service", None)])
    return {
        "admin": await make_user(db, "admin", department="PGO", role=UserRole.admin),
        "requestor": await make_user(db, "ana", department="PGO"),
        "gso_member": await make_user(db, "ben", department="GSO"),
        "pio_member": await make_user(db, "carla", department="PIO"),
        "gso": gso,
        "pio": pio,
    }
