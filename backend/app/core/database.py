"""
PGB Event Scheduler - Database Engine
=====================================
Async SQLAlchemy engine with connection pooling.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import get_settings

settings = get_settings()


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"echo": False}
    return {
        "echo": settings.app_debug,
        "pool_size": 20,
        "max_overflow": 10,
        "pool_pre_ping": True,
    }


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


async def get_db() -> AsyncSession:
    """FastAPI dependency that yields a DB session."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Create tables only in development. Production must use Alembic migrations."""
    if settings.app_env.lower() != "development":
        return
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
