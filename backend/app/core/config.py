"""
PGB Event Scheduler - Configuration Module
==========================================
All configuration is loaded from environment variables.
No secrets are hardcoded.
"""

import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

ENV_PREFIX = "PGB_EVENTS_"

# Unprefixed names used by older deployments of the booking backend.
LEGACY_ALIASES = {
    "JWT_SECRET": "APP_SECRET_KEY",
    "PORT": "APP_PORT",
    "ALLOWED_ORIGINS": "CORS_ORIGINS",
}

DEFAULT_PREDEFINED_LOCATIONS = (
    "Atrium,AVR,Canteen,Covered Court,Function Hall,Gymnasium,"
    "Lobby,Open Court,Oval,Parking Area,Quadrangle,Rooftop"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env."""

    # App
    app_name: str = "PGB Event Scheduler"
    app_env: str = "development"
    app_debug: bool = True
    app_secret_key: str = Field(..., min_length=32)
    app_port: int = 5000
    app_timezone: str = "Asia/Manila"

    @property
    def secret_key(self) -> str:
        return self.app_secret_key

    # Auth
    access_token_expire_days: int = 7

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "pgb_events"
    postgres_user: str = "pgb_events"
    postgres_password: str = Field(..., min_length=8)
    database_url_override: str = ""

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def database_url_sync(self) -> str:
        if self.database_url_override:
            return self.database_url_override.replace("+asyncpg", "").replace("+aiosqlite", "")
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Scheduler
    scheduler_enabled: bool = True
    cleanup_daily_cron: str = "0 0 * * *"
    cleanup_safety_cron: str = "0 */12 * * *"
    auto_complete_cron: str = "* * * * *"

    # Uploads
    upload_dir: str = "uploads"
    upload_max_attachment_mb: int = 10
    upload_max_report_mb: int = 10
    upload_max_message_mb: int = 25
    attachment_extensions: str = ".pdf,.doc,.docx,.xls,.xlsx,.ppt,.pptx,.txt,.jpg,.jpeg,.png,.gif,.webp"
    message_extensions: str = (
        ".jpeg,.jpg,.png,.gif,.pdf,.doc,.docx,.txt,.zip,.rar,.mp4,.mov,.avi,.mp3,.wav"
    )

    @property
    def upload_root(self) -> Path:
        return Path(self.upload_dir).resolve()

    @property
    def attachment_extensions_set(self) -> set[str]:
        return {
            ext.strip().lower()
            for ext in self.attachment_extensions.split(",")
            if ext.strip()
        }

    @property
    def message_extensions_set(self) -> set[str]:
        return {ext.strip().lower() for ext in self.message_extensions.split(",") if ext.strip()}

    # Locations
    predefined_locations: str = DEFAULT_PREDEFINED_LOCATIONS

    @property
    def predefined_locations_list(self) -> list[str]:
        return [name.strip() for name in self.predefined_locations.split(",") if name.strip()]

    # CORS
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        env_prefix = ENV_PREFIX


def _load_dotenv_pairs(dotenv_path: str = ".env") -> dict[str, str]:
    path = Path(dotenv_path)
    if not path.exists():
        return {}

    values: dict[str, str] = {}
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            values[key] = value
    return values


def _bootstrap_prefixed_env() -> None:
    """Populate PGB_EVENTS_ vars from unprefixed and legacy keys."""
    legacy_pairs = _load_dotenv_pairs(".env")

    candidates: dict[str, list[str]] = {
        field_name.upper(): [field_name.upper()] for field_name in Settings.model_fields
    }
    for legacy_key, target in LEGACY_ALIASES.items():
        candidates.setdefault(target, []).append(legacy_key)
    candidates["DATABASE_URL_OVERRIDE"].append("DATABASE_URL")

    for target, sources in candidates.items():
        prefixed_key = f"{ENV_PREFIX}{target}"
        if os.getenv(prefixed_key):
            continue
        for source in sources:
            value = os.getenv(source)
            if value is None:
                value = legacy_pairs.get(source)
            if value is not None:
                os.environ[prefixed_key] = value
                break


_bootstrap_prefixed_env()


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
