"""Local disk storage for event attachments, government forms and reports."""

from __future__ import annotations

import asyncio
import mimetypes
import re
import secrets
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger("services.file_storage")

EVENTS_CATEGORY = "events"
REPORTS_CATEGORY = "event-reports"
MESSAGES_CATEGORY = "messages"
PDF_MIMETYPE = "application/pdf"

_SAFE_NAME = re.compile(r"^[A-Za-z0-9._-]+$")


class FileStorageService:
    def __init__(self, root: Path | None = None) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root or get_settings().upload_root

    def category_dir(self, category: str) -> Path:
        path = self.root / category
        path.mkdir(parents=True, exist_ok=True)
        return path

    def validate_upload(
        self,
        *,
        filename: str,
        payload: bytes,
        max_bytes: int,
        allowed_extensions: set[str] | None = None,
        allowed_mimetypes: set[str] | None = None,
        content_type: str | None = None,
    ) -> str:
        """Return the lower-cased extension or raise ValueError."""
        if not payload:
            raise ValueError(f"Uploaded file '{filename}' is empty")
        if len(payload) > max_bytes:
            raise ValueError(f"File '{filename}' exceeds {max_bytes // (1024 * 1024)}MB")
        extension = Path(filename or "").suffix.lower()
        if allowed_extensions is not None and extension not in allowed_extensions:
            raise ValueError(f"File type '{extension or 'unknown'}' is not allowed")
        if allowed_mimetypes is not None:
            mimetype = content_type or mimetypes.guess_type(filename)[0] or ""
            if mimetype not in allowed_mimetypes:
                raise ValueError(f"Only {', '.join(sorted(allowed_mimetypes))} files are allowed")
        return extension

    async def save(
        self,
        *,
        category: str,
        field: str,
        filename: str,
        payload: bytes,
        content_type: str | None = None,
    ) -> dict[str, Any]:
        extension = Path(filename or "").suffix.lower()
        stored_name = f"{field}-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{extension}"
        target = self.category_dir(category) / stored_name
        await asyncio.to_thread(target.write_bytes, payload)
        logger.info("file_stored", category=category, field=field, stored_name=stored_name, size=len(payload))
        return {
            "filename": stored_name,
            "original_name": filename,
            "mimetype": content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream",
            "size": len(payload),
            "uploaded_at": datetime.now(timezone.utc).isoformat(),
        }

    def resolve(self, category: str, filename: str) -> Path:
        """Return the stored file path, refusing anything outside the category dir."""
        if not filename or not _SAFE_NAME.match(filename):
            raise FileNotFoundError(filename)
        base = self.category_dir(category).resolve()
        path = (base / filename).resolve()
        if path.parent != base or not path.is_file():
            raise FileNotFoundError(filename)
        return path

    def remove(self, category: str, filename: str) -> bool:
        try:
            path = self.resolve(category, filename)
        except FileNotFoundError:
            return False
        try:
            path.unlink()
        except OSError as exc:
            logger.warning("file_remove_failed", category=category, filename=filename, error=str(exc))
            return False
        return True


file_storage = FileStorageService()
