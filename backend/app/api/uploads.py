"""Multipart helpers shared by the event and report routers."""

from __future__ import annotations

import json
from typing import Any

from fastapi import HTTPException, UploadFile, status
from starlette.datastructures import FormData

from app.services.file_storage import file_storage

JSON_FORM_FIELDS = {"locations", "dateTimeSlots", "departmentRequirements", "taggedDepartments"}


def form_fields(form: FormData) -> dict[str, Any]:
    """Plain (non-file) form values, with JSON-encoded fields decoded."""
    data: dict[str, Any] = {}
    for key, value in form.multi_items():
        if not isinstance(value, str):
            continue
        if key in JSON_FORM_FIELDS:
            try:
                data[key] = json.loads(value) if value.strip() else None
            except json.JSONDecodeError:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Field '{key}' must be valid JSON",
                )
        else:
            data[key] = value
    return {key: value for key, value in data.items() if value is not None and value != ""}


def form_files(form: FormData, field: str) -> list[UploadFile]:
    return [item for item in form.getlist(field) if not isinstance(item, str) and item.filename]


UPLOAD_CHUNK_BYTES = 1024 * 1024


async def read_limited(upload: UploadFile, *, max_bytes: int) -> bytes:
    """Read an upload in chunks, stopping as soon as it passes ``max_bytes``."""
    buffer = bytearray()
    while True:
        chunk = await upload.read(UPLOAD_CHUNK_BYTES)
        if not chunk:
            return bytes(buffer)
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"File '{upload.filename}' exceeds {max_bytes // (1024 * 1024)}MB",
            )


async def store_uploads(
    uploads: list[UploadFile],
    *,
    category: str,
    field: str,
    max_bytes: int,
    allowed_extensions: set[str] | None = None,
    allowed_mimetypes: set[str] | None = None,
) -> list[dict[str, Any]]:
    """Validate every upload first, then write them all. Returns stored metadata."""
    staged: list[tuple[UploadFile, bytes]] = []
    for upload in uploads:
        payload = await read_limited(upload, max_bytes=max_bytes)
        try:
            file_storage.validate_upload(
                filename=upload.filename or "",
                payload=payload,
                max_bytes=max_bytes,
                allowed_extensions=allowed_extensions,
                allowed_mimetypes=allowed_mimetypes,
                content_type=upload.content_type,
            )
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
        staged.append((upload, payload))

    return [
        await file_storage.save(
            category=category,
            field=field,
            filename=upload.filename or field,
            payload=payload,
            content_type=upload.content_type,
        )
        for upload, payload in staged
    ]
