from __future__ import annotations

import io

import pytest
from fastapi import HTTPException, UploadFile
from starlette.datastructures import Headers

from app.api.uploads import UPLOAD_CHUNK_BYTES, read_limited, store_uploads
from app.services.file_storage import file_storage


def _upload(payload: bytes, filename: str = "programme.pdf", content_type: str = "application/pdf") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(payload),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


@pytest.mark.asyncio
async def test_oversized_upload_stops_reading_past_the_limit() -> None:
    upload = _upload(b"x" * (UPLOAD_CHUNK_BYTES * 5))

    with pytest.raises(HTTPException) as exc_info:
        await read_limited(upload, max_bytes=UPLOAD_CHUNK_BYTES + 1)

    assert exc_info.value.status_code == 413
    assert upload.file.tell() == UPLOAD_CHUNK_BYTES * 2


@pytest.mark.asyncio
async def test_oversized_file_in_a_batch_writes_nothing(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(file_storage, "_root", tmp_path)
    uploads = [_upload(b"%PDF small"), _upload(b"x" * (UPLOAD_CHUNK_BYTES * 3), filename="big.pdf")]

    with pytest.raises(HTTPException) as exc_info:
        await store_uploads(uploads, category="events", field="attachments", max_bytes=UPLOAD_CHUNK_BYTES)

    assert exc_info.value.status_code == 413
    assert not (tmp_path / "events").exists() or list((tmp_path / "events").iterdir()) == []


@pytest.mark.asyncio
async def test_stored_upload_lands_in_its_category(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(file_storage, "_root", tmp_path)

    [meta] = await store_uploads(
        [_upload(b"%PDF-1.7 body")],
        category="events",
        field="attachments",
        max_bytes=UPLOAD_CHUNK_BYTES,
        allowed_extensions={".pdf"},
        allowed_mimetypes={"application/pdf"},
    )

    assert meta["original_name"] == "programme.pdf"
    assert meta["size"] == len(b"%PDF-1.7 body")
    assert file_storage.resolve("events", meta["filename"]).read_bytes() == b"%PDF-1.7 body"


@pytest.mark.asyncio
async def test_disallowed_extension_is_400() -> None:
    with pytest.raises(HTTPException) as exc_info:
        await store_uploads(
            [_upload(b"MZ", filename="tool.exe", content_type="application/octet-stream")],
            category="events",
            field="attachments",
            max_bytes=UPLOAD_CHUNK_BYTES,
            allowed_extensions={".pdf"},
        )

    assert exc_info.value.status_code == 400
