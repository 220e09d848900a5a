"""Request ID helpers shared by the middleware, envelopes and logs."""

from __future__ import annotations

from contextvars import ContextVar
from uuid import uuid4


request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")


def new_request_id() -> str:
    return f"req-{uuid4().hex[:20]}"


def set_request_id(value: str) -> None:
    request_id_ctx.set(value or "")


def get_request_id() -> str:
    return request_id_ctx.get("")
