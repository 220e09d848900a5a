from __future__ import annotations

from fastapi import HTTPException, Request, status

from app.core.realtime import RealtimeHub


def get_realtime(request: Request) -> RealtimeHub:
    hub = getattr(request.app.state, "realtime", None)
    if hub is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Realtime hub is not running")
    return hub
