"""
WebSocket endpoint for real-time updates.
Clients connect with ``/ws?token=<jwt>`` and are joined to their user
and department rooms. Messages are JSON objects ``{"event", "data"}``.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.routes.users import resolve_token_user
from app.core.database import async_session
from app.core.logging import get_logger
from app.core.realtime import RealtimeHub, conversation_room, user_room
from app.core.security import decode_access_token
from app.services.message_service import conversation_members

router = APIRouter(tags=["Realtime"])
logger = get_logger("ws")

session_factory: async_sessionmaker[AsyncSession] = async_session


async def _authenticate(token: str | None) -> tuple[int, str | None] | None:
    payload = decode_access_token(token) if token else None
    if not payload:
        return None
    async with session_factory() as db:
        try:
            user = await resolve_token_user(db, payload)
        except HTTPException:
            return None
        return user.id, user.department


async def handle_message(hub: RealtimeHub, websocket: WebSocket, user_id: int, message: Any) -> None:
    if not isinstance(message, dict):
        await hub.send_direct(websocket, "error", {"message": "Messages must be JSON objects"})
        return
    event = message.get("event")
    data = message.get("data")

    if event == "join-user-room":
        if str(data) != str(user_id):
            await hub.send_direct(websocket, "error", {"message": "Cannot join another user's room"})
            return
        await hub.join(websocket, user_room(user_id))
    elif event == "join-conversation" and data:
        members = conversation_members(str(data))
        if members is None or user_id not in members[1:]:
            await hub.send_direct(websocket, "error", {"message": "Cannot join this conversation"})
            return
        await hub.join(websocket, conversation_room(str(data)))
    elif event == "leave-conversation" and data:
        await hub.leave(websocket, conversation_room(str(data)))
    elif event == "test-connection":
        await hub.send_direct(websocket, "test-response", {"received": data, "user_id": user_id})
    else:
        logger.debug("ws_unknown_event", realtime_event=event, user_id=user_id)


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    hub: RealtimeHub | None = getattr(websocket.app.state, "realtime", None)
    identity = await _authenticate(websocket.query_params.get("token"))
    if hub is None or identity is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    user_id, department = identity
    await websocket.accept()
    await hub.connect(websocket, user_id=user_id, department=department)
    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                await hub.send_direct(websocket, "error", {"message": "Invalid JSON"})
                continue
            await handle_message(hub, websocket, user_id, message)
    except WebSocketDisconnect:
        pass
    finally:
        await hub.disconnect(websocket)
