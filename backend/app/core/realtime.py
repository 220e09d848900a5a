"""
PGB Event Scheduler - Real-time Hub
===================================
Room-based WebSocket fan-out. One hub is created per application
lifespan and stored on ``app.state.realtime``; routes and scheduled jobs
receive it explicitly instead of reaching for a module global.

Rooms:
    user-{id}            every session of one user
    department-{NAME}    every member of one department
    conversation-{id}    ad-hoc rooms joined on request

Delivery is best-effort and at-most-once per connected socket.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from app.core.logging import get_logger

logger = get_logger("realtime")

SEND_TIMEOUT_SECONDS = 5.0


def user_room(user_id: int | str) -> str:
    return f"user-{user_id}"


def department_room(department: str) -> str:
    return f"department-{(department or '').strip().upper()}"


def conversation_room(conversation_id: str) -> str:
    return f"conversation-{conversation_id}"


class RealtimeHub:
    def __init__(self) -> None:
        self._rooms: dict[str, set[WebSocket]] = defaultdict(set)
        self._memberships: dict[WebSocket, set[str]] = {}
        self._identities: dict[WebSocket, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._memberships)

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    def rooms_of(self, websocket: WebSocket) -> set[str]:
        return set(self._memberships.get(websocket, ()))

    async def connect(
        self,
        websocket: WebSocket,
        *,
        user_id: int,
        department: str | None = None,
    ) -> None:
        """Register an accepted socket and join its personal rooms."""
        async with self._lock:
            self._memberships.setdefault(websocket, set())
            self._identities[websocket] = {"user_id": user_id, "department": department}
        await self.join(websocket, user_room(user_id))
        if department:
            await self.join(websocket, department_room(department))
        logger.info("realtime_connected", user_id=user_id, department=department)

    async def join(self, websocket: WebSocket, room: str) -> None:
        async with self._lock:
            self._rooms[room].add(websocket)
            self._memberships.setdefault(websocket, set()).add(room)

    async def leave(self, websocket: WebSocket, room: str) -> None:
        async with self._lock:
            self._discard(websocket, room)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            for room in list(self._memberships.get(websocket, ())):
                self._discard(websocket, room)
            self._memberships.pop(websocket, None)
            identity = self._identities.pop(websocket, None)
        if identity:
            logger.info("realtime_disconnected", user_id=identity.get("user_id"))

    def _discard(self, websocket: WebSocket, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(websocket)
            if not members:
                del self._rooms[room]
        rooms = self._memberships.get(websocket)
        if rooms is not None:
            rooms.discard(room)

    async def emit(self, room: str, event: str, payload: Any) -> int:
        """Send ``event`` to every socket in ``room``. Returns delivered count."""
        targets = list(self._rooms.get(room, ()))
        return await self._deliver(targets, event, payload, scope=room)

    async def emit_to_user(self, user_id: int | str, event: str, payload: Any) -> int:
        return await self.emit(user_room(user_id), event, payload)

    async def emit_to_department(self, department: str, event: str, payload: Any) -> int:
        return await self.emit(department_room(department), event, payload)

    async def broadcast(self, event: str, payload: Any) -> int:
        targets = list(self._memberships.keys())
        return await self._deliver(targets, event, payload, scope="*")

    async def send_direct(self, websocket: WebSocket, event: str, payload: Any) -> int:
        return await self._deliver([websocket], event, payload, scope="direct")

    async def _deliver(self, targets: list[WebSocket], event: str, payload: Any, *, scope: str) -> int:
        if not targets:
            return 0
        message = {"event": event, "data": jsonable_encoder(payload)}
        delivered = 0
        for websocket in targets:
            try:
                await asyncio.wait_for(websocket.send_json(message), timeout=SEND_TIMEOUT_SECONDS)
                delivered += 1
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "realtime_send_failed",
                    scope=scope,
                    realtime_event=event,
                    error=exc.__class__.__name__,
                )
                await self.disconnect(websocket)
        return delivered

    async def close(self) -> None:
        """Close every socket. Called once at application shutdown."""
        sockets = list(self._memberships.keys())
        for websocket in sockets:
            try:
                await websocket.close(code=1001)
            except Exception as exc:  # noqa: BLE001
                logger.debug("realtime_close_failed", error=exc.__class__.__name__)
        async with self._lock:
            self._rooms.clear()
            self._memberships.clear()
            self._identities.clear()
        logger.info("realtime_hub_closed", sockets=len(sockets))
