# aroundu/core/hub.py
# -*- coding: utf-8 -*-
"""
AroundU Chat Server — Connection hub
------------------------------------
Publish/subscribe fan-out over live WebSocket connections.

- "deliver event E to connection C"                  -> emit()
- "deliver event E to every connection bound to R"   -> emit_to_room()

Room bindings here are transport-level subscriptions only; the registry stays
the authority on who is actually in which room.

Frames are JSON objects:

    {"event": "<name>", "data": {...}}
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Iterable, Optional, Protocol, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    """What the orchestrator needs from a transport."""

    async def emit(self, conn_id: str, event: str, data: Dict[str, Any]) -> None: ...

    async def emit_to_room(
        self,
        room_id: str,
        event: str,
        data: Dict[str, Any],
        exclude: Optional[Iterable[str]] = None,
    ) -> None: ...

    def join(self, conn_id: str, room_id: str) -> None: ...

    def leave(self, conn_id: str, room_id: str) -> None: ...


class ConnectionHub:
    """Tracks sockets by connection id and room subscriptions."""

    def __init__(self) -> None:
        self._sockets: Dict[str, WebSocket] = {}
        self._rooms: Dict[str, Set[str]] = {}
        self._memberships: Dict[str, Set[str]] = {}

    def __len__(self) -> int:
        return len(self._sockets)

    def register(self, websocket: WebSocket) -> str:
        conn_id = uuid.uuid4().hex
        self._sockets[conn_id] = websocket
        self._memberships[conn_id] = set()
        return conn_id

    def unregister(self, conn_id: str) -> None:
        for room_id in self._memberships.pop(conn_id, set()):
            subscribers = self._rooms.get(room_id)
            if subscribers is not None:
                subscribers.discard(conn_id)
                if not subscribers:
                    del self._rooms[room_id]
        self._sockets.pop(conn_id, None)

    def join(self, conn_id: str, room_id: str) -> None:
        if conn_id not in self._sockets:
            return
        self._rooms.setdefault(room_id, set()).add(conn_id)
        self._memberships[conn_id].add(room_id)

    def leave(self, conn_id: str, room_id: str) -> None:
        subscribers = self._rooms.get(room_id)
        if subscribers is not None:
            subscribers.discard(conn_id)
            if not subscribers:
                del self._rooms[room_id]
        memberships = self._memberships.get(conn_id)
        if memberships is not None:
            memberships.discard(room_id)

    def room_members(self, room_id: str) -> Set[str]:
        return set(self._rooms.get(room_id, set()))

    async def emit(self, conn_id: str, event: str, data: Dict[str, Any]) -> None:
        websocket = self._sockets.get(conn_id)
        if websocket is None:
            logger.debug("Dropping %s for unknown connection %s", event, conn_id)
            return
        try:
            await websocket.send_json({"event": event, "data": data})
        except Exception:  # noqa: BLE001
            # A dead socket must not break delivery to anybody else.
            logger.debug("Failed to send %s to %s", event, conn_id, exc_info=True)

    async def emit_to_room(
        self,
        room_id: str,
        event: str,
        data: Dict[str, Any],
        exclude: Optional[Iterable[str]] = None,
    ) -> None:
        skip = set(exclude or ())
        for conn_id in sorted(self.room_members(room_id)):
            if conn_id in skip:
                continue
            await self.emit(conn_id, event, data)
