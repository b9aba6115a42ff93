# aroundu/routers/ws.py
# -*- coding: utf-8 -*-
"""
AroundU — WebSocket router
--------------------------
The single event socket clients talk to:

- /ws/chat
    One socket per participant. The server mints the connection id, creates
    the participant and answers with `session_config`. After that every
    frame is an event:

        client -> server   {"event": "start_matching", "data": {}}
        server -> client   {"event": "room_joined", "data": {"room": {...}}}

Design goals
------------
- Keep the protocol simple and JSON-based.
- Be robust against malformed frames (never crash the server on bad input).
- Always run the disconnect teardown, however the socket goes away, so the
  counterpart is told and the participant record is dropped.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from aroundu.core.hub import ConnectionHub
from aroundu.core.orchestrator import SessionOrchestrator
from aroundu.models.events import error_payload

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_frame(message: dict) -> Any:
    """Decode a text or binary frame as JSON. Raises ValueError if it is not."""
    payload = message.get("text")
    if payload is None:
        payload = message.get("bytes")
    if payload is None:
        raise ValueError("empty frame")
    return json.loads(payload)


def _parse_frame(raw: Any) -> tuple[str | None, Any]:
    """Return (event, data) or (None, None) for anything that is not a frame."""
    if not isinstance(raw, dict):
        return None, None
    event = raw.get("event")
    if not isinstance(event, str) or not event.strip():
        return None, None
    return event.strip(), raw.get("data")


# ---------------------------------------------------------------------------
# /ws/chat
# ---------------------------------------------------------------------------


@router.websocket("/ws/chat")
async def websocket_chat(websocket: WebSocket) -> None:
    """
    Event socket for one participant.

    Lifecycle:
    - accept, register with the hub, run `connect`
    - loop: receive JSON frame -> orchestrator.handle_event
    - on disconnect (clean or not): run `disconnect`, unregister
    """
    hub: ConnectionHub = websocket.app.state.hub
    orchestrator: SessionOrchestrator = websocket.app.state.orchestrator

    await websocket.accept()
    conn_id = hub.register(websocket)
    logger.info("WebSocket /ws/chat connected: %s", conn_id)

    try:
        await orchestrator.on_connect(conn_id)

        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            try:
                raw = _load_frame(message)
            except ValueError:
                # Not JSON (text or binary); keep the connection.
                await hub.emit(conn_id, "error", error_payload("invalid_frame", "Frames must be JSON."))
                continue

            event, data = _parse_frame(raw)
            if event is None:
                await hub.emit(
                    conn_id,
                    "error",
                    error_payload("invalid_frame", 'Frame must be an object with an "event" field.'),
                )
                continue

            logger.debug("WS %s -> %s %r", conn_id, event, data)
            await orchestrator.handle_event(conn_id, event, data)

    except WebSocketDisconnect:
        logger.info("WebSocket /ws/chat disconnected: %s", conn_id)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected error in WS /ws/chat (%s): %s", conn_id, exc)
        try:
            await websocket.close(code=1011)
        except Exception:  # noqa: BLE001
            pass
    finally:
        await orchestrator.on_disconnect(conn_id)
        hub.unregister(conn_id)
