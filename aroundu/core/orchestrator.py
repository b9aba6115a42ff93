# aroundu/core/orchestrator.py
# -*- coding: utf-8 -*-
"""
AroundU Chat Server — Session orchestrator
------------------------------------------
Consumes inbound socket events, drives the match-attempt protocol and relays
registry changes back out through the connection hub.

Match-attempt protocol (per connection):

    IDLE -> SEEKING_REAL -> SEEKING_ANY -> MATCHED

1) SEEKING_REAL: look for a compatible real participant right away.
2) Nothing found: wait `match_grace_s` (6 s) so newcomers can show up.
3) SEEKING_ANY: if still unmatched, try a real participant again, then fall
   back to an agent persona.

Agent rooms get two timers when they are allocated:
- greeting: after a short delay the agent says hello (typing bracket first).
- session: after 120-180 s the chat is force-ended with `chat_ended`.

Every deferred action re-reads the registry before it does anything. A timer
that fires after its room is gone, or after its participant got matched or
disconnected, does nothing.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from pydantic import ValidationError

from aroundu.core.broker import AgentResponseBroker
from aroundu.core.config import Settings, settings as default_settings
from aroundu.core.errors import AroundUError, DeniedError, InvalidInputError, NotFoundError
from aroundu.core.hub import EventSink
from aroundu.core.safety import sanitize_message
from aroundu.core.types import AgentReply, LeaveResult, MatchPhase, RoomKind
from aroundu.models.events import (
    RegisterLocationPayload,
    RequestChatPayload,
    RespondChatPayload,
    SendMessagePayload,
    TypingPayload,
    error_payload,
    message_payload,
    nearby_payload,
    room_payload,
    room_users_payload,
    user_payload,
)
from aroundu.models.participant_model import ProfileUpdate
from aroundu.models.room_model import Room
from aroundu.runtime_state import PresenceRegistry, parse_location

logger = logging.getLogger(__name__)

GREETINGS = ("Hi", "Hey", "Hello", "Sup?", "Kya haal hai?", "Hlo", "Oi")
# A direct request_chat to an agent always opens with this one.
DIRECT_GREETING = "Hi"

Handler = Callable[[str, Any], Awaitable[None]]


class SessionOrchestrator:
    """
    Event handlers for one server process.

    Parameters
    ----------
    registry:
        The presence & room registry (sole owner of participants/rooms).
    broker:
        Agent response broker for persona replies.
    hub:
        Transport fan-out (ConnectionHub in production, a recorder in tests).
    cfg:
        Settings; tests pass short timings here.
    rng:
        Random source for greetings and agent session length.
    """

    def __init__(
        self,
        registry: PresenceRegistry,
        broker: AgentResponseBroker,
        hub: EventSink,
        *,
        cfg: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.registry = registry
        self.broker = broker
        self.hub = hub
        self.cfg = cfg or default_settings
        self._rng = rng or random.Random()

        self._phases: Dict[str, MatchPhase] = {}
        self._match_tasks: Dict[str, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()

        self._handlers: Dict[str, Handler] = {
            "register_location": self.on_register_location,
            "get_nearby_users": self.on_get_nearby_users,
            "update_profile": self.on_update_profile,
            "start_matching": self.on_start_matching,
            "request_chat": self.on_request_chat,
            "respond_chat": self.on_respond_chat,
            "send_message": self.on_send_message,
            "typing": self.on_typing,
            "leave_room": self.on_leave_room,
        }

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def phase_of(self, conn_id: str) -> MatchPhase:
        return self._phases.get(conn_id, MatchPhase.IDLE)

    def stats(self) -> Dict[str, Any]:
        phases: Dict[str, int] = {}
        for phase in self._phases.values():
            phases[phase.value] = phases.get(phase.value, 0) + 1
        return {
            "phases": phases,
            "pending_timers": len(self._tasks),
            "queued_generations": self.broker.pending,
        }

    # ------------------------------------------------------------------
    # Background task bookkeeping
    # ------------------------------------------------------------------

    def _spawn(self, coro: Awaitable[None], name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed", task.get_name(), exc_info=exc)

    def _cancel_match_task(self, conn_id: str) -> None:
        task = self._match_tasks.get(conn_id)
        if task is None or task is asyncio.current_task():
            return
        del self._match_tasks[conn_id]
        if not task.done():
            task.cancel()

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._match_tasks.clear()
        logger.info("Orchestrator stopped (%d timers cancelled)", len(tasks))

    # ------------------------------------------------------------------
    # Outbound helpers
    # ------------------------------------------------------------------

    async def _send_error(self, conn_id: str, code: str, message: str, details: Any | None = None) -> None:
        await self.hub.emit(conn_id, "error", error_payload(code, message, details))

    def _room_alive(self, room_id: str) -> bool:
        return self.registry.get_room(room_id) is not None

    def _room_users(self, room: Room) -> list:
        participants = {}
        for pid in room.peer_ids():
            p = self.registry.get_participant(pid)
            if p is not None:
                participants[pid] = p
        return room_users_payload(
            room, participants, self.registry.catalog, self.cfg.agent_display_placeholder
        )

    async def _emit_nearby(self, conn_id: str) -> None:
        entries = self.registry.find_nearby(conn_id)
        await self.hub.emit(
            conn_id,
            "nearby_users",
            {"users": nearby_payload(entries, self.cfg.agent_display_placeholder)},
        )

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle_event(self, conn_id: str, event: str, data: Any = None) -> None:
        """
        Run the handler for one inbound frame.

        Recoverable errors become an `error` frame for this connection only.
        """
        handler = self._handlers.get(event)
        if handler is None:
            await self._send_error(conn_id, "unknown_event", f"Unknown event: {event!r}")
            return

        try:
            await handler(conn_id, data)
        except AroundUError as exc:
            logger.info("%s from %s rejected: %s", event, conn_id, exc.message)
            await self._send_error(conn_id, exc.code, exc.message)
        except ValidationError as exc:
            logger.info("Invalid %s payload from %s: %s", event, conn_id, exc)
            await self._send_error(
                conn_id,
                InvalidInputError.code,
                f"Invalid {event} payload.",
                details=exc.errors(include_url=False, include_context=False, include_input=False),
            )
        except Exception:  # noqa: BLE001
            logger.exception("Handler %s failed for %s", event, conn_id)
            await self._send_error(conn_id, "internal_error", "Internal error while handling the event.")

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def on_connect(self, conn_id: str) -> None:
        participant = self.registry.create_participant(conn_id)
        self._phases[conn_id] = MatchPhase.IDLE
        await self.hub.emit(conn_id, "session_config", {"user": user_payload(participant)})

    async def on_disconnect(self, conn_id: str) -> None:
        self._cancel_match_task(conn_id)
        self._phases.pop(conn_id, None)

        result = self.registry.disconnect(conn_id)
        if result is None:
            return
        self.hub.leave(conn_id, result.room_id)
        await self._notify_counterpart(result, "partner_disconnected", announce_departure=True)

    async def _end_room_for(self, conn_id: str, reason: str) -> Optional[LeaveResult]:
        """Registry leave plus transport unbinding and counterpart notice."""
        result = self.registry.leave(conn_id)
        if result is None:
            return None
        await self._room_left(conn_id, result, reason)
        return result

    async def _room_left(self, conn_id: str, result: LeaveResult, reason: str) -> None:
        self.hub.leave(conn_id, result.room_id)
        if conn_id in self._phases:
            self._phases[conn_id] = MatchPhase.IDLE
        await self._notify_counterpart(result, reason)

    async def _notify_counterpart(
        self,
        result: LeaveResult,
        reason: str,
        *,
        announce_departure: bool = False,
    ) -> None:
        other = result.remaining
        if other is None:
            return
        self.hub.leave(other.id, result.room_id)
        if other.id in self._phases:
            self._phases[other.id] = MatchPhase.IDLE
        if announce_departure:
            await self.hub.emit(other.id, "user_left", {"userId": result.departing.id})
        await self.hub.emit(other.id, "chat_ended", {"reason": reason})

    # ------------------------------------------------------------------
    # Presence events
    # ------------------------------------------------------------------

    async def on_register_location(self, conn_id: str, data: Any) -> None:
        payload = RegisterLocationPayload.model_validate(data or {})
        # Validate before touching any room so bad input changes nothing.
        location = parse_location(payload.lat, payload.lon, payload.radius)

        # Teardown and update happen in one registry call; notify afterwards.
        participant, left = self.registry.register_location(
            conn_id, location.lat, location.lon, location.radius
        )
        if left is not None:
            await self._room_left(conn_id, left, "partner_left")
        await self.hub.emit(conn_id, "registration_success", {"user": user_payload(participant)})
        await self._emit_nearby(conn_id)

    async def on_get_nearby_users(self, conn_id: str, data: Any = None) -> None:
        await self._emit_nearby(conn_id)

    async def on_update_profile(self, conn_id: str, data: Any) -> None:
        update = ProfileUpdate.model_validate(data or {})
        participant = self.registry.update_profile(conn_id, update)
        await self.hub.emit(conn_id, "profile_updated", {"user": user_payload(participant)})

    # ------------------------------------------------------------------
    # Matchmaking
    # ------------------------------------------------------------------

    async def on_start_matching(self, conn_id: str, data: Any = None) -> None:
        participant = self.registry.get_participant(conn_id)
        if participant is None:
            raise NotFoundError("User not found.")

        if participant.room_id is not None:
            await self._end_room_for(conn_id, "partner_left")
            current = self.registry.get_participant(conn_id)
            if current is None or current.room_id is not None:
                # Matched by someone else (or gone) while the old partner was notified.
                return

        self._cancel_match_task(conn_id)
        self._phases[conn_id] = MatchPhase.SEEKING_REAL
        if await self._attempt_match(conn_id, allow_agent=False):
            return

        logger.info("No peer for %s yet; retrying in %.1fs", conn_id, self.cfg.match_grace_s)
        self._match_tasks[conn_id] = self._spawn(
            self._grace_retry(conn_id), name=f"grace-retry:{conn_id}"
        )

    async def _grace_retry(self, conn_id: str) -> None:
        try:
            await asyncio.sleep(self.cfg.match_grace_s)

            participant = self.registry.get_participant(conn_id)
            if participant is None or participant.room_id is not None:
                return

            self._phases[conn_id] = MatchPhase.SEEKING_ANY
            if not await self._attempt_match(conn_id, allow_agent=True):
                logger.info("Match attempt for %s found nobody", conn_id)
                self._phases[conn_id] = MatchPhase.IDLE
        finally:
            if self._match_tasks.get(conn_id) is asyncio.current_task():
                del self._match_tasks[conn_id]

    async def _attempt_match(self, conn_id: str, *, allow_agent: bool) -> bool:
        """One pass of the protocol. A lost allocation race counts as no match."""
        participant = self.registry.get_participant(conn_id)
        if participant is None or participant.room_id is not None:
            return False

        peer = self.registry.find_compatible_peer(conn_id)
        if peer is not None:
            try:
                room = self.registry.allocate_room(conn_id, peer.id)
            except DeniedError as exc:
                logger.info("Peer match %s -> %s denied: %s", conn_id, peer.id, exc.message)
            else:
                await self._on_room_allocated(room, self.cfg.agent_greeting_delay_s)
                return True

        if not allow_agent:
            return False

        persona = self.registry.find_agent_match(conn_id)
        if persona is None:
            return False
        try:
            room = self.registry.allocate_room(conn_id, persona.id)
        except DeniedError as exc:
            logger.info("Agent match %s -> %s denied: %s", conn_id, persona.id, exc.message)
            return False
        await self._on_room_allocated(room, self.cfg.agent_greeting_delay_s)
        return True

    async def _on_room_allocated(
        self,
        room: Room,
        greeting_delay_s: float,
        greeting: Optional[str] = None,
    ) -> None:
        for pid in room.peer_ids():
            self.hub.join(pid, room.id)
            self._phases[pid] = MatchPhase.MATCHED
            self._cancel_match_task(pid)

        users = self._room_users(room)
        await self.hub.emit_to_room(room.id, "room_joined", {"room": room_payload(room, users)})
        await self.hub.emit_to_room(room.id, "room_users", {"users": users})

        if room.kind is RoomKind.AGENT:
            persona_id = room.agent_persona_id()
            human_id = room.peer_ids()[0]
            duration_s = self._rng.uniform(self.cfg.agent_session_min_s, self.cfg.agent_session_max_s)
            self._spawn(
                self._agent_greeting(room.id, persona_id, greeting_delay_s, greeting),
                name=f"agent-greeting:{room.id}",
            )
            self._spawn(
                self._agent_session_timer(room.id, human_id, duration_s),
                name=f"agent-session:{room.id}",
            )

    # ------------------------------------------------------------------
    # Legacy direct-invite path
    # ------------------------------------------------------------------

    async def on_request_chat(self, conn_id: str, data: Any) -> None:
        payload = RequestChatPayload.model_validate(data or {})
        current = self.registry.get_participant(conn_id)
        if current is None:
            raise NotFoundError("User not found.")

        if payload.target_id in self.registry.catalog:
            room = self.registry.allocate_room(conn_id, payload.target_id)
            await self._on_room_allocated(
                room, self.cfg.legacy_greeting_delay_s, greeting=DIRECT_GREETING
            )
            return

        if payload.target_id == conn_id:
            raise InvalidInputError("Cannot start a chat with yourself.")
        target = self.registry.get_participant(payload.target_id)
        if target is None:
            raise NotFoundError("User not found.")
        if not target.is_available:
            raise DeniedError("User is currently busy.")

        await self.hub.emit(target.id, "incoming_request", {"from": current.public_card()})

    async def on_respond_chat(self, conn_id: str, data: Any) -> None:
        payload = RespondChatPayload.model_validate(data or {})
        if not payload.accept:
            await self.hub.emit(payload.target_id, "chat_rejected", {"fromId": conn_id})
            return

        try:
            room = self.registry.allocate_room(conn_id, payload.target_id)
        except DeniedError as exc:
            logger.info("respond_chat %s -> %s denied: %s", conn_id, payload.target_id, exc.message)
            await self._send_error(
                conn_id, DeniedError.code, "Could not create chat room. User might be busy."
            )
            await self.hub.emit(payload.target_id, "chat_rejected", {"fromId": conn_id})
            return

        await self._on_room_allocated(room, self.cfg.legacy_greeting_delay_s)

    # ------------------------------------------------------------------
    # In-room events
    # ------------------------------------------------------------------

    async def on_send_message(self, conn_id: str, data: Any) -> None:
        raw = data if isinstance(data, str) else SendMessagePayload.model_validate(data or {}).text
        text = sanitize_message(raw, self.cfg.max_message_chars)
        if not text:
            raise InvalidInputError("Message is empty.")

        participant = self.registry.get_participant(conn_id)
        if participant is None or participant.room_id is None:
            logger.debug("send_message from %s outside a room ignored", conn_id)
            return
        room = self.registry.get_room(participant.room_id)
        if room is None:
            return

        await self.hub.emit_to_room(
            room.id,
            "receive_message",
            message_payload(
                user_id=participant.id,
                display_name=participant.display_name,
                avatar_token=participant.avatar_token,
                text=text,
            ),
        )

        if room.kind is RoomKind.AGENT:
            self._spawn(
                self._agent_reply(room.id, room.agent_persona_id(), text),
                name=f"agent-reply:{room.id}",
            )

    async def on_typing(self, conn_id: str, data: Any) -> None:
        is_typing = data if isinstance(data, bool) else TypingPayload.model_validate(data or {}).is_typing
        participant = self.registry.get_participant(conn_id)
        if participant is None or participant.room_id is None:
            return
        await self.hub.emit_to_room(
            participant.room_id,
            "user_typing",
            {"userId": conn_id, "isTyping": is_typing},
            exclude=[conn_id],
        )

    async def on_leave_room(self, conn_id: str, data: Any = None) -> None:
        await self._end_room_for(conn_id, "partner_left")

    # ------------------------------------------------------------------
    # Agent choreography
    # ------------------------------------------------------------------

    async def _agent_typing(self, room_id: str, persona_id: str, is_typing: bool) -> None:
        await self.hub.emit_to_room(
            room_id, "user_typing", {"userId": persona_id, "isTyping": is_typing}
        )

    async def _deliver_agent_message(self, room_id: str, persona_id: str, reply: AgentReply) -> None:
        """Wait out the simulated typing time, then close the bracket and send."""
        await asyncio.sleep(reply.delay_ms / 1000.0)
        if not self._room_alive(room_id):
            return
        persona = self.registry.catalog.by_id(persona_id)
        await self._agent_typing(room_id, persona_id, False)
        await self.hub.emit_to_room(
            room_id,
            "receive_message",
            message_payload(
                user_id=persona_id,
                display_name=self.cfg.agent_display_placeholder,
                avatar_token=persona.avatar_token if persona is not None else 1,
                text=reply.text,
            ),
        )

    async def _agent_greeting(
        self,
        room_id: str,
        persona_id: str,
        delay_s: float,
        greeting: Optional[str] = None,
    ) -> None:
        await asyncio.sleep(delay_s)
        if not self._room_alive(room_id):
            return

        reply = await self.broker.generate_reply(persona_id, greeting or self._rng.choice(GREETINGS))
        if reply is None or not self._room_alive(room_id):
            return

        await self._agent_typing(room_id, persona_id, True)
        await self._deliver_agent_message(room_id, persona_id, reply)

    async def _agent_reply(self, room_id: str, persona_id: str, text: str) -> None:
        # Simulated reading time.
        await asyncio.sleep(self.cfg.agent_read_delay_s)
        if not self._room_alive(room_id):
            return

        await self._agent_typing(room_id, persona_id, True)
        reply = await self.broker.generate_reply(persona_id, text)
        if reply is None:
            if self._room_alive(room_id):
                await self._agent_typing(room_id, persona_id, False)
            return

        await self._deliver_agent_message(room_id, persona_id, reply)

    async def _agent_session_timer(self, room_id: str, conn_id: str, duration_s: float) -> None:
        await asyncio.sleep(duration_s)

        participant = self.registry.get_participant(conn_id)
        if participant is None or participant.room_id != room_id:
            return
        result = self.registry.leave(conn_id)
        if result is None:
            return

        logger.info("Agent session %s expired after %.0fs", room_id, duration_s)
        await self.hub.emit_to_room(room_id, "chat_ended", {"reason": "partner_left", "autoClose": True})
        self.hub.leave(conn_id, room_id)
        if conn_id in self._phases:
            self._phases[conn_id] = MatchPhase.IDLE
