from __future__ import annotations

import asyncio
import random
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from aroundu.core.broker import AgentResponseBroker, GenerateFn
from aroundu.core.config import Settings
from aroundu.core.orchestrator import SessionOrchestrator
from aroundu.core.personas import AgentCatalog
from aroundu.runtime_state import PresenceRegistry


def fast_settings(**overrides: Any) -> Settings:
    """Settings with millisecond timers so protocol tests run quickly."""
    values: Dict[str, Any] = dict(
        environment="test",
        debug=False,
        groq_api_key=None,
        match_grace_s=0.05,
        agent_greeting_delay_s=0.01,
        legacy_greeting_delay_s=0.01,
        agent_read_delay_s=0.01,
        agent_session_min_s=60.0,
        agent_session_max_s=60.0,
        typing_min_delay_ms=10,
        typing_ms_per_char=0,
    )
    values.update(overrides)
    return Settings(**values)


class RecordingHub:
    """In-memory EventSink that records every delivered event."""

    def __init__(self) -> None:
        self.rooms: Dict[str, Set[str]] = defaultdict(set)
        self.events: List[Tuple[str, str, Dict[str, Any]]] = []

    async def emit(self, conn_id: str, event: str, data: Dict[str, Any]) -> None:
        self.events.append((conn_id, event, data))

    async def emit_to_room(
        self,
        room_id: str,
        event: str,
        data: Dict[str, Any],
        exclude: Optional[Iterable[str]] = None,
    ) -> None:
        skip = set(exclude or ())
        for conn_id in sorted(self.rooms.get(room_id, set())):
            if conn_id not in skip:
                await self.emit(conn_id, event, data)

    def join(self, conn_id: str, room_id: str) -> None:
        self.rooms[room_id].add(conn_id)

    def leave(self, conn_id: str, room_id: str) -> None:
        self.rooms[room_id].discard(conn_id)

    def received(self, conn_id: str, event: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            data
            for target, name, data in self.events
            if target == conn_id and (event is None or name == event)
        ]

    def names(self, conn_id: str) -> List[str]:
        return [name for target, name, _ in self.events if target == conn_id]


def make_engine(
    cfg: Optional[Settings] = None,
    generate_fn: Optional[GenerateFn] = None,
    seed: int = 7,
) -> Tuple[PresenceRegistry, AgentResponseBroker, RecordingHub, SessionOrchestrator]:
    cfg = cfg or fast_settings()
    catalog = AgentCatalog(
        base_distance_m=cfg.agent_nearby_base_m,
        step_distance_m=cfg.agent_nearby_step_m,
    )
    registry = PresenceRegistry(catalog, rng=random.Random(seed))
    broker = AgentResponseBroker(catalog, generate_fn or (lambda messages: "hey"), cfg=cfg)
    hub = RecordingHub()
    orchestrator = SessionOrchestrator(registry, broker, hub, cfg=cfg, rng=random.Random(seed))
    return registry, broker, hub, orchestrator


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)
