# aroundu/core/broker.py
# -*- coding: utf-8 -*-
"""
AroundU Chat Server — Agent response broker
-------------------------------------------
Turns "persona X, please answer this text" into a timed reply payload.

- Requests are admitted strictly one at a time, in arrival order, no matter
  how many rooms ask concurrently. This keeps us under the generator's rate
  limit; callers simply wait their turn.
- The generator call itself is blocking HTTP, so it runs in a worker thread.
  The event loop (and therefore every other connection) keeps going.
- Any failure resolves to None. The failure is logged and the next queued
  request proceeds as usual.
- `delay_ms` is derived from the *input* length to fake human typing speed,
  independently of how long generation actually took.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from aroundu.core.config import Settings, settings as default_settings
from aroundu.core.personas import AgentCatalog
from aroundu.core.safety import clamp_reply_text
from aroundu.core.types import AgentReply
from aroundu.providers.groq_online import (
    GeneratorError,
    build_persona_messages,
    call_chat_model,
)
from aroundu.utils import Stopwatch

logger = logging.getLogger(__name__)

GenerateFn = Callable[[List[Dict[str, str]]], str]


class AgentResponseBroker:
    """
    Sequential gateway to the external reply generator.

    Parameters
    ----------
    catalog:
        Persona catalog used to resolve persona ids.
    generate_fn:
        Blocking callable taking chat messages and returning text, raising
        GeneratorError on failure. Defaults to the Groq provider.
    cfg:
        Settings for typing-delay constants and reply clamping.
    """

    def __init__(
        self,
        catalog: AgentCatalog,
        generate_fn: Optional[GenerateFn] = None,
        *,
        cfg: Optional[Settings] = None,
    ) -> None:
        self.catalog = catalog
        self.cfg = cfg or default_settings
        self._generate_fn: GenerateFn = generate_fn or (
            lambda messages: call_chat_model(messages, self.cfg)
        )
        # asyncio.Lock wakes waiters in FIFO order.
        self._admission = asyncio.Lock()
        self._pending = 0

    @property
    def pending(self) -> int:
        """Requests queued or in flight."""
        return self._pending

    def typing_delay_ms(self, input_text: str) -> int:
        return max(self.cfg.typing_min_delay_ms, len(input_text) * self.cfg.typing_ms_per_char)

    async def generate_reply(self, persona_id: str, input_text: str) -> Optional[AgentReply]:
        """
        Queue a generation request and wait for its turn.

        Returns AgentReply(text, delay_ms), or None on any failure.
        """
        persona = self.catalog.by_id(persona_id)
        if persona is None:
            logger.warning("Reply requested for unknown persona %r", persona_id)
            return None

        delay_ms = self.typing_delay_ms(input_text)
        messages = build_persona_messages(persona, input_text)

        self._pending += 1
        try:
            async with self._admission:
                try:
                    with Stopwatch(f"reply for {persona.id}", logger):
                        text = await asyncio.to_thread(self._generate_fn, messages)
                except GeneratorError as exc:
                    logger.warning("Generator failed for %s: %s", persona.id, exc)
                    return None
                except Exception:  # noqa: BLE001
                    logger.exception("Unexpected generator error for %s", persona.id)
                    return None
        finally:
            self._pending -= 1

        text = (text or "").strip()
        if not text:
            logger.warning("Generator returned empty text for %s", persona.id)
            return None

        return AgentReply(text=clamp_reply_text(text, self.cfg.max_reply_chars), delay_ms=delay_ms)
