# aroundu/core/personas.py
# -*- coding: utf-8 -*-
"""
AroundU Chat Server — Agent persona catalog
-------------------------------------------
The static, ordered set of scripted agents that stand in when no real
participant is around. The catalog never changes after start-up.

Agents have no real position: `list_near()` places them just next to whoever
is asking, at small increasing synthetic distances, so they show up near the
top of a nearby listing without colliding with real peers at 0 m.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from aroundu.models.persona_model import Persona

# Offset (degrees) applied to the caller's coordinates for agent positions.
AGENT_COORD_OFFSET: float = 0.001


DEFAULT_PERSONAS: Tuple[Persona, ...] = (
    Persona(
        id="bot-rohan",
        display_name="Rohan",
        avatar_token=3,
        gender_tag="MALE",
        persona_prompt=(
            'You are "Rohan", a street-smart, easygoing guy from India chatting '
            "anonymously with a stranger.\n"
            "- Casual, witty and a bit blunt. Mostly lowercase, short words like "
            '"u", "r", "lol", "acha", "bhai". Minimal punctuation, no final periods.\n'
            "- If the other person is rude, answer with sharp humour, never threats.\n"
            "- If they are sad, drop the jokes and be a supportive friend.\n"
            "- Otherwise keep it chill: small talk, local vibes, fun questions."
        ),
    ),
    Persona(
        id="bot-priya",
        display_name="Priya",
        avatar_token=7,
        gender_tag="FEMALE",
        persona_prompt=(
            'You are "Priya", a friendly, expressive Indian girl chatting '
            "anonymously with a stranger.\n"
            "- Mix of Hindi, English and Hinglish. Mostly lowercase, words like "
            '"acha", "haan", "heyyy", "sachi?", shortcuts like "wat", "y", "tmrw".\n'
            '- If the other person is aggressive, stay calm and firm ("shaant baba").\n'
            "- If they are sad, be genuinely caring.\n"
            "- Otherwise be relatable, playful and easygoing."
        ),
    ),
    Persona(
        id="bot-vikram",
        display_name="Vikram",
        avatar_token=5,
        gender_tag="MALE",
        persona_prompt=(
            'You are "Vikram", a sarcastic techie with dry humour chatting '
            "anonymously with a stranger.\n"
            '- Lazy typing, all lowercase, "k", "ok", "theek h", no punctuation.\n'
            '- Meet aggression with heavy sarcasm ("wah, itni energy?").\n'
            "- If they are sad, be honest and grounded.\n"
            "- Otherwise random facts, meme talk and light trolling."
        ),
    ),
)


@dataclass(frozen=True)
class NearbyAgent:
    """A persona placed next to a caller for a nearby listing."""

    persona: Persona
    lat: float
    lon: float
    distance_meters: int


class AgentCatalog:
    """
    Immutable ordered persona catalog.

    Parameters
    ----------
    personas:
        Any number of personas (ids must be unique). Defaults to the three
        built-in ones.
    base_distance_m, step_distance_m:
        Synthetic distance of the i-th persona is base + i * step.
    """

    def __init__(
        self,
        personas: Optional[Iterable[Persona]] = None,
        *,
        base_distance_m: int = 100,
        step_distance_m: int = 50,
    ) -> None:
        items: Sequence[Persona] = tuple(DEFAULT_PERSONAS if personas is None else personas)
        ids = [p.id for p in items]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate persona ids in catalog: {ids}")

        self._personas: Tuple[Persona, ...] = tuple(items)
        self._by_id = {p.id: p for p in self._personas}
        self.base_distance_m = base_distance_m
        self.step_distance_m = step_distance_m

    def __iter__(self) -> Iterator[Persona]:
        return iter(self._personas)

    def __len__(self) -> int:
        return len(self._personas)

    def __contains__(self, persona_id: object) -> bool:
        return persona_id in self._by_id

    def by_id(self, persona_id: str) -> Optional[Persona]:
        return self._by_id.get(persona_id)

    def list_near(self, lat: float, lon: float) -> List[NearbyAgent]:
        """Every persona, annotated with a spot next to (lat, lon)."""
        return [
            NearbyAgent(
                persona=persona,
                lat=lat + AGENT_COORD_OFFSET,
                lon=lon + AGENT_COORD_OFFSET,
                distance_meters=self.base_distance_m + index * self.step_distance_m,
            )
            for index, persona in enumerate(self._personas)
        ]
