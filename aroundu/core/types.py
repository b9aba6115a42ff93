# aroundu/core/types.py
# -*- coding: utf-8 -*-
"""
AroundU Chat Server — Shared type helpers
-----------------------------------------
Central place for small shared type definitions used across the core:

- ParticipantStatus : AVAILABLE / BUSY
- RoomKind          : PEER / AGENT
- MatchPhase        : per-connection match-attempt state
- NearbyEntry       : one row of a nearby listing (peer or agent)
- AgentReply        : generated text plus simulated typing delay
- LeaveResult       : what a room teardown changed, for notifying counterparts
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from aroundu.models.participant_model import Participant

# Wildcard interest tag: "I am happy to talk to anyone".
ANY_TAG = "ANY"


class ParticipantStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    BUSY = "BUSY"


class RoomKind(str, Enum):
    PEER = "PEER"
    AGENT = "AGENT"


class MatchPhase(str, Enum):
    """Where a connection is in the start_matching protocol."""

    IDLE = "IDLE"
    SEEKING_REAL = "SEEKING_REAL"
    SEEKING_ANY = "SEEKING_ANY"
    MATCHED = "MATCHED"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NearbyEntry:
    """
    One entry of a nearby listing.

    Attributes
    ----------
    id:
        Connection id for peers, persona id for agents.
    display_name:
        Real display name. Client payloads mask it for agents.
    avatar_token:
        1-10.
    distance_meters:
        Whole meters from the caller (synthetic for agents).
    is_agent:
        True for catalog personas.
    """

    id: str
    display_name: str
    avatar_token: int
    distance_meters: int
    is_agent: bool = False


@dataclass(frozen=True)
class AgentReply:
    """Generated agent text and how long to 'type' it before sending."""

    text: str
    delay_ms: int


@dataclass(frozen=True)
class LeaveResult:
    """
    Outcome of a room teardown.

    Attributes
    ----------
    room_id:
        The destroyed room.
    departing:
        Snapshot of the participant who left (already AVAILABLE again).
    room_destroyed:
        Always True: every room is two-party.
    remaining:
        Snapshot of the peer counterpart, reset to AVAILABLE, or None for
        agent rooms.
    room_kind:
        PEER or AGENT.
    agent_persona_id:
        Persona that was in the room, for AGENT rooms.
    """

    room_id: str
    departing: "Participant"
    room_destroyed: bool
    remaining: Optional["Participant"]
    room_kind: RoomKind
    agent_persona_id: Optional[str] = None
