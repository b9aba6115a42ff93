# aroundu/models/room_model.py
# -*- coding: utf-8 -*-
"""
AroundU — Room models
---------------------
A room binds exactly two members for one conversation:

- PEER  rooms: two PeerMember entries.
- AGENT rooms: one PeerMember and one AgentMember.

Members are a tagged union discriminated on `kind`, resolved once when the
room is allocated, so nothing downstream has to guess whether an id belongs
to a person or a persona.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union

from pydantic import Field

from aroundu.core.types import RoomKind
from aroundu.models.participant_model import CamelModel


class PeerMember(CamelModel):
    kind: Literal["peer"] = "peer"
    participant_id: str


class AgentMember(CamelModel):
    kind: Literal["agent"] = "agent"
    persona_id: str


RoomMember = Annotated[Union[PeerMember, AgentMember], Field(discriminator="kind")]


class Room(CamelModel):
    """An exclusive two-party conversation."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    kind: RoomKind
    members: List[RoomMember]
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def peer_ids(self) -> List[str]:
        return [m.participant_id for m in self.members if isinstance(m, PeerMember)]

    def agent_persona_id(self) -> Optional[str]:
        for m in self.members:
            if isinstance(m, AgentMember):
                return m.persona_id
        return None
