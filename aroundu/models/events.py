# aroundu/models/events.py
# -*- coding: utf-8 -*-
"""
AroundU — Socket event payloads
-------------------------------
Inbound payload models (validated with Pydantic) and builders for the
outbound payloads sent to clients.

Inbound frame data uses camelCase keys, e.g.

    {"event": "register_location", "data": {"lat": 60.17, "lon": 24.94, "radius": 500}}
    {"event": "request_chat",      "data": {"targetId": "bot-priya"}}
    {"event": "respond_chat",      "data": {"targetId": "<conn id>", "accept": true}}
    {"event": "send_message",      "data": {"text": "hello"}}     # or just "hello"
    {"event": "typing",            "data": {"isTyping": true}}    # or just true

Outbound payloads never reveal an agent's real display name: agents are
shown as a generic placeholder (settings.agent_display_placeholder).
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import Field

from aroundu.core.personas import AgentCatalog
from aroundu.core.types import NearbyEntry
from aroundu.models.participant_model import CamelModel, Participant
from aroundu.models.room_model import AgentMember, PeerMember, Room


# ---------------------------------------------------------------------------
# Inbound payloads
# ---------------------------------------------------------------------------


class RegisterLocationPayload(CamelModel):
    # Optional here so a missing field reaches the registry's own check
    # and comes back as a uniform invalid_input error.
    lat: Optional[float] = None
    lon: Optional[float] = None
    radius: Optional[float] = None


class RequestChatPayload(CamelModel):
    target_id: str = Field(..., min_length=1)


class RespondChatPayload(CamelModel):
    target_id: str = Field(..., min_length=1)
    accept: bool = False


class SendMessagePayload(CamelModel):
    text: str = ""


class TypingPayload(CamelModel):
    is_typing: bool = False


# ---------------------------------------------------------------------------
# Outbound payload builders
# ---------------------------------------------------------------------------


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def user_payload(participant: Participant) -> Dict[str, Any]:
    return participant.to_payload()


def nearby_payload(entries: List[NearbyEntry], placeholder: str) -> List[Dict[str, Any]]:
    return [
        {
            "id": e.id,
            "displayName": placeholder if e.is_agent else e.display_name,
            "avatarToken": e.avatar_token,
            "distanceMeters": e.distance_meters,
        }
        for e in entries
    ]


def room_users_payload(
    room: Room,
    participants: Dict[str, Participant],
    catalog: AgentCatalog,
    placeholder: str,
) -> List[Dict[str, Any]]:
    """Member list for room_joined / room_users, agents masked."""
    users: List[Dict[str, Any]] = []
    for member in room.members:
        if isinstance(member, PeerMember):
            p = participants.get(member.participant_id)
            if p is None:
                continue
            users.append(p.public_card())
        elif isinstance(member, AgentMember):
            persona = catalog.by_id(member.persona_id)
            if persona is None:
                continue
            users.append(
                {
                    "id": persona.id,
                    "displayName": placeholder,
                    "avatarToken": persona.avatar_token,
                }
            )
    return users


def room_payload(room: Room, users: List[Dict[str, Any]]) -> Dict[str, Any]:
    # Agent rooms look exactly like peer rooms from the client side.
    return {
        "id": room.id,
        "createdAt": room.created_at.isoformat().replace("+00:00", "Z"),
        "users": users,
    }


def message_payload(
    *,
    user_id: str,
    display_name: str,
    avatar_token: int,
    text: str,
) -> Dict[str, Any]:
    return {
        "id": str(time.time_ns()),
        "userId": user_id,
        "displayName": display_name,
        "avatarToken": avatar_token,
        "text": text,
        "timestamp": utc_now_iso(),
    }


def error_payload(code: str, message: str, details: Any | None = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        payload["details"] = details
    return payload
