# aroundu/runtime_state/registry.py
# -*- coding: utf-8 -*-
"""
AroundU — Presence & Room Registry
----------------------------------

This module implements the in-memory authority over who is connected, who is
free, and which two parties share a room.

Purpose
~~~~~~~
- Mint a participant record for every live connection and drop it again on
  disconnect.
- Answer nearby / compatibility queries for matchmaking.
- Atomically bind two parties into an exclusive room, and tear that room
  down as soon as either side departs.

Design notes
~~~~~~~~~~~~
- Single process, in memory only. Nothing survives a restart.
- Every read-modify-write runs under one re-entrant lock. `allocate_room`
  re-validates both parties inside that lock, which is what protects against
  stale matches: a candidate picked by `find_compatible_peer` may have been
  claimed by someone else by the time allocation happens.
- A participant's `room_id` and the room's membership always change together
  inside the same locked section:
      status == BUSY  <=>  room_id is not None
- Callers only ever receive deep copies. The internal maps are never exposed.
"""

from __future__ import annotations

import random
import threading
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError

from aroundu.core.errors import (
    DeniedError,
    DuplicateParticipantError,
    InvalidInputError,
    NotFoundError,
)
from aroundu.core.geo import distance_meters
from aroundu.core.names import generate_display_name
from aroundu.core.personas import AgentCatalog
from aroundu.core.types import (
    ANY_TAG,
    LeaveResult,
    NearbyEntry,
    ParticipantStatus,
    RoomKind,
)
from aroundu.models.participant_model import GeoLocation, Participant, ProfileUpdate
from aroundu.models.persona_model import Persona
from aroundu.models.room_model import AgentMember, PeerMember, Room
from aroundu.utils import get_logger


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

logger = get_logger("aroundu.runtime_state")


# ---------------------------------------------------------------------------
# Compatibility rule
# ---------------------------------------------------------------------------


def wants(interest_tag: Optional[str], gender_tag: Optional[str]) -> bool:
    """
    True if someone with `interest_tag` accepts someone with `gender_tag`.

    The wildcard ANY accepts everybody. An unset interest never matches,
    and neither does an unset gender unless the interest is ANY.
    """
    if interest_tag is None:
        return False
    if interest_tag == ANY_TAG:
        return True
    return gender_tag is not None and interest_tag == gender_tag


def is_mutual_match(a: Participant, b: Participant) -> bool:
    return wants(a.interest_tag, b.gender_tag) and wants(b.interest_tag, a.gender_tag)


def parse_location(
    lat: Optional[float],
    lon: Optional[float],
    radius: Optional[float],
) -> GeoLocation:
    """Validate raw location values, raising InvalidInputError on any problem."""
    if lat is None or lon is None or radius is None:
        raise InvalidInputError("lat, lon and radius are all required.")
    try:
        return GeoLocation(lat=lat, lon=lon, radius=radius)
    except ValidationError as exc:
        raise InvalidInputError(f"Invalid location data: {exc.errors()[0]['msg']}") from exc


# ---------------------------------------------------------------------------
# Registry implementation
# ---------------------------------------------------------------------------


class PresenceRegistry:
    """
    In-memory presence and room store.

    Parameters
    ----------
    catalog:
        Static agent persona catalog. Personas are always reachable, have no
        mutable status and can sit in any number of rooms at once.
    rng:
        Optional random.Random for deterministic tests (names, avatars,
        candidate choice).
    """

    def __init__(
        self,
        catalog: AgentCatalog,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.catalog = catalog
        self._rng = rng or random.Random()
        self._lock = threading.RLock()

        # Insertion-ordered: nearby ties resolve by connection order.
        self._participants: Dict[str, Participant] = {}
        self._rooms: Dict[str, Room] = {}

    # ------------------------------------------------------------------
    # Internal helpers (lock must be held)
    # ------------------------------------------------------------------

    def _require(self, conn_id: str) -> Participant:
        participant = self._participants.get(conn_id)
        if participant is None:
            raise NotFoundError(f"Unknown connection: {conn_id}")
        return participant

    def _teardown_locked(self, participant: Participant) -> Optional[LeaveResult]:
        """
        Destroy the participant's room and free everyone in it.

        Rooms are strictly two-party, so one departure always ends the room.
        """
        room_id = participant.room_id
        if room_id is None:
            return None

        room = self._rooms.pop(room_id, None)

        participant.room_id = None
        participant.status = ParticipantStatus.AVAILABLE

        if room is None:
            # Should not happen while the invariant holds; repair and report.
            logger.warning(
                "[Registry] Participant %s pointed at missing room %s; reset to AVAILABLE.",
                participant.id,
                room_id,
            )
            return None

        remaining: Optional[Participant] = None
        for other_id in room.peer_ids():
            if other_id == participant.id:
                continue
            other = self._participants.get(other_id)
            if other is not None and other.room_id == room_id:
                other.room_id = None
                other.status = ParticipantStatus.AVAILABLE
                remaining = other

        logger.info(
            "[Registry] Room %s (%s) destroyed after %s left.",
            room_id,
            room.kind.value,
            participant.id,
        )
        return LeaveResult(
            room_id=room_id,
            departing=participant.model_copy(deep=True),
            room_destroyed=True,
            remaining=remaining.model_copy(deep=True) if remaining is not None else None,
            room_kind=room.kind,
            agent_persona_id=room.agent_persona_id(),
        )

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    def create_participant(self, conn_id: str) -> Participant:
        """Mint a fresh AVAILABLE participant with a generated name and avatar."""
        with self._lock:
            if conn_id in self._participants:
                raise DuplicateParticipantError(f"Connection already registered: {conn_id}")

            participant = Participant(
                id=conn_id,
                display_name=generate_display_name(self._rng),
                avatar_token=self._rng.randint(1, 10),
            )
            self._participants[conn_id] = participant
            logger.info(
                "[Registry] Participant %s created as %r.",
                conn_id,
                participant.display_name,
            )
            return participant.model_copy(deep=True)

    def get_participant(self, conn_id: str) -> Optional[Participant]:
        with self._lock:
            participant = self._participants.get(conn_id)
            return participant.model_copy(deep=True) if participant is not None else None

    def list_participants(self) -> List[Participant]:
        with self._lock:
            return [p.model_copy(deep=True) for p in self._participants.values()]

    def register_location(
        self,
        conn_id: str,
        lat: Optional[float],
        lon: Optional[float],
        radius: Optional[float],
    ) -> Tuple[Participant, Optional[LeaveResult]]:
        """
        Set the participant's position and search radius.

        Always leaves the participant AVAILABLE. If they were still in a room,
        that room is torn down in the same locked section and the teardown is
        returned alongside the updated record, so the caller can tell the
        counterpart.
        """
        location = parse_location(lat, lon, radius)

        with self._lock:
            participant = self._require(conn_id)
            left = self._teardown_locked(participant)

            participant.location = location
            participant.status = ParticipantStatus.AVAILABLE
            logger.debug(
                "[Registry] Location for %s: lat=%.5f lon=%.5f radius=%.0f",
                conn_id,
                location.lat,
                location.lon,
                location.radius,
            )
            return participant.model_copy(deep=True), left

    def update_profile(self, conn_id: str, update: ProfileUpdate) -> Participant:
        """Apply only the fields present in `update` and return the merged record."""
        with self._lock:
            participant = self._require(conn_id)
            for field_name, value in update.present_fields().items():
                setattr(participant, field_name, value)
            return participant.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Matchmaking queries
    # ------------------------------------------------------------------

    def find_nearby(self, conn_id: str) -> List[NearbyEntry]:
        """
        Everyone the caller can see, nearest first.

        - Other AVAILABLE participants with a location within the caller's own
          radius (the counterpart's radius is not consulted).
        - Every agent persona, at its synthetic distance.
        Sorting is stable, so ties keep connection order, peers before agents.
        """
        with self._lock:
            caller = self._require(conn_id)
            if caller.location is None:
                raise InvalidInputError("Register a location before looking for nearby users.")
            origin = caller.location

            entries: List[NearbyEntry] = []
            for other in self._participants.values():
                if other.id == conn_id:
                    continue
                if other.status is not ParticipantStatus.AVAILABLE:
                    continue
                if other.location is None:
                    continue

                distance = distance_meters(
                    origin.lat, origin.lon, other.location.lat, other.location.lon
                )
                if distance <= origin.radius:
                    entries.append(
                        NearbyEntry(
                            id=other.id,
                            display_name=other.display_name,
                            avatar_token=other.avatar_token,
                            distance_meters=int(round(distance)),
                        )
                    )

        for agent in self.catalog.list_near(origin.lat, origin.lon):
            entries.append(
                NearbyEntry(
                    id=agent.persona.id,
                    display_name=agent.persona.display_name,
                    avatar_token=agent.persona.avatar_token,
                    distance_meters=agent.distance_meters,
                    is_agent=True,
                )
            )

        entries.sort(key=lambda e: e.distance_meters)
        return entries

    def find_compatible_peer(self, conn_id: str) -> Optional[Participant]:
        """Uniformly random AVAILABLE participant that mutually matches the caller."""
        with self._lock:
            caller = self._require(conn_id)
            candidates = [
                other
                for other in self._participants.values()
                if other.id != conn_id
                and other.status is ParticipantStatus.AVAILABLE
                and is_mutual_match(caller, other)
            ]
            if not candidates:
                return None
            return self._rng.choice(candidates).model_copy(deep=True)

    def find_agent_match(self, conn_id: str) -> Optional[Persona]:
        """
        Pick a persona for the caller.

        Prefers personas whose gender the caller's interest accepts; if none
        do, falls back to any persona. Only returns None for an empty catalog.
        """
        with self._lock:
            caller = self._require(conn_id)
            interest = caller.interest_tag

        personas = list(self.catalog)
        if not personas:
            return None
        preferred = [p for p in personas if wants(interest, p.gender_tag)]
        return self._rng.choice(preferred or personas)

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    def get_room(self, room_id: str) -> Optional[Room]:
        with self._lock:
            room = self._rooms.get(room_id)
            return room.model_copy(deep=True) if room is not None else None

    def list_rooms(self) -> List[Room]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._rooms.values()]

    def allocate_room(self, conn_id: str, counterpart_id: str) -> Room:
        """
        Bind the caller and a counterpart (participant or persona) into a room.

        Both sides are re-validated here, under the lock. If either is gone or
        already busy, DeniedError is raised and nothing changes.
        """
        with self._lock:
            initiator = self._participants.get(conn_id)
            if initiator is None:
                raise DeniedError(f"Unknown connection: {conn_id}")
            if initiator.status is not ParticipantStatus.AVAILABLE:
                raise DeniedError("You are already in a chat.")
            if counterpart_id == conn_id:
                raise DeniedError("Cannot start a chat with yourself.")

            persona = self.catalog.by_id(counterpart_id)
            if persona is not None:
                room = Room(
                    kind=RoomKind.AGENT,
                    members=[
                        PeerMember(participant_id=initiator.id),
                        AgentMember(persona_id=persona.id),
                    ],
                )
                partner: Optional[Participant] = None
            else:
                partner = self._participants.get(counterpart_id)
                if partner is None:
                    raise DeniedError(f"User not found: {counterpart_id}")
                if partner.status is not ParticipantStatus.AVAILABLE:
                    raise DeniedError("User is currently busy.")
                room = Room(
                    kind=RoomKind.PEER,
                    members=[
                        PeerMember(participant_id=initiator.id),
                        PeerMember(participant_id=partner.id),
                    ],
                )

            self._rooms[room.id] = room
            for member in (initiator, partner):
                if member is None:
                    continue
                member.room_id = room.id
                member.status = ParticipantStatus.BUSY

            logger.info(
                "[Registry] Room %s (%s) allocated: %s <-> %s",
                room.id,
                room.kind.value,
                conn_id,
                counterpart_id,
            )
            return room.model_copy(deep=True)

    def leave(self, conn_id: str) -> Optional[LeaveResult]:
        """
        Take the participant out of their room; the room is destroyed and the
        counterpart freed. Returns None if there was no room (or no such
        connection), so a second call is a no-op.
        """
        with self._lock:
            participant = self._participants.get(conn_id)
            if participant is None or participant.room_id is None:
                return None
            return self._teardown_locked(participant)

    def disconnect(self, conn_id: str) -> Optional[LeaveResult]:
        """Leave any room, then forget the participant. Unknown ids are ignored."""
        with self._lock:
            participant = self._participants.get(conn_id)
            if participant is None:
                return None
            result = self._teardown_locked(participant)
            del self._participants[conn_id]
            logger.info("[Registry] Participant %s removed.", conn_id)
            return result

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def check_invariants(self) -> List[str]:
        """Return human-readable invariant violations (empty when consistent)."""
        problems: List[str] = []
        with self._lock:
            for p in self._participants.values():
                busy = p.status is ParticipantStatus.BUSY
                if busy != (p.room_id is not None):
                    problems.append(f"{p.id}: status={p.status.value} room_id={p.room_id}")
                if p.room_id is not None:
                    room = self._rooms.get(p.room_id)
                    if room is None:
                        problems.append(f"{p.id}: room {p.room_id} does not exist")
                    elif p.id not in room.peer_ids():
                        problems.append(f"{p.id}: not a member of room {p.room_id}")

            for room in self._rooms.values():
                if len(room.members) != 2:
                    problems.append(f"room {room.id}: {len(room.members)} members")
                for pid in room.peer_ids():
                    member = self._participants.get(pid)
                    if member is None or member.room_id != room.id:
                        problems.append(f"room {room.id}: member {pid} not bound to it")
        return problems

    def stats(self) -> Dict[str, int]:
        with self._lock:
            busy = sum(1 for p in self._participants.values() if p.status is ParticipantStatus.BUSY)
            return {
                "participants": len(self._participants),
                "available": len(self._participants) - busy,
                "busy": busy,
                "rooms": len(self._rooms),
                "agent_rooms": sum(1 for r in self._rooms.values() if r.kind is RoomKind.AGENT),
                "agents": len(self.catalog),
            }
