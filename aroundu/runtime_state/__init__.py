"""
Runtime state package for the AroundU chat server.

This package owns the live presence state: connected participants, their
availability, and the two-party rooms they are bound into.

Typical usage (e.g. in the session orchestrator):

    from aroundu.runtime_state import PresenceRegistry

    registry = PresenceRegistry(catalog)
    me = registry.create_participant(conn_id)
    peer = registry.find_compatible_peer(conn_id)
    if peer is not None:
        room = registry.allocate_room(conn_id, peer.id)   # may raise DeniedError
    ...
    result = registry.leave(conn_id)                      # None if not in a room
"""

from .registry import (
    PresenceRegistry,
    is_mutual_match,
    parse_location,
    wants,
)

__all__ = [
    "PresenceRegistry",
    "is_mutual_match",
    "parse_location",
    "wants",
]
