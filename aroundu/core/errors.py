# aroundu/core/errors.py
# -*- coding: utf-8 -*-
"""
AroundU Chat Server — Error taxonomy
------------------------------------
Errors raised by the registry and surfaced to clients as `error` frames.

None of these are fatal: the orchestrator turns them into a structured
`{"code": ..., "message": ...}` payload for the offending connection and
keeps serving everybody else.
"""

from __future__ import annotations


class AroundUError(Exception):
    """Base class for recoverable matchmaking errors."""

    code: str = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(AroundUError):
    """Unknown connection, participant, persona or room."""

    code = "not_found"


class InvalidInputError(AroundUError):
    """Missing or malformed location / profile / message fields."""

    code = "invalid_input"


class DeniedError(AroundUError):
    """Allocation lost a race or the target is busy. The caller may retry."""

    code = "denied"


class DuplicateParticipantError(AroundUError):
    """A connection id was registered twice (programming error)."""

    code = "duplicate_participant"
