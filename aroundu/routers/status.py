# aroundu/routers/status.py
# -*- coding: utf-8 -*-
"""
AroundU — /status router
------------------------
Read-only view of the live presence state, for monitoring and debugging:

- GET /status/presence
    participant / room / agent counts, match phases, queued generations,
    and any registry invariant violations (should always be empty).

No participant identities or messages are exposed here.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Request

from aroundu.core.orchestrator import SessionOrchestrator
from aroundu.runtime_state import PresenceRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/status", tags=["status"])


@router.get("/presence")
async def presence_status(request: Request) -> Dict[str, Any]:
    registry: PresenceRegistry = request.app.state.registry
    orchestrator: SessionOrchestrator = request.app.state.orchestrator

    violations = registry.check_invariants()
    if violations:
        logger.error("Registry invariant violations: %s", violations)

    return {
        "presence": registry.stats(),
        "matching": orchestrator.stats(),
        "connections": len(request.app.state.hub),
        "invariant_violations": violations,
    }
