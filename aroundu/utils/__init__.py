# aroundu/utils/__init__.py
# -*- coding: utf-8 -*-
"""
AroundU Chat Server — Utility toolbox
-------------------------------------
Shared helpers used across the server:

- logging   : central logging configuration
- timers    : stopwatch for external calls

Import from here for a clean public API, e.g.:

    from aroundu.utils import setup_logging, get_logger
"""

from __future__ import annotations

from .logging import (  # noqa: F401
    setup_logging,
    get_logger,
)

from .timers import (  # noqa: F401
    Stopwatch,
)
