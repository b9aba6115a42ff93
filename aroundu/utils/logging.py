# aroundu/utils/logging.py
# -*- coding: utf-8 -*-
"""
AroundU Chat Server — logging utilities
---------------------------------------
Central logging configuration for the chat server.

We try to:
- Use one format for matchmaking, broker and transport logs.
- Honour settings.debug (DEBUG in development, INFO otherwise).
- Keep uvicorn access logs and the HTTP client quiet unless asked.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS = ("uvicorn.access", "uvicorn.error", "urllib3", "websockets")


def setup_logging(
    *,
    debug: bool = False,
    level: Optional[int] = None,
) -> None:
    """
    Configure root logging for the process.

    Parameters
    ----------
    debug:
        If True, default log level becomes DEBUG, otherwise INFO.
        Wired from settings.debug in aroundu.main.
    level:
        Optional explicit level (overrides `debug`).

    Safe to call more than once: a second call only adjusts levels.
    """
    base_level = level if level is not None else (logging.DEBUG if debug else logging.INFO)

    root = logging.getLogger()
    if root.handlers:
        root.setLevel(base_level)
        for h in root.handlers:
            h.setLevel(base_level)
        return

    logging.basicConfig(level=base_level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)

    noisy_level = os.getenv("AROUNDU_NOISY_LOG_LEVEL", "WARNING")
    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(noisy_level)


def get_logger(name: str) -> logging.Logger:
    """
    Small convenience wrapper around logging.getLogger.

    Usage:
        from aroundu.utils import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)
