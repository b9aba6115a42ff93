# aroundu/utils/timers.py
# -*- coding: utf-8 -*-
"""
AroundU Chat Server — timing utilities
--------------------------------------
A stopwatch for measuring how long the external reply generator takes,
so slow generations (and the queue they hold up) show up in the logs.
"""

from __future__ import annotations

import logging
import time
from typing import Optional


class Stopwatch:
    """
    Context manager that logs the elapsed time of its block.

    Example:
        with Stopwatch("groq reply for bot-priya", logger) as sw:
            text = call_chat_model(messages)
        sw.elapsed_ms  # also available afterwards

    Logs:
        groq reply for bot-priya took 412 ms
    """

    def __init__(
        self,
        label: str,
        logger: Optional[logging.Logger] = None,
        level: int = logging.DEBUG,
    ) -> None:
        self.label = label
        self.logger = logger or logging.getLogger(__name__)
        self.level = level
        self._start: float = 0.0
        self.elapsed_ms: float = 0.0

    def __enter__(self) -> "Stopwatch":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
        outcome = "failed after" if exc_type is not None else "took"
        self.logger.log(self.level, "%s %s %.0f ms", self.label, outcome, self.elapsed_ms)
