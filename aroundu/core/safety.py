# aroundu/core/safety.py
# -*- coding: utf-8 -*-
"""
AroundU Chat Server — Safety helpers
------------------------------------
Central place for:
- Cleaning chat messages before they are broadcast or sent to the generator.
- Clamping generated agent replies before they reach a room.

These functions are pure (no network, no I/O) so they are easy to test.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_message(raw_text: Optional[str], max_chars: int) -> str:
    """
    Clean up a chat message.

    - None / non-strings become "".
    - Control characters are removed (newlines and tabs are kept).
    - Leading/trailing whitespace is trimmed.
    - Text is cut at `max_chars`.

    An empty result means "nothing to send".
    """
    original = raw_text if isinstance(raw_text, str) else ""
    cleaned = _CONTROL_CHARS_RE.sub("", original).strip()

    if max_chars > 0 and len(cleaned) > max_chars:
        logger.debug("sanitize_message: truncated message from %d to %d chars", len(cleaned), max_chars)
        cleaned = cleaned[:max_chars].rstrip()

    return cleaned


def clamp_reply_text(reply_text: str, limit: int) -> str:
    """
    Keep generated replies short enough for a chat bubble.

    - limit <= 0: returns "".
    - Too long: cut to (limit - 3) and append "...".
    """
    text = reply_text if isinstance(reply_text, str) else str(reply_text or "")

    if limit <= 0:
        return ""
    if len(text) <= limit:
        return text

    if limit > 3:
        return text[: limit - 3].rstrip() + "..."
    return text[:limit]
