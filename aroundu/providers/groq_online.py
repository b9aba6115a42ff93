# aroundu/providers/groq_online.py
# -*- coding: utf-8 -*-
"""
AroundU Chat Server — Reply generator provider (Groq)
-----------------------------------------------------
This module is the ONLY place that knows how to talk to the external text
generator (Groq's OpenAI-compatible chat-completions endpoint).

Responsibilities:
- Build the message list for a persona (persona prompt + style rules).
- Build the HTTP request (URL, headers, JSON payload).
- Parse the response and return the assistant text.

It is used by aroundu/core/broker.py, which serialises calls and turns any
GeneratorError into a "no reply" for the room.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from aroundu.core.config import Settings, settings as default_settings
from aroundu.models.persona_model import Persona

logger = logging.getLogger(__name__)

STYLE_SUFFIX = (
    "CRITICAL: Never use emojis. Never mention being an AI. Keep it under 3 lines. "
    "Match the user's language and tone."
)


class GeneratorError(Exception):
    """Raised when the external generator fails in a recoverable way."""


def build_persona_messages(persona: Persona, user_text: str) -> List[Dict[str, str]]:
    """
    Build the chat messages for one persona turn.

    Returns
    -------
    [{"role": "system", "content": <persona prompt + style rules>},
     {"role": "user", "content": <user_text>}]
    """
    return [
        {"role": "system", "content": f"{persona.persona_prompt}\n\n{STYLE_SUFFIX}"},
        {"role": "user", "content": user_text},
    ]


def _build_payload(messages: List[Dict[str, str]], cfg: Settings) -> Dict[str, Any]:
    return {
        "model": cfg.groq_model,
        "messages": messages,
        "temperature": cfg.groq_temperature,
        "max_tokens": cfg.groq_max_tokens,
    }


def call_chat_model(
    messages: List[Dict[str, str]],
    cfg: Optional[Settings] = None,
) -> str:
    """
    Call the Groq chat-completions API and return the assistant's text.

    Blocking; the broker runs it in a worker thread.

    Raises
    ------
    GeneratorError
        If the generator is disabled, has no API key, or the HTTP/JSON fails
        or comes back empty.
    """
    cfg = cfg or default_settings

    if not cfg.generator_enabled:
        raise GeneratorError("Reply generator is disabled in config.")

    api_key = cfg.groq_api_key
    if not api_key:
        raise GeneratorError("GROQ_API_KEY is missing.")

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    try:
        resp = requests.post(
            cfg.groq_base_url,
            headers=headers,
            json=_build_payload(messages, cfg),
            timeout=cfg.groq_timeout_s,
        )
    except requests.RequestException as exc:
        raise GeneratorError(f"Generator HTTP error: {exc}") from exc

    if resp.status_code != 200:
        text_preview = resp.text[:200].replace("\n", " ")
        raise GeneratorError(f"Generator HTTP {resp.status_code}: {text_preview}")

    try:
        data = resp.json()
    except ValueError as exc:
        raise GeneratorError("Generator returned non-JSON response.") from exc

    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise GeneratorError(
            "Generator response JSON missing choices[0].message.content"
        ) from exc

    if not isinstance(content, str) or not content.strip():
        raise GeneratorError("Generator returned empty content.")

    return content.strip()
