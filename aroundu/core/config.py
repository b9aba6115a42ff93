# aroundu/core/config.py
# -*- coding: utf-8 -*-
"""
AroundU Chat Server — Configuration
-----------------------------------
Central configuration for the chat server, including:

- app metadata
- API host/port and CORS
- the external reply generator (Groq, OpenAI-compatible chat completions)
- matchmaking timings (grace window, agent greeting, agent session length)
- typing-latency simulation and message limits.

Every value can be overridden from the environment or a `.env` file next to
the project root, e.g. `GROQ_API_KEY=gsk_...` or `MATCH_GRACE_S=3`.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

# This file is: <root>/aroundu/core/config.py
APP_DIR: Path = Path(__file__).resolve().parents[1]   # .../aroundu
ROOT_DIR: Path = APP_DIR.parent                       # project root


# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """
    Global configuration for the chat server.

    This class is instantiated once at import time as `settings`
    and used everywhere in the codebase. Tests build their own
    instances with short timings and pass them in explicitly.
    """

    model_config = SettingsConfigDict(
        env_file=ROOT_DIR / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- App / server basics -----------------------------------------------
    app_name: str = "AroundU Chat Server"
    environment: Literal["development", "production", "test"] = "development"
    debug: bool = True

    api_host: str = "0.0.0.0"
    api_port: int = 5001

    # JSON list in env: CORS_ORIGINS='["https://a.example"]'
    cors_origins: List[str] = ["*"]

    # --- Reply generator (Groq) --------------------------------------------
    generator_enabled: bool = True

    # ENV: GROQ_API_KEY=gsk_...
    groq_api_key: str | None = Field(
        default=None,
        description="API key for the Groq chat-completions API (env: GROQ_API_KEY).",
    )
    groq_base_url: str = "https://api.groq.com/openai/v1/chat/completions"
    groq_model: str = "llama-3.3-70b-versatile"
    groq_temperature: float = 0.7
    groq_max_tokens: int = 60
    groq_timeout_s: float = 15.0

    # --- Limits --------------------------------------------------------------
    max_reply_chars: int = 400       # Hard cap on generated agent replies
    max_message_chars: int = 1000    # Hard cap on inbound chat messages

    # --- Matchmaking timings (seconds) --------------------------------------
    match_grace_s: float = 6.0
    agent_greeting_delay_s: float = 1.0
    legacy_greeting_delay_s: float = 0.5
    agent_read_delay_s: float = 1.0
    agent_session_min_s: float = 120.0
    agent_session_max_s: float = 180.0

    # --- Simulated typing latency -------------------------------------------
    # delay_ms = max(typing_min_delay_ms, len(input_text) * typing_ms_per_char)
    typing_min_delay_ms: int = 1000
    typing_ms_per_char: int = 20

    # --- Agent presentation --------------------------------------------------
    agent_nearby_base_m: int = 100
    agent_nearby_step_m: int = 50
    agent_display_placeholder: str = "Stranger"


# Single global settings instance used by the rest of the app.
settings = Settings()
