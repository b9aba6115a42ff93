# aroundu/models/persona_model.py
# -*- coding: utf-8 -*-
"""
AroundU — Persona model
-----------------------
A scripted conversational agent from the static catalog. Immutable for the
lifetime of the process; `persona_prompt` is only ever read by the reply
generator.
"""

from __future__ import annotations

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from aroundu.models.participant_model import CamelModel


class Persona(CamelModel):
    """Catalog entry for an agent."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    id: str
    display_name: str
    avatar_token: int = Field(..., ge=1, le=10)
    gender_tag: str
    persona_prompt: str = Field(..., repr=False)
