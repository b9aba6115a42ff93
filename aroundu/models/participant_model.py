# aroundu/models/participant_model.py
# -*- coding: utf-8 -*-
"""
AroundU — Participant models
----------------------------
Pydantic models for the people currently connected to the server.

- GeoLocation   : where a participant is and how far they want to search.
- ProfileUpdate : partial update of display name / gender / interest tags.
- Participant   : one record per live connection, owned by the registry.

Client-facing JSON uses camelCase keys (displayName, avatarToken, ...),
Python code uses the snake_case attribute names. Both are accepted on input.

Location and tags are explicit optionals: "not registered yet" is `None`,
never a zero sentinel, so latitude 0 / longitude 0 are perfectly valid.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from aroundu.core.types import ParticipantStatus


class CamelModel(BaseModel):
    """Base model that speaks camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_payload(self) -> dict:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


def _normalize_tag(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    tag = str(value).strip().upper()
    return tag or None


class GeoLocation(CamelModel):
    """
    A registered position plus the participant's own search radius.

    - lat, lon: WGS84 degrees.
    - radius: search radius in meters, strictly positive.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        allow_inf_nan=False,
        frozen=True,
    )

    lat: float = Field(..., ge=-90.0, le=90.0, description="Latitude in degrees.")
    lon: float = Field(..., ge=-180.0, le=180.0, description="Longitude in degrees.")
    radius: float = Field(..., gt=0.0, description="Search radius in meters.")


class ProfileUpdate(CamelModel):
    """
    Partial profile update. Only fields that are present (not None)
    are applied by the registry.
    """

    display_name: Optional[str] = Field(default=None, min_length=1, max_length=40)
    gender_tag: Optional[str] = Field(default=None, max_length=32)
    interest_tag: Optional[str] = Field(default=None, max_length=32)

    @field_validator("display_name")
    @classmethod
    def _strip_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("display name must not be blank")
        return value

    @field_validator("gender_tag", "interest_tag")
    @classmethod
    def _upper_tags(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_tag(value)

    def present_fields(self) -> dict:
        return self.model_dump(exclude_none=True)


class Participant(CamelModel):
    """
    One connected participant.

    Invariant (maintained by PresenceRegistry):
        status == BUSY  <=>  room_id is not None
    """

    id: str
    display_name: str
    avatar_token: int = Field(..., ge=1, le=10)
    location: Optional[GeoLocation] = None
    gender_tag: Optional[str] = None
    interest_tag: Optional[str] = None
    status: ParticipantStatus = ParticipantStatus.AVAILABLE
    room_id: Optional[str] = None
    joined_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_available(self) -> bool:
        return self.status is ParticipantStatus.AVAILABLE

    def public_card(self) -> dict:
        """Minimal identity shown to other participants."""
        return {
            "id": self.id,
            "displayName": self.display_name,
            "avatarToken": self.avatar_token,
        }
