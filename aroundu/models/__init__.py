"""Pydantic models for participants, rooms, personas and socket events."""
