"""AroundU chat server: anonymous nearby matchmaking with agent fallback."""

__version__ = "0.1.0"
