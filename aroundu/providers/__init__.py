"""Clients for external services (reply generator)."""
