"""Matchmaking engine: config, personas, broker, hub and orchestrator."""
