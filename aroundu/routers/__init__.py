"""FastAPI routers (WebSocket event socket, status)."""
