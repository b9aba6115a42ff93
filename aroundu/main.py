# aroundu/main.py
# -*- coding: utf-8 -*-
"""
AroundU Chat Server — FastAPI application entrypoint
----------------------------------------------------
This file wires everything together:

- Sets up central logging.
- Builds the engine: persona catalog, presence registry, reply broker,
  connection hub and session orchestrator (one of each per process).
- Creates the FastAPI app, adds CORS outside production.
- Mounts routers:
    * /ws/chat          (WebSocket) -> participant event socket
    * /status/presence  (HTTP)      -> read-only presence snapshot
- Exposes an ASGI `app` object for uvicorn.

Typical run command (dev):

    uvicorn aroundu.main:app --host 0.0.0.0 --port 5001 --reload

"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from aroundu.core.broker import AgentResponseBroker, GenerateFn
from aroundu.core.config import Settings, settings as default_settings
from aroundu.core.hub import ConnectionHub
from aroundu.core.orchestrator import SessionOrchestrator
from aroundu.core.personas import AgentCatalog
from aroundu.routers.status import router as status_router
from aroundu.routers.ws import router as ws_router
from aroundu.runtime_state import PresenceRegistry
from aroundu.utils import get_logger, setup_logging


setup_logging(debug=default_settings.debug)
logger = get_logger(__name__)


def create_app(
    cfg: Optional[Settings] = None,
    *,
    generate_fn: Optional[GenerateFn] = None,
) -> FastAPI:
    """
    Application factory.

    Parameters
    ----------
    cfg:
        Settings override (tests use short timers).
    generate_fn:
        Replacement for the Groq call, mainly for tests.
    """
    cfg = cfg or default_settings

    catalog = AgentCatalog(
        base_distance_m=cfg.agent_nearby_base_m,
        step_distance_m=cfg.agent_nearby_step_m,
    )
    registry = PresenceRegistry(catalog)
    broker = AgentResponseBroker(catalog, generate_fn, cfg=cfg)
    hub = ConnectionHub()
    orchestrator = SessionOrchestrator(registry, broker, hub, cfg=cfg)

    if generate_fn is None and not cfg.groq_api_key:
        logger.error("No GROQ_API_KEY provided. Agents will stay silent.")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "AroundU chat server starting (env=%s, agents=%d, generator_enabled=%s)",
            cfg.environment,
            len(catalog),
            cfg.generator_enabled,
        )
        yield
        await orchestrator.shutdown()

    app = FastAPI(
        title=cfg.app_name,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.registry = registry
    app.state.broker = broker
    app.state.hub = hub
    app.state.orchestrator = orchestrator

    # ------------------------------------------------------------------
    # CORS (browser clients connect from a different origin in dev)
    # ------------------------------------------------------------------
    if cfg.environment != "production":
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cfg.cors_origins,
            allow_credentials=False,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    app.include_router(ws_router)
    app.include_router(status_router)

    # ------------------------------------------------------------------
    # Meta / health endpoints
    # ------------------------------------------------------------------

    @app.get("/", tags=["meta"])
    async def root():
        return {
            "name": cfg.app_name,
            "environment": cfg.environment,
            "message": "AroundU backend is running.",
        }

    @app.get("/health", tags=["meta"])
    async def health_check():
        """Lightweight health check for load balancers / monitoring."""
        return {
            "status": "ok",
            "environment": cfg.environment,
            "debug": cfg.debug,
            "generator_enabled": cfg.generator_enabled,
            "generator_configured": generate_fn is not None or bool(cfg.groq_api_key),
        }

    logger.info("FastAPI app created (env=%s)", cfg.environment)
    return app


# ASGI app for uvicorn / gunicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "aroundu.main:app",
        host=default_settings.api_host,
        port=default_settings.api_port,
        reload=(default_settings.environment != "production"),
    )
