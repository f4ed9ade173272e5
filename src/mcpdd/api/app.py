"""FastAPI application factory for mcpdd."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mcpdd import __version__
from mcpdd.api.routes import diagnostics, status
from mcpdd.config.loader import load_config
from mcpdd.config.models import MonitorConfig
from mcpdd.monitor import Monitor

logger = logging.getLogger(__name__)


def create_app(monitor: Monitor | None = None, start_background: bool = True) -> FastAPI:
    if monitor is None:
        try:
            config = load_config()
        except (FileNotFoundError, ValueError) as exc:
            logger.warning("Using default configuration: %s", exc)
            config = MonitorConfig()
        try:
            monitor = Monitor.from_config(config)
        except (OSError, ValueError):
            logger.exception("Failed to load catalog, starting with no services")
            monitor = Monitor(config, [])

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if start_background:
            await monitor.start()
        try:
            yield
        finally:
            if start_background:
                await monitor.stop()

    app = FastAPI(
        title="mcpdd",
        version=__version__,
        description="Uptime monitoring for remote MCP servers",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.monitor = monitor

    @app.get("/health", tags=["meta"])
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(status.router, prefix="/api")
    app.include_router(diagnostics.router, prefix="/api")

    return app
