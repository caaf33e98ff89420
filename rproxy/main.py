"""Reverse proxy FastAPI application.

Creates the proxy service, wires the catch-all routes under the configured
prefix, and exposes readiness and Prometheus metrics endpoints.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from rproxy.api.routes import build_router, register_error_handlers
from rproxy.core.config import Settings
from rproxy.services.upstream_client import build_client


def create_app(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    """Build the application for ``settings``.

    ``transport`` replaces the outbound network transport (tests use an
    ``httpx.MockTransport``).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan.

        Creates the shared outbound client (HTTP pool) once and keeps it,
        together with the settings, on ``app.state`` for the duration of the app.
        """
        async with build_client(settings, transport) as client:
            app.state.settings = settings
            app.state.client = client
            yield

    app = FastAPI(title="rproxy", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )
    register_error_handlers(app)

    @app.get("/readyz")
    async def readyz():
        """Readiness endpoint returning a minimal OK payload."""
        return {"status": "ok"}

    @app.get("/metrics")
    async def metrics(_: Request):
        """Prometheus exposition endpoint for proxy process metrics."""
        data = generate_latest()
        return PlainTextResponse(data.decode("utf-8"), media_type=CONTENT_TYPE_LATEST)

    # registered last so the endpoints above win under a root prefix
    app.include_router(build_router(settings.proxy.path_prefix))
    return app
