"""API routes for the reverse proxy.

Every method and sub-path under the configured prefix is forwarded to the
single upstream target.
"""
from __future__ import annotations

from logging import getLogger

import httpx
from fastapi import APIRouter, FastAPI, Request, Response
from prometheus_client import Counter

from rproxy.core.config import Settings
from rproxy.core.errors import ProxyError
from rproxy.services.proxy import forward, normalize_prefix

log = getLogger("Proxy.API")

REQUESTS = Counter("proxy_requests_total", "Total incoming proxy requests", ["method"])
ERRORS = Counter("proxy_errors_total", "Proxy requests answered with an error", ["error"])


def _get_settings_and_client(request: Request) -> tuple[Settings, httpx.AsyncClient]:
    """Return the settings and shared client placed on ``app.state`` by the lifespan."""
    return request.app.state.settings, request.app.state.client


async def proxy(request: Request) -> Response:
    REQUESTS.labels(method=request.method).inc()
    settings, client = _get_settings_and_client(request)
    return await forward(request, settings, client)


async def proxy_error_handler(request: Request, exc: ProxyError) -> Response:
    """Render any pipeline failure as its JSON error response."""
    ERRORS.labels(error=type(exc).__name__).inc()
    log.error("%s %s -> %s", request.method, request.url.path, exc)
    return exc.to_response()


def build_router(path_prefix: str) -> APIRouter:
    """Catch-all router for ``path_prefix`` and everything below it."""
    prefix = normalize_prefix(path_prefix)
    router = APIRouter()
    # no methods: every method, standard or not, reaches the upstream
    router.add_route(prefix + "/{path:path}", proxy, include_in_schema=False)
    if prefix:
        router.add_route(prefix, proxy, include_in_schema=False)
    return router


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProxyError, proxy_error_handler)
