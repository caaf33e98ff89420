"""Outbound HTTP client for the upstream target.

Holds the construction of the single shared httpx.AsyncClient and the
Forwarder, which submits a prepared request and buffers the reply.
"""

from __future__ import annotations

import logging
from typing import Optional

import anyio
import httpx
from prometheus_client import Counter

from rproxy.core.config import Settings
from rproxy.core.errors import from_read_error, from_timeout, from_transport_error
from rproxy.models.schemas import UpstreamResponse

log = logging.getLogger("Proxy.Forwarder")

UPSTREAM_RESPONSES = Counter(
    "proxy_upstream_responses_total", "Responses received from the upstream", ["status"]
)

# headers httpx adds to every request unless told otherwise
CLIENT_DEFAULT_HEADERS = ("accept", "accept-encoding", "connection", "user-agent")


def build_client(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Create the shared client with the configured timeout and certificate policy."""
    client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.request.timeout),
        verify=not settings.request.accept_invalid_certs,
        follow_redirects=True,
        transport=transport,
    )
    # Only the caller's headers go upstream; bodies are relayed undecoded.
    for name in CLIENT_DEFAULT_HEADERS:
        client.headers.pop(name, None)
    return client


async def send_upstream(client: httpx.AsyncClient, request: httpx.Request, timeout: float) -> UpstreamResponse:
    """Send ``request`` once and read the whole body into memory.

    ``timeout`` bounds the send and the body read together. Transport
    failures and timeouts become ``RequestError``, other failures while
    reading the body become ``ResponseReadError``. No retry is attempted.
    """
    try:
        with anyio.fail_after(timeout):
            try:
                response = await client.send(request, stream=True)
            except httpx.HTTPError as e:
                log.warning("upstream %s %s failed: %s", request.method, request.url, e)
                raise from_transport_error(e) from e

            try:
                body = b"".join([chunk async for chunk in response.aiter_raw()])
            except httpx.TimeoutException as e:
                log.warning("reading upstream body from %s timed out: %s", request.url, e)
                raise from_transport_error(e) from e
            except httpx.HTTPError as e:
                log.warning("reading upstream body from %s failed: %s", request.url, e)
                raise from_read_error(e) from e
            finally:
                with anyio.CancelScope(shield=True):
                    await response.aclose()
    except TimeoutError as e:
        log.warning("upstream %s %s exceeded %ss", request.method, request.url, timeout)
        raise from_timeout(timeout) from e

    UPSTREAM_RESPONSES.labels(status=str(response.status_code)).inc()
    return UpstreamResponse(
        status_code=response.status_code,
        headers=list(response.headers.raw),
        body=body,
    )
