"""Reverse-proxy pipeline.

Turns an inbound request into a request against the configured upstream,
sends it, and turns the buffered upstream reply into the response returned
to the caller. Failures at any stage raise a ``ProxyError``.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Tuple
from urllib.parse import unquote

import httpx
from fastapi import Request, Response

from rproxy.core.config import Settings, TargetSettings
from rproxy.core.errors import InvalidHeader, RequestBuilderError, ResponseBodyConversionError
from rproxy.models.schemas import UpstreamResponse
from rproxy.services.upstream_client import send_upstream

log = logging.getLogger("Proxy.Handler")

# Framing headers are regenerated by the transport on each side.
REQUEST_SKIP_HEADERS = {"host", "content-length", "transfer-encoding"}
RESPONSE_SKIP_HEADERS = {"content-length", "transfer-encoding"}

RawHeaders = Iterable[Tuple[bytes, bytes]]


def normalize_prefix(prefix: str) -> str:
    """Leading slash, no trailing slash; the root prefix becomes an empty string."""
    prefix = prefix.strip("/")
    return f"/{prefix}" if prefix else ""


def strip_path_prefix(prefix: str, raw_path: str) -> str:
    """Remove ``prefix`` from the start of ``raw_path``; "/" strips nothing.

    Routing matches on the decoded path, so the leading segments of the raw
    path are compared after percent-decoding ("/%61pi/x" loses "/%61pi").
    """
    prefix = normalize_prefix(prefix)
    if not prefix:
        return raw_path
    depth = prefix.count("/")
    parts = raw_path.split("/", depth + 1)
    if unquote("/".join(parts[:depth + 1])) != prefix:
        return raw_path
    return "/" + parts[depth + 1] if len(parts) > depth + 1 else ""


def inbound_path_and_query(req: Request, prefix: str) -> str:
    """Path (as sent, not re-encoded) below the prefix, plus the query string."""
    raw_path = (req.scope.get("raw_path") or req.url.path.encode("utf-8")).split(b"?", 1)[0]
    path = strip_path_prefix(prefix, raw_path.decode("latin-1"))
    query = req.scope.get("query_string", b"").decode("latin-1")
    return f"{path}?{query}" if query else path


def compose_target_url(target: TargetSettings, path_and_query: str) -> str:
    return f"{target.base_url}{path_and_query}"


def parse_target_url(url: str) -> httpx.URL:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise RequestBuilderError(str(e)) from e
    if parsed.scheme not in ("http", "https"):
        raise RequestBuilderError(f"unsupported URL scheme {parsed.scheme!r} in {url!r}")
    if not parsed.host:
        raise RequestBuilderError(f"empty host in {url!r}")
    return parsed


def _header_text(name: str, value: bytes) -> str:
    # visible ASCII plus space and tab
    if any(b != 0x09 and not 0x20 <= b <= 0x7E for b in value):
        raise InvalidHeader(name)
    return value.decode("ascii")


def filter_request_headers(headers: RawHeaders) -> List[Tuple[str, str]]:
    """Inbound headers minus host/framing headers, order and duplicates kept."""
    out: List[Tuple[str, str]] = []
    for raw_name, raw_value in headers:
        name = raw_name.decode("latin-1")
        if name.lower() in REQUEST_SKIP_HEADERS:
            continue
        out.append((name, _header_text(name, raw_value)))
    return out


def filter_response_headers(headers: RawHeaders) -> List[Tuple[bytes, bytes]]:
    return [(k, v) for k, v in headers if k.decode("latin-1").lower() not in RESPONSE_SKIP_HEADERS]


def build_upstream_request(
    client: httpx.AsyncClient, method: str, url: str, headers: RawHeaders, body: bytes
) -> httpx.Request:
    """Build the outbound request; an empty body is never attached."""
    target = parse_target_url(url)
    return client.build_request(
        method,
        target,
        headers=filter_request_headers(headers),
        content=bytes(body) if body else None,
    )


def build_client_response(upstream: UpstreamResponse) -> Response:
    """Relay status, headers and body; the body must be UTF-8 text."""
    try:
        text = upstream.body.decode("utf-8")
    except UnicodeDecodeError as e:
        log.warning("upstream body is not valid UTF-8 (%s)", e)
        raise ResponseBodyConversionError() from e
    log.debug("response body: %s", text)

    resp = Response(content=upstream.body, status_code=upstream.status_code)
    resp.raw_headers.extend(filter_response_headers(upstream.headers))
    return resp


async def forward(req: Request, settings: Settings, client: httpx.AsyncClient) -> Response:
    """Forward ``req`` to the configured target and return the relayed response."""
    target_url = compose_target_url(settings.target, inbound_path_and_query(req, settings.proxy.path_prefix))

    log.info("=== request ===")
    log.info("target url: %s", target_url)
    log.info("method: %s", req.method)
    log.info("headers: %s", req.headers.raw)
    log.info("query string: %r", req.url.query)
    log.info("client: %s", f"{req.client.host}:{req.client.port}" if req.client else None)

    body = await req.body()
    upstream_request = build_upstream_request(client, req.method, target_url, req.headers.raw, body)
    upstream = await send_upstream(client, upstream_request, settings.request.timeout)

    log.info("=== response ===")
    log.info("status: %s", upstream.status_code)
    log.info("body size: %d bytes", len(upstream.body))

    return build_client_response(upstream)
