from __future__ import annotations

from typing import Callable, Optional

import httpx
import pytest

from rproxy.core.config import Settings


class MockUpstream:
    """In-process upstream built on httpx.MockTransport.

    Records every request it receives and answers with a configurable
    response, or calls ``respond`` when one is given.
    """

    def __init__(
        self,
        *,
        status_code: int = 200,
        body: bytes = b'{"result": "ok"}',
        headers: Optional[list[tuple[str, str]]] = None,
        respond: Optional[Callable[[httpx.Request], httpx.Response]] = None,
    ) -> None:
        self.requests: list[httpx.Request] = []
        self._status_code = status_code
        self._body = body
        self._headers = headers if headers is not None else [("content-type", "application/json")]
        self._respond = respond

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._respond is not None:
            return self._respond(request)
        # a streamed body, as a real transport delivers it
        return httpx.Response(self._status_code, stream=httpx.ByteStream(self._body), headers=self._headers)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Settings for a proxy on /api in front of http://backend:9000."""

    def _make(**overrides) -> Settings:
        values = {
            "target": {"protocol": "http", "host": "backend", "port": 9000},
            "proxy": {"path_prefix": "/api"},
            "request": {"timeout": 5, "accept_invalid_certs": False},
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def upstream() -> MockUpstream:
    return MockUpstream()
