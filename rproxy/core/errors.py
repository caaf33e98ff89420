"""Error taxonomy for the proxy pipeline.

Every per-request failure is a ``ProxyError`` subclass that knows its HTTP
status and how to render itself as a JSON body. Lower-layer exceptions are
converted with the ``from_*`` functions below.
"""
from __future__ import annotations

import httpx
from fastapi.responses import JSONResponse

from rproxy.models.schemas import ErrorBody


class ProxyError(Exception):
    """Base class; subclasses set ``category`` and ``status_code``."""

    category = "Proxy error"
    status_code = 500
    include_details = True

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.category}: {self.message}" if self.message else self.category

    def payload(self) -> ErrorBody:
        return ErrorBody(error=self.category, details=str(self) if self.include_details else None)

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content=self.payload().model_dump(exclude_none=True),
        )


class RequestBuilderError(ProxyError):
    """The composed upstream URL could not be parsed."""
    category = "Request build failed"
    status_code = 400


class InvalidHeader(ProxyError):
    """An inbound header value is not plain text."""
    category = "Invalid request header"
    status_code = 400

    def __init__(self, header_name: str):
        super().__init__(header_name)
        self.header_name = header_name


class RequestError(ProxyError):
    """Sending to the upstream failed at the transport layer."""
    category = "Proxy request failed"


class ResponseReadError(ProxyError):
    category = "Failed to read response body"


class ResponseBodyConversionError(ProxyError):
    """The upstream body is not valid UTF-8."""
    category = "Response body conversion error"
    include_details = False


class ConfigError(ProxyError):
    category = "Configuration error"


def from_transport_error(exc: httpx.HTTPError) -> RequestError:
    return RequestError(str(exc) or type(exc).__name__)


def from_read_error(exc: Exception) -> ResponseReadError:
    return ResponseReadError(str(exc) or type(exc).__name__)


def from_config_error(exc: Exception) -> ConfigError:
    return ConfigError(str(exc))


def from_timeout(timeout: float) -> RequestError:
    return RequestError(f"upstream did not answer within {timeout}s")
