"""Models shared across the proxy pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel


class ErrorBody(BaseModel):
    """JSON body returned to the caller when the pipeline fails."""

    error: str
    details: str | None = None


@dataclass(frozen=True)
class UpstreamResponse:
    """Fully buffered upstream reply; headers are raw (name, value) pairs."""

    status_code: int
    headers: list[tuple[bytes, bytes]] = field(default_factory=list)
    body: bytes = b""
