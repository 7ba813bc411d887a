"""Response envelope returned by the orchestrator.

:class:`Response` carries a decoded value together with the raw bytes it
came from and where it came from (:class:`ResponseSource`): the network,
the offline cache, or a request's sample data.  Cache and sample responses
have no status code or headers.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ResponseSource(str, enum.Enum):
    """Where a response payload came from."""

    NETWORK = "network"
    CACHE = "cache"
    SAMPLE = "sample"


@dataclass(frozen=True)
class Response(Generic[T]):
    """A decoded response with its provenance.

    Attributes:
        data: The decoded value.
        raw: The bytes *data* was decoded from.
        source: Network, offline cache, or sample data.
        status_code: HTTP status for network responses, else ``None``.
        headers: Response headers for network responses, else empty.
    """

    data: T
    raw: bytes
    source: ResponseSource = ResponseSource.NETWORK
    status_code: Optional[int] = None
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def cached(cls, data: T, raw: bytes) -> Response[T]:
        """Build a response served from the offline cache."""
        return cls(data=data, raw=raw, source=ResponseSource.CACHE)

    @classmethod
    def sample(cls, data: T, raw: bytes) -> Response[T]:
        """Build a response decoded from a request's sample data."""
        return cls(data=data, raw=raw, source=ResponseSource.SAMPLE)

    @property
    def from_network(self) -> bool:
        return self.source is ResponseSource.NETWORK

    @property
    def provenance(self) -> str:
        """One-line origin summary: ``HTTP 200`` or ``Served from cache``."""
        if self.from_network:
            return f"HTTP {self.status_code}"
        return f"Served from {self.source.value}"

    @property
    def display_data(self) -> Any:
        """The decoded value, else the raw body as text, else ``None`` when empty."""
        if self.data is not None:
            return self.data
        if not self.raw:
            return None
        return self.raw.decode("utf-8", errors="replace")
