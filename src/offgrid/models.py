"""Canonical Pydantic models shared across all offgrid modules.

This is the single source of truth for data shapes in the project. The models
fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`CacheConfig`, :class:`RequestConfig`, and
    :class:`MonitorConfig`, grouped in :class:`GlobalConfig`.

**Request-layer models** -- consumed by the orchestrator and its collaborators:
    :class:`ConnectivityState`, :class:`CachePolicy`, :class:`HTTPMethod`,
    :class:`CacheEntry`, :class:`RequestDescriptor`, and :class:`RawResponse`.

All models use Pydantic v2.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field


# --- Configuration ---


class CacheConfig(BaseModel):
    """Offline fallback cache settings stored in :class:`GlobalConfig`.

    There is deliberately no TTL: entries are only ever read while offline
    and are never evaluated for freshness.
    """

    enabled: bool = Field(default=True, description="Enable the offline cache")
    directory: Optional[str] = Field(
        default=None, description="Override the cache root (defaults to the XDG cache dir)"
    )
    directory_name: str = Field(
        default="http_cache", description="Sub-directory holding one file per entry"
    )
    memory_max_entries: int = Field(
        default=256, ge=0, description="Entries mirrored in memory (0 disables the memory tier)"
    )
    signing_key: Optional[str] = Field(
        default=None,
        description="Secret used to sign entries on disk (generated per directory when unset)",
    )


class RequestConfig(BaseModel):
    """Default HTTP request settings applied to every call."""

    base_url: Optional[str] = Field(default=None, description="Base URL for relative paths")
    timeout: float = Field(default=60.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    headers: dict[str, str] = Field(
        default_factory=dict, description="Headers sent with every request"
    )


class MonitorConfig(BaseModel):
    """Connectivity probing settings."""

    probe_url: Optional[str] = Field(
        default=None, description="URL probed with HEAD requests (defaults to the base URL)"
    )
    interval_seconds: float = Field(default=10.0, gt=0, description="Seconds between probes")
    timeout_seconds: float = Field(default=3.0, gt=0, description="Timeout for a single probe")
    assume_connected: bool = Field(
        default=False, description="Skip probing and treat the network as reachable"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/offgrid/config.json``.

    Loaded and saved by :func:`~offgrid.config.load_global_config` and
    :func:`~offgrid.config.save_global_config`. Environment
    overrides are applied by :func:`~offgrid.config.resolve_config`.
    """

    request: RequestConfig = Field(default_factory=RequestConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)


# --- Request layer ---


class ConnectivityState(str, enum.Enum):
    """Connectivity as last reported by the probe."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class CachePolicy(str, enum.Enum):
    """How a request participates in the offline fallback cache.

    ``NONE`` disables both the read and the write path. ``CACHE_FOR_OFFLINE``
    persists successful responses and serves them only while disconnected.
    """

    NONE = "none"
    CACHE_FOR_OFFLINE = "cache_for_offline"


class HTTPMethod(str, enum.Enum):
    """HTTP methods accepted by the request layer."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"
    CONNECT = "CONNECT"

    @property
    def sends_body(self) -> bool:
        """Whether request parameters travel in a JSON body rather than the query."""
        return self in (HTTPMethod.POST, HTTPMethod.PUT, HTTPMethod.PATCH)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheEntry(BaseModel):
    """A cached raw response payload.

    Immutable once built. The timestamp records when the payload was cached
    but no policy consults it.
    """

    model_config = ConfigDict(frozen=True)

    payload: bytes
    timestamp: datetime = Field(default_factory=_utcnow)

    def value(self) -> bytes:
        """Return the cached payload without any freshness check."""
        return self.payload


class RequestDescriptor(BaseModel):
    """Everything needed to issue one logical request.

    The full URL is ``base_url`` + ``base_path`` + ``path`` with ``query``
    merged into any query string already present in ``path``.

    Example::

        RequestDescriptor(
            base_url="https://api.example.com",
            base_path="v1",
            path="/users",
            query={"page": 2},
            cache_policy=CachePolicy.CACHE_FOR_OFFLINE,
        )
    """

    path: str
    base_url: Optional[str] = None
    base_path: str = ""
    query: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    json_body: Any = None
    body: Optional[bytes] = None
    sample_data: Optional[bytes] = Field(
        default=None, description="Fixture payload decoded instead of hitting the network"
    )
    cache_policy: CachePolicy = CachePolicy.NONE
    timeout: Optional[float] = Field(
        default=None, description="Per-request timeout; falls back to RequestConfig.timeout"
    )

    def url(self) -> httpx.URL:
        """Resolve the complete request URL."""
        relative = httpx.URL(self.path)
        if relative.is_absolute_url:
            url = relative.copy_with(query=None, fragment=None)
        else:
            segments = [
                seg.strip("/")
                for seg in (self.base_path, relative.path)
                if seg and seg.strip("/")
            ]
            joined = "/" + "/".join(segments)
            base = (self.base_url or "").rstrip("/")
            url = httpx.URL(f"{base}{joined}")
        if relative.params:
            url = url.copy_merge_params(relative.params)
        if self.query:
            url = url.copy_merge_params(self.query)
        return url


class RawResponse(BaseModel):
    """What the transport hands back: status, headers, and undecoded bytes."""

    status_code: int
    content: bytes = b""
    headers: dict[str, str] = Field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        """``True`` for 2xx status codes."""
        return 200 <= self.status_code < 300
