"""Transport executors: send one HTTP request and return the raw response.

The orchestrator only talks to the :class:`Transport` interface, so any
HTTP stack can be plugged in.  :class:`HTTPXTransport` is the default,
built on :class:`httpx.AsyncClient`.

A transport never interprets the status code; mapping non-2xx responses to
errors is the orchestrator's job.  It only raises when no response was
received at all.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

import httpx

from offgrid.client import netlog
from offgrid.exceptions import ConnectionError_, TransportError
from offgrid.models import HTTPMethod, RawResponse


class Transport(ABC):
    """Abstract base class for request executors."""

    @abstractmethod
    async def execute(
        self,
        method: HTTPMethod,
        url: httpx.URL,
        headers: dict[str, str],
        body: Optional[bytes] = None,
        timeout: Optional[float] = None,
    ) -> RawResponse:
        """Send one request.

        Raises:
            ConnectionError_: If no response was received.
        """
        ...

    async def aclose(self) -> None:
        """Release any resources held by the transport."""


class HTTPXTransport(Transport):
    """Transport backed by :class:`httpx.AsyncClient`.

    Args:
        client: Optional pre-configured client, e.g. one using
            :class:`httpx.MockTransport` in tests.  When omitted a client is
            created on first use and closed by :meth:`aclose`.
        timeout: Default timeout in seconds for requests without their own.
        verify_ssl: Verify SSL certificates.
        headers: Headers sent with every request; per-request headers win.

    Example::

        async with HTTPXTransport(timeout=30) as transport:
            raw = await transport.execute(HTTPMethod.GET, httpx.URL("https://api.example.com/users"), {})
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
        verify_ssl: bool = True,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._headers = dict(headers or {})

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> HTTPXTransport:
        self._ensure_client()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    def build_request(
        self,
        method: HTTPMethod,
        url: httpx.URL,
        headers: dict[str, str],
        body: Optional[bytes] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Request:
        """Construct the :class:`httpx.Request` that :meth:`execute` would send."""
        client = self._ensure_client()
        return client.build_request(
            method.value,
            url,
            headers={**self._headers, **headers},
            content=body,
            timeout=timeout if timeout is not None else self._timeout,
        )

    async def execute(
        self,
        method: HTTPMethod,
        url: httpx.URL,
        headers: dict[str, str],
        body: Optional[bytes] = None,
        timeout: Optional[float] = None,
    ) -> RawResponse:
        client = self._ensure_client()
        request = self.build_request(method, url, headers, body, timeout)
        netlog.log_request(request)
        try:
            response = await client.send(request)
        except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
            raise ConnectionError_(f"Connection failed: {exc}") from exc
        except (httpx.TransportError, httpx.TooManyRedirects) as exc:
            raise TransportError(f"Request failed: {exc}") from exc
        netlog.log_response(request, response)
        return RawResponse(
            status_code=response.status_code,
            content=response.content,
            headers=dict(response.headers),
        )

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                verify=self._verify_ssl,
                follow_redirects=True,
            )
        return self._client
