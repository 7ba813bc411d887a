"""High-level asynchronous client with offline resilience.

:class:`OfflineClient` assembles the pieces from a
:class:`~offgrid.models.GlobalConfig`: a connectivity monitor and its probe,
the suspension queue, the two-tier cache, an httpx transport, and the
:class:`~offgrid.client.orchestrator.OfflineAwareOrchestrator` that ties
them together.  It must be used as an async context manager so the probe
runs for the lifetime of the client.

On exit, callers still waiting for connectivity fail with
:class:`~offgrid.exceptions.QueueCancelled` and pending cache writes are
flushed before the transport is closed.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from offgrid.cache import CacheStore, DiskCache, MemoryCache
from offgrid.client.decoder import Decoder
from offgrid.client.orchestrator import OfflineAwareOrchestrator
from offgrid.client.response import Response
from offgrid.client.transport import HTTPXTransport, Transport
from offgrid.config import cache_root
from offgrid.exceptions import ConnectionError_
from offgrid.models import (
    CachePolicy,
    ConnectivityState,
    GlobalConfig,
    HTTPMethod,
    RequestDescriptor,
)
from offgrid.network import (
    ConnectivityProbe,
    ManualProbe,
    NetworkStatusMonitor,
    PollingProbe,
    RequestSuspensionQueue,
    StatusSubscription,
)

logger = logging.getLogger(__name__)


class OfflineClient:
    """Asynchronous HTTP client that keeps working across connectivity loss.

    While offline, requests opted into ``CachePolicy.CACHE_FOR_OFFLINE`` are
    answered from the last successful response; every other request waits
    until the network is back and then goes out as usual.

    Args:
        config: Resolved configuration.  Defaults to :class:`GlobalConfig`
            defaults.
        probe: Connectivity signal source.  By default a
            :class:`~offgrid.network.PollingProbe` on ``monitor.probe_url``
            (or the base URL), or a probe that reports "connected" when
            ``monitor.assume_connected`` is set.
        transport: Request executor.  Defaults to
            :class:`~offgrid.client.transport.HTTPXTransport`.
        store: Offline cache.  Built from ``config.cache`` when omitted;
            disabled entirely when ``cache.enabled`` is false.
        decoder: Response decoder.  Defaults to JSON with pydantic validation.

    Example::

        async with OfflineClient(resolve_config()) as client:
            users = await client.get(
                "/users",
                response_type=list[User],
                cache_policy=CachePolicy.CACHE_FOR_OFFLINE,
            )
    """

    def __init__(
        self,
        config: Optional[GlobalConfig] = None,
        probe: Optional[ConnectivityProbe] = None,
        transport: Optional[Transport] = None,
        store: Optional[CacheStore] = None,
        decoder: Optional[Decoder] = None,
    ) -> None:
        self._config = config or GlobalConfig()
        self._transport = transport or HTTPXTransport(
            timeout=self._config.request.timeout,
            verify_ssl=self._config.request.verify_ssl,
            headers=self._config.request.headers,
        )
        self._store = store if store is not None else build_cache_store(self._config)
        self._queue = RequestSuspensionQueue()
        self._monitor = NetworkStatusMonitor(probe or _default_probe(self._config))
        self._monitor.add_listener(self._on_status_change)
        self._orchestrator = OfflineAwareOrchestrator(
            self._monitor, self._queue, self._transport, self._store, decoder
        )

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> OfflineClient:
        await self._monitor.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Cancel waiting callers, flush cache writes, and release resources."""
        self._queue.cancel_all(ConnectionError_("Client closed"))
        await self._orchestrator.drain()
        await self._monitor.stop()
        await self._transport.aclose()

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    @property
    def monitor(self) -> NetworkStatusMonitor:
        return self._monitor

    @property
    def queue(self) -> RequestSuspensionQueue:
        return self._queue

    @property
    def store(self) -> Optional[CacheStore]:
        return self._store

    @property
    def orchestrator(self) -> OfflineAwareOrchestrator:
        return self._orchestrator

    def current_connectivity(self) -> ConnectivityState:
        """Return the latest known connectivity state."""
        return self._monitor.current_status()

    def subscribe(self) -> StatusSubscription:
        """Stream future connectivity transitions."""
        return self._monitor.subscribe()

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    def describe(
        self,
        path: str,
        headers: Optional[dict[str, str]] = None,
        json_body: Any = None,
        sample_data: Optional[bytes] = None,
        cache_policy: CachePolicy = CachePolicy.NONE,
    ) -> RequestDescriptor:
        """Build a :class:`RequestDescriptor` with this client's defaults applied."""
        return RequestDescriptor(
            path=path,
            base_url=self._config.request.base_url,
            headers=dict(headers or {}),
            json_body=json_body,
            sample_data=sample_data,
            cache_policy=cache_policy,
            timeout=self._config.request.timeout,
        )

    async def send(
        self,
        request: RequestDescriptor,
        method: HTTPMethod | str = HTTPMethod.GET,
        response_type: Any = Any,
        cache_policy: Optional[CachePolicy] = None,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> Response[Any]:
        """Send a prepared request.  See :meth:`OfflineAwareOrchestrator.send`."""
        if request.base_url is None and self._config.request.base_url:
            request = request.model_copy(update={"base_url": self._config.request.base_url})
        return await self._orchestrator.send(
            request, method, response_type, cache_policy, parameters
        )

    async def orchestrate(
        self,
        request: RequestDescriptor,
        method: HTTPMethod | str = HTTPMethod.GET,
        response_type: Any = Any,
        cache_policy: Optional[CachePolicy] = None,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Send a prepared request and return only the decoded value."""
        response = await self.send(request, method, response_type, cache_policy, parameters)
        return response.data

    async def request(
        self,
        method: HTTPMethod | str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        json_body: Any = None,
        response_type: Any = Any,
        cache_policy: CachePolicy = CachePolicy.NONE,
    ) -> Any:
        """Send a request and return the decoded body.

        Args:
            method: HTTP method.
            path: Path relative to the configured base URL, or an absolute URL.
            params: Query parameters, or JSON body fields for POST/PUT/PATCH.
            headers: Extra request headers.
            json_body: JSON-serialisable body.
            response_type: Type the body is decoded into.
            cache_policy: Whether the response serves as an offline fallback.
        """
        descriptor = self.describe(path, headers=headers, json_body=json_body)
        return await self.orchestrate(descriptor, method, response_type, cache_policy, params)

    async def get(self, path: str, **kwargs: Any) -> Any:
        """Send a GET request.  Keyword arguments are forwarded to :meth:`request`."""
        return await self.request(HTTPMethod.GET, path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Any:
        """Send a POST request.  Keyword arguments are forwarded to :meth:`request`."""
        return await self.request(HTTPMethod.POST, path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> Any:
        """Send a PUT request.  Keyword arguments are forwarded to :meth:`request`."""
        return await self.request(HTTPMethod.PUT, path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> Any:
        """Send a PATCH request.  Keyword arguments are forwarded to :meth:`request`."""
        return await self.request(HTTPMethod.PATCH, path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        """Send a DELETE request.  Keyword arguments are forwarded to :meth:`request`."""
        return await self.request(HTTPMethod.DELETE, path, **kwargs)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _on_status_change(self, state: ConnectivityState) -> None:
        if state is ConnectivityState.CONNECTED:
            self._queue.resume_all()


def build_cache_store(config: GlobalConfig) -> Optional[CacheStore]:
    """Build the two-tier cache described by ``config.cache``, or ``None`` when disabled."""
    if not config.cache.enabled:
        return None
    disk = DiskCache(
        cache_root(config),
        directory_name=config.cache.directory_name,
        signing_key=config.cache.signing_key,
    )
    return CacheStore(disk, MemoryCache(config.cache.memory_max_entries))


def _default_probe(config: GlobalConfig) -> ConnectivityProbe:
    if config.monitor.assume_connected:
        return ManualProbe(reachable=True)
    url = config.monitor.probe_url or config.request.base_url
    if not url:
        logger.warning("No probe URL or base URL configured; assuming the network is reachable")
        return ManualProbe(reachable=True)
    return PollingProbe(
        url,
        interval=config.monitor.interval_seconds,
        timeout=config.monitor.timeout_seconds,
    )
