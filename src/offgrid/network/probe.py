"""Connectivity probes: sources of raw reachable/unreachable signals.

A probe only has to *eventually* report state changes; it may poll, hook
into an OS callback, or be driven by the application.  Probes never raise
into the monitor: a probe that cannot tell simply stops emitting and the
last known state stays in effect.

To add a signal source, subclass :class:`ConnectivityProbe` and implement
:meth:`~ConnectivityProbe.start` and :meth:`~ConnectivityProbe.stop`.

See Also:
    :class:`~offgrid.network.monitor.NetworkStatusMonitor`, which turns
    these raw signals into de-duplicated state transitions.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

import httpx

logger = logging.getLogger(__name__)

SignalCallback = Callable[[bool], None]
"""Receives ``True`` for reachable and ``False`` for unreachable."""


class ConnectivityProbe(ABC):
    """Abstract base class for connectivity signal sources.

    Repeated identical signals are allowed; the monitor drops duplicates.
    """

    @abstractmethod
    async def start(self, emit: SignalCallback) -> None:
        """Begin delivering signals to *emit*.

        Must return promptly; long-running work belongs in a background
        task owned by the probe.
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop delivering signals and release any resources."""
        ...


class ManualProbe(ConnectivityProbe):
    """Probe driven explicitly by the application or by tests.

    Args:
        reachable: Signal emitted as soon as the probe starts.  ``None``
            emits nothing, leaving the monitor in its initial state.

    Example::

        probe = ManualProbe(reachable=True)
        monitor = NetworkStatusMonitor(probe)
        await monitor.start()
        probe.set(False)   # monitor transitions to DISCONNECTED
    """

    def __init__(self, reachable: Optional[bool] = None) -> None:
        self._reachable = reachable
        self._emit: Optional[SignalCallback] = None

    async def start(self, emit: SignalCallback) -> None:
        self._emit = emit
        if self._reachable is not None:
            emit(self._reachable)

    async def stop(self) -> None:
        self._emit = None

    def set(self, reachable: bool) -> None:
        """Report a new reachability value."""
        self._reachable = reachable
        if self._emit is not None:
            self._emit(reachable)


class PollingProbe(ConnectivityProbe):
    """Probe that sends a ``HEAD`` request to *url* at a fixed interval.

    Any HTTP response, whatever its status code, counts as reachable;
    connection errors and timeouts count as unreachable.

    Args:
        url: Endpoint to probe, typically the API's base URL.
        interval: Seconds between probes.
        timeout: Timeout for a single probe.
        client: Optional pre-configured :class:`httpx.AsyncClient`.  When
            omitted the probe creates and closes its own.
    """

    def __init__(
        self,
        url: str,
        interval: float = 10.0,
        timeout: float = 3.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._url = url
        self._interval = interval
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def url(self) -> str:
        return self._url

    async def check(self) -> bool:
        """Probe once and return whether the endpoint answered."""
        assert self._client is not None, "Probe not started"
        try:
            await self._client.head(self._url, timeout=self._timeout)
        except httpx.TransportError as exc:
            logger.debug("Connectivity probe to %s failed: %s", self._url, exc)
            return False
        return True

    async def start(self, emit: SignalCallback) -> None:
        if self._task is not None:
            return
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=False)
        self._task = asyncio.create_task(self._run(emit), name="offgrid-connectivity-probe")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _run(self, emit: SignalCallback) -> None:
        while True:
            emit(await self.check())
            await asyncio.sleep(self._interval)
