"""Connectivity monitor: the single source of truth for network state.

:class:`NetworkStatusMonitor` turns raw probe signals into
:class:`~offgrid.models.ConnectivityState` transitions.  Repeated identical
signals are dropped, so every subscriber and listener hears about each
transition exactly once and in order.

The state starts as ``DISCONNECTED`` and stays there until the probe's first
signal; connectivity is never assumed.

Delivery never blocks the signalling side: subscriber queues are unbounded
and listeners are plain callables run inline after the state is updated.
The client registers :meth:`RequestSuspensionQueue.resume_all
<offgrid.network.suspension.RequestSuspensionQueue.resume_all>` as a
listener, so released callers always observe the new state.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from offgrid.models import ConnectivityState
from offgrid.network.probe import ConnectivityProbe

logger = logging.getLogger(__name__)

StatusListener = Callable[[ConnectivityState], None]


class StatusSubscription:
    """Async iterator over connectivity transitions for one consumer.

    Created by :meth:`NetworkStatusMonitor.subscribe`; transitions that
    happen after that call are queued even if iteration has not started.
    Iteration ends when the subscription is closed or the monitor stops.

    Example::

        async with monitor.subscribe() as states:
            async for state in states:
                print(state)
    """

    def __init__(self, monitor: NetworkStatusMonitor) -> None:
        self._monitor = monitor
        self._queue: asyncio.Queue[Optional[ConnectivityState]] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Detach from the monitor and end iteration once queued states are consumed."""
        if self._closed:
            return
        self._closed = True
        self._monitor._unsubscribe(self)
        self._queue.put_nowait(None)

    def _push(self, state: ConnectivityState) -> None:
        self._queue.put_nowait(state)

    def __aiter__(self) -> StatusSubscription:
        return self

    async def __anext__(self) -> ConnectivityState:
        state = await self._queue.get()
        if state is None:
            raise StopAsyncIteration
        return state

    async def __aenter__(self) -> StatusSubscription:
        return self

    async def __aexit__(self, *args: object) -> None:
        self.close()


class NetworkStatusMonitor:
    """Tracks connectivity and broadcasts transitions.

    Args:
        probe: Signal source started by :meth:`start`.  Without a probe,
            signals must be fed through :meth:`handle_signal`.

    Example::

        monitor = NetworkStatusMonitor(PollingProbe("https://api.example.com"))
        await monitor.start()
        if monitor.current_status() is ConnectivityState.CONNECTED:
            ...
        await monitor.stop()
    """

    def __init__(self, probe: Optional[ConnectivityProbe] = None) -> None:
        self._probe = probe
        self._status = ConnectivityState.DISCONNECTED
        self._subscribers: list[StatusSubscription] = []
        self._listeners: list[StatusListener] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._started = False

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def current_status(self) -> ConnectivityState:
        """Return the latest known state without blocking."""
        return self._status

    @property
    def is_disconnected(self) -> bool:
        return self._status is ConnectivityState.DISCONNECTED

    def subscribe(self) -> StatusSubscription:
        """Open a new, independent stream of future transitions."""
        subscription = StatusSubscription(self)
        self._subscribers.append(subscription)
        return subscription

    def add_listener(self, listener: StatusListener) -> None:
        """Call *listener* synchronously on every transition."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------ #
    # Signals
    # ------------------------------------------------------------------ #

    def handle_signal(self, reachable: bool) -> bool:
        """Apply a raw probe signal.

        Must run on the monitor's event loop; use :meth:`signal_threadsafe`
        from other threads.

        Returns:
            ``True`` if the signal caused a transition, ``False`` if it
            repeated the current state.
        """
        new_status = ConnectivityState.CONNECTED if reachable else ConnectivityState.DISCONNECTED
        if new_status is self._status:
            return False

        previous, self._status = self._status, new_status
        logger.info("Connectivity changed: %s -> %s", previous.value, new_status.value)

        for subscription in list(self._subscribers):
            subscription._push(new_status)
        for listener in list(self._listeners):
            try:
                listener(new_status)
            except Exception:
                logger.exception("Connectivity listener %r failed", listener)
        return True

    def signal_threadsafe(self, reachable: bool) -> None:
        """Deliver a signal from any thread."""
        loop = self._loop
        if loop is None or _running_loop() is loop:
            self.handle_signal(reachable)
        else:
            loop.call_soon_threadsafe(self.handle_signal, reachable)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Bind to the running loop and start the probe, if any."""
        if self._started:
            return
        self._loop = asyncio.get_running_loop()
        self._started = True
        if self._probe is not None:
            await self._probe.start(self.signal_threadsafe)

    async def stop(self) -> None:
        """Stop the probe and end every open subscription.

        The last known state is kept.
        """
        if self._probe is not None and self._started:
            await self._probe.stop()
        self._started = False
        for subscription in list(self._subscribers):
            subscription.close()

    def _unsubscribe(self, subscription: StatusSubscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
