"""Suspension queue for requests blocked by lost connectivity.

Callers that cannot be served while offline ``await queue.wait()``.  When
the monitor reports that the network is back, :meth:`resume_all` releases
every caller waiting at that moment; :meth:`cancel_all` fails them instead,
typically on shutdown.

Each waiting caller owns one :class:`Waiter`.  The registry is drained
atomically under a lock, so a waiter that registers while a drain is in
progress either belongs to that drain or stays for the next one.  A waiter
is resolved at most once.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Optional

from offgrid.exceptions import QueueCancelled

logger = logging.getLogger(__name__)


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def _apply(future: asyncio.Future[None], error: Optional[BaseException]) -> None:
    # The waiting task may have been cancelled in the meantime.
    if future.done():
        return
    if error is None:
        future.set_result(None)
    else:
        future.set_exception(error)


class Waiter:
    """Single-resolution handle for one suspended caller.

    Resolution is marshalled onto the loop that created the waiter, so
    :meth:`resume` and :meth:`cancel` may be called from any thread.
    """

    __slots__ = ("_future", "_resolved")

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._future: asyncio.Future[None] = loop.create_future()
        self._resolved = False

    @property
    def resolved(self) -> bool:
        return self._resolved

    def resume(self) -> bool:
        """Release the caller.  Returns ``False`` if already resolved."""
        return self._settle(None)

    def cancel(self, error: BaseException) -> bool:
        """Fail the caller with :class:`QueueCancelled`.  Returns ``False`` if already resolved."""
        if not isinstance(error, QueueCancelled):
            error = QueueCancelled(error)
        return self._settle(error)

    async def wait(self) -> None:
        await self._future

    def _settle(self, error: Optional[BaseException]) -> bool:
        if self._resolved:
            return False
        self._resolved = True
        loop = self._future.get_loop()
        if _running_loop() is loop:
            _apply(self._future, error)
        else:
            loop.call_soon_threadsafe(_apply, self._future, error)
        return True


class RequestSuspensionQueue:
    """Registry of callers waiting for connectivity to return.

    Example::

        queue = RequestSuspensionQueue()

        async def fetch():
            await queue.wait()      # blocks until resume_all()/cancel_all()
            ...

        queue.resume_all()
    """

    def __init__(self) -> None:
        self._waiters: list[Waiter] = []
        self._lock = threading.Lock()

    @property
    def pending(self) -> int:
        """Number of callers currently suspended."""
        with self._lock:
            return len(self._waiters)

    async def wait(self) -> None:
        """Suspend the current task until resumed or cancelled.

        Raises:
            QueueCancelled: If :meth:`cancel_all` released this caller.
        """
        waiter = Waiter(asyncio.get_running_loop())
        with self._lock:
            self._waiters.append(waiter)
        try:
            await waiter.wait()
        except asyncio.CancelledError:
            with self._lock:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)
            raise

    def resume_all(self) -> int:
        """Release every caller registered at this moment.

        Returns:
            The number of callers released.  ``0`` when nobody was waiting.
        """
        waiters = self._drain()
        for waiter in waiters:
            waiter.resume()
        if waiters:
            logger.info("Resumed %d suspended request(s)", len(waiters))
        return len(waiters)

    def cancel_all(self, error: BaseException) -> int:
        """Fail every caller registered at this moment with *error*.

        Each caller observes :class:`~offgrid.exceptions.QueueCancelled`
        whose ``cause`` is *error*.

        Returns:
            The number of callers cancelled.
        """
        waiters = self._drain()
        for waiter in waiters:
            waiter.cancel(error)
        if waiters:
            logger.info("Cancelled %d suspended request(s): %s", len(waiters), error)
        return len(waiters)

    def _drain(self) -> list[Waiter]:
        with self._lock:
            waiters, self._waiters = self._waiters, []
        return waiters
