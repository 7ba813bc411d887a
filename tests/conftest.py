"""Shared test fixtures for offgrid.

Provides isolated config directories, output state resets, a
scripted in-memory transport, and ready-wired orchestrators.  These
fixtures are automatically discovered by pytest and available to all test
modules without explicit imports.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Optional, Union

import httpx
import pytest

from offgrid.cache import CacheStore, DiskCache, MemoryCache
from offgrid.client import OfflineAwareOrchestrator
from offgrid.client.transport import Transport
from offgrid.config import ENV_OVERRIDES
from offgrid.exceptions import ConnectionError_
from offgrid.models import HTTPMethod, RawResponse
from offgrid.network import ManualProbe, NetworkStatusMonitor, RequestSuspensionQueue
from offgrid.output import set_output


# ---------------------------------------------------------------------------
# Auto-reset global output and logging state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager and the CLI log handler after every test.

    Both hold references to the streams that Typer's CliRunner swaps in
    during a test; once the test finishes those streams are closed.
    """
    yield
    set_output(None)
    logger = logging.getLogger("offgrid")
    for handler in list(logger.handlers):
        if handler.get_name() == "offgrid-cli":
            logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG config and cache directories at subdirectories of
    tmp_path and clears the OFFGRID_* environment overrides.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))

    for var in ENV_OVERRIDES:
        monkeypatch.delenv(var, raising=False)
    return tmp_path


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner with the built-in commands registered."""
    from typer.testing import CliRunner

    from offgrid.app import register_commands

    register_commands()
    return CliRunner()


# ---------------------------------------------------------------------------
# Transport double
# ---------------------------------------------------------------------------

Reply = Union[RawResponse, Exception, Callable[[], RawResponse]]


class FakeTransport(Transport):
    """Scripted transport that records every call.

    ``replies`` maps a URL path to what :meth:`execute` produces for it:
    a :class:`RawResponse`, an exception to raise, or a callable returning
    a response.  Unknown paths raise :class:`ConnectionError_`.  Setting
    ``gate`` to an unset :class:`asyncio.Event` holds every call until the
    event is set.
    """

    def __init__(self, replies: Optional[dict[str, Reply]] = None) -> None:
        self.replies: dict[str, Reply] = dict(replies or {})
        self.calls: list[dict[str, Any]] = []
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    async def execute(
        self,
        method: HTTPMethod,
        url: httpx.URL,
        headers: dict[str, str],
        body: Optional[bytes] = None,
        timeout: Optional[float] = None,
    ) -> RawResponse:
        self.calls.append(
            {"method": method, "url": url, "headers": headers, "body": body, "timeout": timeout}
        )
        if self.gate is not None:
            await self.gate.wait()
        reply = self.replies.get(url.path)
        if reply is None:
            raise ConnectionError_(f"No scripted reply for {url.path}")
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply()
        return reply

    async def aclose(self) -> None:
        self.closed = True


def json_reply(body: bytes = b'{"id": 1}', status_code: int = 200) -> RawResponse:
    return RawResponse(
        status_code=status_code,
        content=body,
        headers={"content-type": "application/json"},
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport({"/users": json_reply()})


# ---------------------------------------------------------------------------
# Wiring fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store(tmp_path: Path) -> CacheStore:
    """A two-tier store rooted in tmp_path."""
    return CacheStore(DiskCache(tmp_path / "cache"), MemoryCache(16))


@pytest.fixture
def probe() -> ManualProbe:
    return ManualProbe()


@pytest.fixture
async def monitor(probe: ManualProbe) -> NetworkStatusMonitor:
    """A started monitor driven by :func:`probe`, initially disconnected."""
    monitor = NetworkStatusMonitor(probe)
    await monitor.start()
    yield monitor
    await monitor.stop()


@pytest.fixture
def queue(monitor: NetworkStatusMonitor) -> RequestSuspensionQueue:
    """A suspension queue released by the monitor on reconnect."""
    queue = RequestSuspensionQueue()

    def _release(state: Any) -> None:
        if not monitor.is_disconnected:
            queue.resume_all()

    monitor.add_listener(_release)
    return queue


@pytest.fixture
def orchestrator(
    monitor: NetworkStatusMonitor,
    queue: RequestSuspensionQueue,
    transport: FakeTransport,
    store: CacheStore,
) -> OfflineAwareOrchestrator:
    return OfflineAwareOrchestrator(monitor, queue, transport, store)


async def until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until *predicate* holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)
