"""Tests for OfflineAwareOrchestrator -- the per-request offline decision policy."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

import pytest
from pydantic import BaseModel

from conftest import FakeTransport, json_reply, until
from offgrid.cache import CacheStore, DiskCache, MemoryCache, cache_key
from offgrid.client import OfflineAwareOrchestrator, ResponseSource
from offgrid.exceptions import (
    AuthError,
    CacheWriteError,
    ConnectionError_,
    DecodingError,
    HTTPStatusError,
    NotFoundError,
    QueueCancelled,
    TransportError,
)
from offgrid.models import (
    CacheEntry,
    CachePolicy,
    ConnectivityState,
    HTTPMethod,
    RequestDescriptor,
)
from offgrid.network import ManualProbe

CACHE = CachePolicy.CACHE_FOR_OFFLINE
USERS_KEY = cache_key("/users", "GET")


def _users(policy: CachePolicy = CachePolicy.NONE, **kwargs) -> RequestDescriptor:
    return RequestDescriptor(
        path="/users", base_url="https://api.example.com", cache_policy=policy, **kwargs
    )


class User(BaseModel):
    id: int
    name: Optional[str] = None


class SpyStore(CacheStore):
    """Counts reads and can hold writes until released."""

    def __init__(self, disk: DiskCache) -> None:
        super().__init__(disk, MemoryCache())
        self.reads = 0
        self.release: Optional[asyncio.Event] = None
        self.write_error: Optional[Exception] = None

    async def read(self, key: str) -> Optional[bytes]:
        self.reads += 1
        return await super().read(key)

    async def write(self, key: str, payload: bytes) -> None:
        if self.release is not None:
            await self.release.wait()
        if self.write_error is not None:
            raise self.write_error
        await super().write(key, payload)


@pytest.fixture
def spy_store(tmp_path) -> SpyStore:
    return SpyStore(DiskCache(tmp_path / "spy"))


@pytest.fixture
def spy_orchestrator(monitor, queue, transport, spy_store) -> OfflineAwareOrchestrator:
    return OfflineAwareOrchestrator(monitor, queue, transport, spy_store)


# ------------------------------------------------------------------ #
# Sample data
# ------------------------------------------------------------------ #


class TestSampleData:
    async def test_sample_short_circuits_everything(
        self, orchestrator, transport: FakeTransport, queue, store
    ) -> None:
        """Offline, with no cache: sample data is still served immediately."""
        request = _users(CACHE, sample_data=b'{"id": 7}')
        response = await orchestrator.send(request, HTTPMethod.GET)

        assert response.data == {"id": 7}
        assert response.source is ResponseSource.SAMPLE
        assert response.status_code is None
        assert transport.calls == []
        assert queue.pending == 0
        assert orchestrator.pending_writes == 0
        assert await store.read(USERS_KEY) is None

    async def test_sample_decoding_failure(self, orchestrator) -> None:
        with pytest.raises(DecodingError):
            await orchestrator.orchestrate(_users(sample_data=b"nope"), response_type=User)


# ------------------------------------------------------------------ #
# Online path
# ------------------------------------------------------------------ #


class TestOnline:
    async def test_decodes_network_response(
        self, orchestrator, probe: ManualProbe, transport: FakeTransport
    ) -> None:
        probe.set(True)
        response = await orchestrator.send(_users(), HTTPMethod.GET)

        assert response.data == {"id": 1}
        assert response.source is ResponseSource.NETWORK
        assert response.status_code == 200
        assert response.raw == b'{"id": 1}'
        assert len(transport.calls) == 1
        assert str(transport.calls[0]["url"]) == "https://api.example.com/users"

    async def test_typed_response(self, orchestrator, probe: ManualProbe) -> None:
        probe.set(True)
        user = await orchestrator.orchestrate(_users(), "get", response_type=User)
        assert user == User(id=1)

    async def test_cache_for_offline_persists_raw_payload(
        self, orchestrator, probe: ManualProbe, store
    ) -> None:
        probe.set(True)
        await orchestrator.orchestrate(_users(CACHE))
        await orchestrator.drain()
        assert await store.read(USERS_KEY) == b'{"id": 1}'

    async def test_policy_none_writes_nothing(self, orchestrator, probe: ManualProbe, store) -> None:
        probe.set(True)
        await orchestrator.orchestrate(_users())
        await orchestrator.drain()
        assert orchestrator.pending_writes == 0
        assert await store.read(USERS_KEY) is None

    async def test_online_never_reads_cache(
        self, spy_orchestrator, probe: ManualProbe, spy_store: SpyStore
    ) -> None:
        probe.set(True)
        await spy_orchestrator.orchestrate(_users(CACHE))
        assert spy_store.reads == 0

    async def test_policy_argument_overrides_request(
        self, orchestrator, probe: ManualProbe, store
    ) -> None:
        probe.set(True)
        await orchestrator.orchestrate(_users(), cache_policy=CACHE)
        await orchestrator.drain()
        assert await store.read(USERS_KEY) == b'{"id": 1}'

    async def test_without_store_policy_is_ignored(
        self, monitor, queue, transport, probe: ManualProbe
    ) -> None:
        orchestrator = OfflineAwareOrchestrator(monitor, queue, transport, store=None)
        probe.set(True)
        assert await orchestrator.orchestrate(_users(CACHE)) == {"id": 1}
        assert orchestrator.pending_writes == 0


# ------------------------------------------------------------------ #
# Offline path
# ------------------------------------------------------------------ #


class TestOffline:
    async def test_round_trip_through_cache(
        self, orchestrator, probe: ManualProbe, transport: FakeTransport
    ) -> None:
        """Fetch online, go offline, get the same value without the transport."""
        probe.set(True)
        online = await orchestrator.orchestrate(_users(CACHE))
        await orchestrator.drain()

        probe.set(False)
        response = await orchestrator.send(_users(CACHE), HTTPMethod.GET)

        assert response.data == online == {"id": 1}
        assert response.source is ResponseSource.CACHE
        assert response.status_code is None
        assert len(transport.calls) == 1

    async def test_hit_from_prior_write(self, orchestrator, store, transport: FakeTransport) -> None:
        await store.write(USERS_KEY, b'{"id": 42}')
        assert orchestrator.current_connectivity() is ConnectivityState.DISCONNECTED

        assert await orchestrator.orchestrate(_users(CACHE)) == {"id": 42}
        assert transport.calls == []

    async def test_policy_none_never_reads_and_waits(
        self, spy_orchestrator, spy_store: SpyStore, probe: ManualProbe, queue,
        transport: FakeTransport,
    ) -> None:
        await spy_store.write(USERS_KEY, b'{"id": 42}')

        task = asyncio.create_task(spy_orchestrator.orchestrate(_users()))
        await until(lambda: queue.pending == 1)
        assert spy_store.reads == 0
        assert transport.calls == []

        probe.set(True)
        assert await asyncio.wait_for(task, 1) == {"id": 1}
        assert spy_store.reads == 0

    async def test_miss_waits_for_reconnect(
        self, orchestrator, probe: ManualProbe, queue, transport: FakeTransport
    ) -> None:
        task = asyncio.create_task(orchestrator.orchestrate(_users(CACHE)))
        await until(lambda: queue.pending == 1)
        assert not task.done()

        probe.set(True)
        assert await asyncio.wait_for(task, 1) == {"id": 1}
        assert len(transport.calls) == 1

    async def test_corrupt_entry_waits_like_a_miss(
        self, orchestrator, store, probe: ManualProbe, queue, transport: FakeTransport
    ) -> None:
        store.disk.write(USERS_KEY, CacheEntry(payload=b'{"id": 42}'))
        path = store.disk.path_for(USERS_KEY)
        envelope = json.loads(path.read_text())
        envelope["signature"] = "é" * 64
        path.write_text(json.dumps(envelope))

        task = asyncio.create_task(orchestrator.orchestrate(_users(CACHE)))
        await until(lambda: queue.pending == 1)
        assert transport.calls == []

        probe.set(True)
        assert await asyncio.wait_for(task, 1) == {"id": 1}

    async def test_resume_while_still_offline_suspends_again(
        self, orchestrator, queue, transport: FakeTransport
    ) -> None:
        """A release without a reconnect re-checks the state and waits again."""
        task = asyncio.create_task(orchestrator.orchestrate(_users()))
        await until(lambda: queue.pending == 1)

        queue.resume_all()
        await until(lambda: queue.pending == 1)
        assert not task.done()
        assert transport.calls == []

        queue.cancel_all(RuntimeError("teardown"))
        with pytest.raises(QueueCancelled):
            await task

    async def test_many_waiters_resolve_independently(
        self, orchestrator, probe: ManualProbe, queue, transport: FakeTransport
    ) -> None:
        transport.replies["/broken"] = ConnectionError_("reset by peer")
        requests = [_users() for _ in range(4)] + [
            RequestDescriptor(path="/broken", base_url="https://api.example.com")
        ]
        tasks = [asyncio.create_task(orchestrator.orchestrate(r)) for r in requests]
        await until(lambda: queue.pending == len(tasks))

        probe.set(True)
        results = await asyncio.wait_for(asyncio.gather(*tasks, return_exceptions=True), 1)

        assert results[:4] == [{"id": 1}] * 4
        assert isinstance(results[4], ConnectionError_)
        assert len(transport.calls) == 5
        assert queue.pending == 0

    async def test_cancel_propagates_to_every_waiter(self, orchestrator, queue) -> None:
        tasks = [asyncio.create_task(orchestrator.orchestrate(_users())) for _ in range(3)]
        await until(lambda: queue.pending == 3)
        cause = ConnectionError_("client closed")

        queue.cancel_all(cause)
        results = await asyncio.gather(*tasks, return_exceptions=True)

        for result in results:
            assert isinstance(result, QueueCancelled)
            assert isinstance(result, TransportError)
            assert result.cause is cause


# ------------------------------------------------------------------ #
# Background cache writes
# ------------------------------------------------------------------ #


class TestCacheWrites:
    async def test_write_does_not_block_caller(
        self, spy_orchestrator, spy_store: SpyStore, probe: ManualProbe
    ) -> None:
        probe.set(True)
        spy_store.release = asyncio.Event()

        result = await asyncio.wait_for(spy_orchestrator.orchestrate(_users(CACHE)), 1)
        assert result == {"id": 1}
        assert spy_orchestrator.pending_writes == 1

        spy_store.release.set()
        await spy_orchestrator.drain()
        assert spy_orchestrator.pending_writes == 0
        assert await spy_store.read(USERS_KEY) == b'{"id": 1}'

    async def test_write_failure_logged_not_raised(
        self, spy_orchestrator, spy_store: SpyStore, probe: ManualProbe,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        probe.set(True)
        spy_store.write_error = CacheWriteError("disk full")

        with caplog.at_level(logging.WARNING, logger="offgrid.client.orchestrator"):
            assert await spy_orchestrator.orchestrate(_users(CACHE)) == {"id": 1}
            await spy_orchestrator.drain()

        assert "Could not cache response" in caplog.text

    async def test_unexpected_write_error_logged_with_traceback(
        self, spy_orchestrator, spy_store: SpyStore, probe: ManualProbe,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        probe.set(True)
        spy_store.write_error = RuntimeError("boom")

        with caplog.at_level(logging.WARNING, logger="offgrid.client.orchestrator"):
            await spy_orchestrator.orchestrate(_users(CACHE))
            await spy_orchestrator.drain()

        record = next(r for r in caplog.records if "Could not cache response" in r.getMessage())
        assert record.exc_info is not None
        assert isinstance(record.exc_info[1], RuntimeError)

    async def test_corrupt_signing_key_does_not_fail_drain(
        self, orchestrator, store, probe: ManualProbe, caplog: pytest.LogCaptureFixture
    ) -> None:
        store.disk.directory.mkdir(parents=True)
        (store.disk.directory / ".signing-key").write_bytes(b"\xff\xfe")
        probe.set(True)

        with caplog.at_level(logging.WARNING, logger="offgrid.client.orchestrator"):
            assert await orchestrator.orchestrate(_users(CACHE)) == {"id": 1}
            await orchestrator.drain()

        assert orchestrator.pending_writes == 0
        assert "Could not cache response" in caplog.text


# ------------------------------------------------------------------ #
# Errors
# ------------------------------------------------------------------ #


class TestErrors:
    @pytest.mark.parametrize(
        ("status", "error_type"),
        [(401, AuthError), (403, AuthError), (404, NotFoundError), (500, HTTPStatusError), (422, HTTPStatusError)],
    )
    async def test_status_mapping(
        self, orchestrator, probe: ManualProbe, transport: FakeTransport, store, status, error_type
    ) -> None:
        transport.replies["/users"] = json_reply(b'{"message": "nope"}', status_code=status)
        probe.set(True)

        with pytest.raises(error_type) as info:
            await orchestrator.orchestrate(_users(CACHE))

        assert info.value.status_code == status
        assert "nope" in str(info.value)
        await orchestrator.drain()
        assert await store.read(USERS_KEY) is None

    async def test_connection_error_propagates(
        self, orchestrator, probe: ManualProbe, transport: FakeTransport
    ) -> None:
        transport.replies["/users"] = ConnectionError_("refused")
        probe.set(True)
        with pytest.raises(ConnectionError_):
            await orchestrator.orchestrate(_users(CACHE))

    async def test_malformed_bytes_still_cached(
        self, orchestrator, probe: ManualProbe, transport: FakeTransport
    ) -> None:
        """Decoding fails, yet the raw bytes are persisted and fail again offline."""
        transport.replies["/users"] = json_reply(b"{not json")
        probe.set(True)

        with pytest.raises(DecodingError) as online:
            await orchestrator.orchestrate(_users(CACHE))
        assert not isinstance(online.value, TransportError)
        assert online.value.raw == b"{not json"
        await orchestrator.drain()

        probe.set(False)
        with pytest.raises(DecodingError) as offline:
            await orchestrator.orchestrate(_users(CACHE))
        assert offline.value.raw == b"{not json"
        assert len(transport.calls) == 1

    async def test_shape_mismatch(self, orchestrator, probe: ManualProbe, transport) -> None:
        transport.replies["/users"] = json_reply(b'{"id": "not-a-number"}')
        probe.set(True)
        with pytest.raises(DecodingError, match="User"):
            await orchestrator.orchestrate(_users(), response_type=User)


# ------------------------------------------------------------------ #
# Parameters and bodies
# ------------------------------------------------------------------ #


class TestParameters:
    async def test_get_parameters_go_to_query_and_key(
        self, orchestrator, probe: ManualProbe, transport: FakeTransport, store
    ) -> None:
        probe.set(True)
        await orchestrator.orchestrate(_users(CACHE), "GET", parameters={"page": 2, "q": "ada"})
        await orchestrator.drain()

        url = transport.calls[0]["url"]
        assert url.params["page"] == "2"
        assert url.params["q"] == "ada"
        assert await store.read(cache_key("/users", "GET", {"q": "ada", "page": 2})) is not None
        assert await store.read(USERS_KEY) is None

    async def test_post_parameters_go_to_json_body(
        self, orchestrator, probe: ManualProbe, transport: FakeTransport
    ) -> None:
        probe.set(True)
        await orchestrator.orchestrate(
            _users(json_body={"role": "admin"}), "POST", parameters={"name": "ada"}
        )

        call = transport.calls[0]
        assert call["method"] is HTTPMethod.POST
        assert json.loads(call["body"]) == {"role": "admin", "name": "ada"}
        assert call["headers"]["Content-Type"] == "application/json"
        assert call["url"].query == b""

    async def test_raw_body_wins_over_json(
        self, orchestrator, probe: ManualProbe, transport: FakeTransport
    ) -> None:
        probe.set(True)
        request = _users(body=b"raw", json_body={"ignored": True}, headers={"content-type": "text/plain"})
        await orchestrator.orchestrate(request, "PUT")

        call = transport.calls[0]
        assert call["body"] == b"raw"
        assert call["headers"] == {"content-type": "text/plain"}

    async def test_timeout_forwarded(
        self, orchestrator, probe: ManualProbe, transport: FakeTransport
    ) -> None:
        probe.set(True)
        await orchestrator.orchestrate(_users(timeout=5.0))
        assert transport.calls[0]["timeout"] == 5.0
