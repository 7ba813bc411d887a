"""Offline-aware request orchestration.

:class:`OfflineAwareOrchestrator` decides, for every outgoing request,
whether to answer from sample data, from the offline cache, after waiting
for connectivity, or straight from the network::

    sample data? ──yes──> decode sample ──> done
        │ no
    offline? ──no──────────────────────────────┐
        │ yes                                  │
    cache_for_offline and cache hit? ──yes──> decode cached ──> done
        │ no                                   │
    wait for reconnect, then re-check ─────────┤
                                               v
                          execute ──> 2xx? ──no──> HTTPStatusError
                                       │ yes
                          schedule cache write (cache_for_offline)
                                       │
                                    decode ──> done

The cache is a fallback only: it is never read while connected and entries
are never checked for age.  Cache writes run as background tasks so the
caller never waits on the disk; their failures are logged and dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional

from pydantic import TypeAdapter

from offgrid.cache import CacheStore, request_cache_key
from offgrid.client.decoder import Decoder, JSONDecoder
from offgrid.client.response import Response
from offgrid.client.transport import Transport
from offgrid.exceptions import (
    AuthError,
    CacheWriteError,
    HTTPStatusError,
    NotFoundError,
)
from offgrid.models import (
    CachePolicy,
    ConnectivityState,
    HTTPMethod,
    RawResponse,
    RequestDescriptor,
)
from offgrid.network import NetworkStatusMonitor, RequestSuspensionQueue

logger = logging.getLogger(__name__)

_JSON = TypeAdapter(Any)


class OfflineAwareOrchestrator:
    """Runs requests through the monitor, suspension queue, cache, and transport.

    Args:
        monitor: Source of the current connectivity state.
        queue: Where callers wait while offline without a cache hit.
        transport: Executes requests that go to the network.
        store: Offline fallback cache.  ``None`` disables caching for every
            request regardless of its policy.
        decoder: Turns raw bytes into typed values.  Defaults to
            :class:`~offgrid.client.decoder.JSONDecoder`.

    Example::

        orchestrator = OfflineAwareOrchestrator(monitor, queue, transport, store)
        users = await orchestrator.orchestrate(
            RequestDescriptor(path="/users", cache_policy=CachePolicy.CACHE_FOR_OFFLINE),
            HTTPMethod.GET,
            response_type=list[User],
        )
    """

    def __init__(
        self,
        monitor: NetworkStatusMonitor,
        queue: RequestSuspensionQueue,
        transport: Transport,
        store: Optional[CacheStore] = None,
        decoder: Optional[Decoder] = None,
    ) -> None:
        self._monitor = monitor
        self._queue = queue
        self._transport = transport
        self._store = store
        self._decoder = decoder or JSONDecoder()
        self._pending_writes: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def current_connectivity(self) -> ConnectivityState:
        """Return the monitor's latest known connectivity state."""
        return self._monitor.current_status()

    async def orchestrate(
        self,
        request: RequestDescriptor,
        method: HTTPMethod | str = HTTPMethod.GET,
        response_type: Any = Any,
        cache_policy: Optional[CachePolicy] = None,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Run *request* and return only the decoded value.

        See :meth:`send` for the arguments and the errors raised.
        """
        response = await self.send(request, method, response_type, cache_policy, parameters)
        return response.data

    async def send(
        self,
        request: RequestDescriptor,
        method: HTTPMethod | str = HTTPMethod.GET,
        response_type: Any = Any,
        cache_policy: Optional[CachePolicy] = None,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> Response[Any]:
        """Run *request* and return the decoded value with its provenance.

        While offline, a request without a cache hit waits for connectivity
        to return instead of failing; the wait lasts until the monitor
        reports a reconnect or the queue is cancelled.

        Args:
            request: What to send.
            method: HTTP method.
            response_type: Type the body is decoded into.  ``Any`` returns
                the parsed JSON as-is.
            cache_policy: Overrides ``request.cache_policy`` when given.
            parameters: Extra request parameters.  Sent as query string
                parameters for methods without a body and merged into the
                JSON body for POST, PUT, and PATCH.

        Returns:
            A :class:`~offgrid.client.response.Response` whose ``source``
            tells whether it came from the network, the cache, or sample data.

        Raises:
            QueueCancelled: The caller was waiting for connectivity when the
                queue was cancelled.
            ConnectionError_: The transport received no response.
            HTTPStatusError: The server answered with a non-2xx status.
            DecodingError: The body does not match *response_type*.
        """
        method = HTTPMethod(method.upper()) if isinstance(method, str) else method
        policy = cache_policy if cache_policy is not None else request.cache_policy
        if parameters:
            request = encode_parameters(request, method, parameters)

        # 1. Sample data short circuit
        if request.sample_data is not None:
            logger.debug("Serving %s %s from sample data", method.value, request.path)
            data = self._decoder.decode(request.sample_data, response_type)
            return Response.sample(data, request.sample_data)

        # 2. Cache key
        key = request_cache_key(request, method)
        use_cache = policy is CachePolicy.CACHE_FOR_OFFLINE and self._store is not None

        # 3. Offline: cache fallback or wait for reconnect
        while self._monitor.is_disconnected:
            if use_cache:
                assert self._store is not None
                payload = await self._store.read(key)
                if payload is not None:
                    logger.info("Offline: serving %s %s from cache", method.value, request.path)
                    return Response.cached(self._decoder.decode(payload, response_type), payload)
                # The state may have flipped while the cache was being read.
                if not self._monitor.is_disconnected:
                    break
            logger.debug("Offline: suspending %s %s until reconnect", method.value, request.path)
            await self._queue.wait()

        # 4. Execute
        raw = await self._execute(request, method)
        _raise_for_status(raw)

        # 5. Background cache write, independent of decoding
        if use_cache:
            self._schedule_write(key, raw.content)

        # 6. Decode
        data = self._decoder.decode(raw.content, response_type)
        return Response(
            data=data,
            raw=raw.content,
            status_code=raw.status_code,
            headers=raw.headers,
        )

    async def drain(self) -> None:
        """Wait for every background cache write scheduled so far."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes))

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _execute(self, request: RequestDescriptor, method: HTTPMethod) -> RawResponse:
        headers = dict(request.headers)
        body = request.body
        if body is None and request.json_body is not None:
            body = _JSON.dump_json(request.json_body)
            if not any(name.lower() == "content-type" for name in headers):
                headers["Content-Type"] = "application/json"
        return await self._transport.execute(
            method,
            request.url(),
            headers,
            body,
            request.timeout,
        )

    def _schedule_write(self, key: str, payload: bytes) -> None:
        task = asyncio.create_task(
            self._write_cache(key, payload), name=f"offgrid-cache-write-{key[:12]}"
        )
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _write_cache(self, key: str, payload: bytes) -> None:
        assert self._store is not None
        try:
            await self._store.write(key, payload)
        except CacheWriteError as exc:
            logger.warning("Could not cache response for %s: %s", key, exc)
        except Exception:
            logger.warning("Could not cache response for %s", key, exc_info=True)


def encode_parameters(
    request: RequestDescriptor,
    method: HTTPMethod,
    parameters: Mapping[str, Any],
) -> RequestDescriptor:
    """Return a copy of *request* with *parameters* encoded for *method*.

    POST, PUT, and PATCH merge them into the JSON body (a non-object body is
    replaced); every other method adds them to the query string.
    """
    if method.sends_body:
        body = request.json_body if isinstance(request.json_body, dict) else {}
        return request.model_copy(update={"json_body": {**body, **parameters}})
    return request.model_copy(update={"query": {**request.query, **parameters}})


def _raise_for_status(raw: RawResponse) -> None:
    if raw.is_success:
        return

    msg = _error_detail(raw.content)
    full_msg = f"HTTP {raw.status_code}: {msg}" if msg else f"HTTP {raw.status_code}"

    if raw.status_code in (401, 403):
        raise AuthError(full_msg, raw.status_code)
    if raw.status_code == 404:
        raise NotFoundError(full_msg, raw.status_code)
    raise HTTPStatusError(full_msg, raw.status_code)


def _error_detail(content: bytes) -> str:
    if not content:
        return ""
    try:
        detail = _JSON.validate_json(content)
    except ValueError:
        return content.decode("utf-8", errors="replace")[:200]
    if isinstance(detail, dict):
        return str(detail.get("message") or detail.get("error") or detail.get("detail") or "")
    return str(detail)[:200]
