"""Tests for HTTPXTransport using httpx.MockTransport."""

from __future__ import annotations

import logging

import httpx
import pytest

from offgrid.client.transport import HTTPXTransport
from offgrid.exceptions import ConnectionError_, TransportError
from offgrid.models import HTTPMethod

URL = httpx.URL("https://api.example.com/users?page=2")


def _transport(handler, **kwargs) -> HTTPXTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HTTPXTransport(client=client, **kwargs)


class TestExecute:
    async def test_returns_raw_response(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(418, content=b"teapot", headers={"x-kind": "pot"})

        async with _transport(handler) as transport:
            raw = await transport.execute(HTTPMethod.POST, URL, {"a": "1"}, b"body")

        assert raw.status_code == 418
        assert raw.content == b"teapot"
        assert raw.headers["x-kind"] == "pot"
        assert not raw.is_success
        assert seen[0].method == "POST"
        assert seen[0].url == URL
        assert seen[0].content == b"body"

    async def test_default_headers_merged(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        transport = _transport(handler, headers={"X-Client": "offgrid", "X-Env": "default"})
        await transport.execute(HTTPMethod.GET, URL, {"X-Env": "override"})

        assert seen[0].headers["X-Client"] == "offgrid"
        assert seen[0].headers["X-Env"] == "override"

    @pytest.mark.parametrize(
        "error",
        [httpx.ConnectError, httpx.ConnectTimeout, httpx.ReadTimeout, httpx.ReadError],
    )
    async def test_network_failures_become_connection_errors(self, error) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise error("gone", request=request)

        transport = _transport(handler)
        with pytest.raises(ConnectionError_, match="Connection failed") as info:
            await transport.execute(HTTPMethod.GET, URL, {})
        assert isinstance(info.value.__cause__, error)

    @pytest.mark.parametrize(
        "error",
        [httpx.RemoteProtocolError, httpx.ProxyError, httpx.UnsupportedProtocol],
    )
    async def test_other_transport_failures_are_wrapped(self, error) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise error("server disconnected", request=request)

        with pytest.raises(TransportError, match="Request failed") as info:
            await _transport(handler).execute(HTTPMethod.GET, URL, {})
        assert not isinstance(info.value, ConnectionError_)
        assert isinstance(info.value.__cause__, error)

    async def test_redirect_loop_is_wrapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={"location": str(request.url)})

        client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler), follow_redirects=True, max_redirects=2
        )
        with pytest.raises(TransportError) as info:
            await HTTPXTransport(client=client).execute(HTTPMethod.GET, URL, {})
        assert isinstance(info.value.__cause__, httpx.TooManyRedirects)

    async def test_debug_logging(self, caplog: pytest.LogCaptureFixture) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"ok": True})

        transport = _transport(handler)
        with caplog.at_level(logging.DEBUG, logger="offgrid.client.netlog"):
            await transport.execute(HTTPMethod.GET, URL, {})

        assert "curl -v" in caplog.text
        assert "GET - https://api.example.com/users?page=2 - 200" in caplog.text


class TestBuildRequest:
    def test_timeout_override(self) -> None:
        transport = HTTPXTransport(timeout=60.0)
        request = transport.build_request(HTTPMethod.GET, URL, {}, timeout=5.0)
        assert request.extensions["timeout"]["read"] == 5.0

    def test_default_timeout(self) -> None:
        transport = HTTPXTransport(timeout=12.0)
        request = transport.build_request(HTTPMethod.DELETE, URL, {})
        assert request.method == "DELETE"
        assert request.extensions["timeout"]["connect"] == 12.0


class TestLifecycle:
    async def test_owned_client_closed(self) -> None:
        transport = HTTPXTransport()
        async with transport:
            client = transport._client
            assert client is not None
        assert client.is_closed
        assert transport._client is None

    async def test_borrowed_client_left_open(self) -> None:
        client = httpx.AsyncClient()
        async with HTTPXTransport(client=client):
            pass
        assert not client.is_closed
        await client.aclose()
