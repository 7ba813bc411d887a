"""Request commands -- ``offgrid fetch`` and ``offgrid status``.

``fetch`` sends one request through
:class:`~offgrid.client.async_client.OfflineClient`, so it behaves exactly
like library code: while offline it answers from the cache or waits for
the network, up to ``--wait`` seconds.  ``--offline`` pins the connectivity
state to disconnected, which makes the cache path easy to try out.

``status`` probes the configured URL once and prints the resulting state.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import typer

from offgrid.commands import load_command_config, parse_params
from offgrid.output import error, get_output, hint, info, print_data


async def _fetch(
    config: Any,
    path: str,
    method: str,
    params: dict[str, Any],
    headers: dict[str, str],
    json_body: Any,
    use_cache: bool,
    offline: bool,
    wait: float,
) -> Any:
    from offgrid.client import OfflineClient
    from offgrid.exceptions import ConnectionError_, QueueCancelled
    from offgrid.models import CachePolicy, ConnectivityState
    from offgrid.network import ManualProbe

    probe = ManualProbe(reachable=False) if offline else None
    policy = CachePolicy.CACHE_FOR_OFFLINE if use_cache else CachePolicy.NONE

    async with OfflineClient(config, probe=probe) as client:
        descriptor = client.describe(path, headers=headers, json_body=json_body)
        request = asyncio.create_task(
            client.send(descriptor, method, cache_policy=policy, parameters=params)
        )
        done, _ = await asyncio.wait({request}, timeout=wait)
        if done:
            return request.result()

        gave_up = ConnectionError_(f"No connectivity after {wait:g}s")
        if (
            client.queue.cancel_all(gave_up) == 0
            and client.current_connectivity() is ConnectivityState.DISCONNECTED
        ):
            # Still offline but not suspended yet: it would suspend past the deadline.
            request.cancel()
        try:
            return await request
        except asyncio.CancelledError:
            raise QueueCancelled(gave_up) from None


def fetch_command(
    ctx: typer.Context,
    path: str = typer.Argument(help="Path relative to the base URL, or an absolute URL."),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
    param: Optional[list[str]] = typer.Option(
        None, "--param", "-P", help="Request parameter as name=value (repeatable)."
    ),
    header: Optional[list[str]] = typer.Option(
        None, "--header", "-H", help="Request header as name=value (repeatable)."
    ),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="JSON request body."),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Override the base URL."),
    cache: bool = typer.Option(
        True, "--cache/--no-cache", help="Use the response as an offline fallback."
    ),
    offline: bool = typer.Option(
        False, "--offline", help="Treat the network as unreachable."
    ),
    wait: float = typer.Option(
        30.0, "--wait", min=0, help="Seconds to wait for connectivity before giving up."
    ),
) -> None:
    """Send a request, falling back to the offline cache when disconnected.

    Example::

        offgrid fetch /users --base-url https://api.example.com
        offgrid fetch /users -P page=2 --offline
        offgrid fetch /users -X POST -d '{"name": "ada"}' --no-cache
    """
    from offgrid.exceptions import OffgridError, QueueCancelled
    from offgrid.models import HTTPMethod

    try:
        verb = HTTPMethod(method.upper())
    except ValueError:
        error(f"Unsupported method: {method}")
        raise typer.Exit(code=2) from None

    json_body = None
    if data is not None:
        try:
            json_body = json.loads(data)
        except json.JSONDecodeError as exc:
            error(f"Invalid JSON body: {exc}")
            raise typer.Exit(code=2) from None

    config = load_command_config(ctx, base_url)
    cache = cache and config.cache.enabled
    params = parse_params(param)
    headers = {name: str(value) for name, value in parse_params(header).items()}

    try:
        response = asyncio.run(
            _fetch(config, path, verb.value, params, headers, json_body, cache, offline, wait)
        )
    except QueueCancelled as exc:
        error(str(exc))
        if cache:
            hint("No cached response for this request yet; fetch it once while online.")
        raise typer.Exit(code=exc.exit_code) from None
    except OffgridError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    get_output().print_response(response)


def status_command(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Override the base URL."),
) -> None:
    """Probe connectivity once and print ``connected`` or ``disconnected``.

    Exits with code 6 when the network is unreachable.

    Example::

        offgrid status --base-url https://api.example.com
    """
    from offgrid.exit_codes import EXIT_CONNECTION_ERROR
    from offgrid.models import ConnectivityState

    config = load_command_config(ctx, base_url)
    url = config.monitor.probe_url or config.request.base_url
    if not url:
        error("No URL to probe. Pass --base-url or set monitor.probe_url.")
        raise typer.Exit(code=2)

    info(f"Probing {url}")
    state = asyncio.run(_probe_once(url, config.monitor.timeout_seconds))
    print_data(state.value)
    if state is ConnectivityState.DISCONNECTED:
        raise typer.Exit(code=EXIT_CONNECTION_ERROR)


async def _probe_once(url: str, timeout: float) -> Any:
    from offgrid.network import NetworkStatusMonitor, PollingProbe

    monitor = NetworkStatusMonitor(PollingProbe(url, timeout=timeout))
    async with monitor.subscribe() as states:
        await monitor.start()
        try:
            await asyncio.wait_for(states.__anext__(), timeout=timeout + 1)
        except asyncio.TimeoutError:
            # An unreachable endpoint produces no transition from the initial state.
            pass
        finally:
            await monitor.stop()
    return monitor.current_status()
