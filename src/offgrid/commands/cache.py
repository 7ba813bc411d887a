"""Cache commands -- inspect and manage the offline fallback cache.

Provides the ``offgrid cache`` sub-command group.  Entries are addressed by
the same key the client uses, so ``offgrid cache key /users -P page=2``
prints the key a ``GET /users?page=2`` request reads and writes.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer

from offgrid.commands import confirm, load_command_config, parse_params
from offgrid.output import error, get_output, info, print_data


cache_app = typer.Typer(no_args_is_help=True)


def _store(ctx: typer.Context):  # noqa: ANN202
    from offgrid.client.async_client import build_cache_store

    store = build_cache_store(load_command_config(ctx))
    if store is None:
        error("The offline cache is disabled (cache.enabled = false).")
        raise typer.Exit(code=2)
    return store


def _key_for(
    ctx: typer.Context,
    path: str,
    method: str,
    params: dict,
    base_url: Optional[str],
) -> tuple[str, str]:
    from offgrid.cache.keys import raw_cache_key, sha256_hex
    from offgrid.client import encode_parameters
    from offgrid.models import HTTPMethod, RequestDescriptor

    try:
        verb = HTTPMethod(method.upper())
    except ValueError:
        error(f"Unsupported method: {method}")
        raise typer.Exit(code=2) from None

    config = load_command_config(ctx, base_url)
    descriptor = RequestDescriptor(path=path, base_url=config.request.base_url)
    if params:
        descriptor = encode_parameters(descriptor, verb, params)
    url = descriptor.url()
    raw = raw_cache_key(url.path, verb, url.params.multi_items())
    return sha256_hex(raw), raw


@cache_app.command("stats")
def cache_stats(ctx: typer.Context) -> None:
    """Show entry counts and the cache directory.

    Example::

        offgrid cache stats
        offgrid --json cache stats
    """
    stats = asyncio.run(_store(ctx).stats())
    get_output().print_fields(stats, title="Offline cache")


@cache_app.command("clear")
def cache_clear(ctx: typer.Context) -> None:
    """Delete every cached response.

    Asks for confirmation unless ``--force`` is active.

    Example::

        offgrid --force cache clear
    """
    store = _store(ctx)
    confirm(ctx, "Delete all cached responses?")

    removed = asyncio.run(store.clear())
    info(f"Removed {removed} cached response(s).")


@cache_app.command("key")
def cache_key_command(
    ctx: typer.Context,
    path: str = typer.Argument(help="Request path or absolute URL."),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
    param: Optional[list[str]] = typer.Option(
        None, "--param", "-P", help="Request parameter as name=value (repeatable)."
    ),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Override the base URL."),
) -> None:
    """Print the cache key for a request.

    The canonical ``PATH|METHOD|QUERY`` form goes to stderr, the key to
    stdout.

    Example::

        offgrid cache key /users -P b=2 -P a=1
    """
    key, raw = _key_for(ctx, path, method, parse_params(param), base_url)
    info(raw)
    print_data(key)


@cache_app.command("forget")
def cache_forget(
    ctx: typer.Context,
    path: str = typer.Argument(help="Request path or absolute URL."),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
    param: Optional[list[str]] = typer.Option(
        None, "--param", "-P", help="Request parameter as name=value (repeatable)."
    ),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Override the base URL."),
) -> None:
    """Remove the cached response for one request.

    Example::

        offgrid cache forget /users -P page=2
    """
    key, raw = _key_for(ctx, path, method, parse_params(param), base_url)
    asyncio.run(_store(ctx).invalidate(key))
    info(f"Forgot {raw}")
