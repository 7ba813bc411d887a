"""Built-in CLI sub-commands for offgrid.

* :mod:`~offgrid.commands.fetch` -- ``fetch`` runs one orchestrated request;
  ``status`` probes connectivity once.
* :mod:`~offgrid.commands.cache` -- inspect, clear, and address the offline
  cache.
* :mod:`~offgrid.commands.config` -- view and modify global settings.

Multi-command groups export a :class:`typer.Typer` sub-application; single
commands export a plain callback registered on the root app.  The helpers
below are shared by all of them.
"""

from __future__ import annotations

from typing import Any, Optional

import typer

from offgrid.models import GlobalConfig
from offgrid.output import error


def parse_params(values: Optional[list[str]]) -> dict[str, Any]:
    """Turn repeated ``name=value`` options into a dict.

    A name given more than once collects its values in a list.

    Raises:
        typer.Exit: With code 2 when an item has no ``=``.
    """
    params: dict[str, Any] = {}
    for item in values or []:
        name, sep, value = item.partition("=")
        if not sep or not name:
            error(f"Invalid parameter '{item}', expected name=value")
            raise typer.Exit(code=2)
        if name in params:
            existing = params[name]
            params[name] = existing + [value] if isinstance(existing, list) else [existing, value]
        else:
            params[name] = value
    return params


def load_command_config(ctx: typer.Context, base_url: Optional[str] = None) -> GlobalConfig:
    """Resolve the effective configuration for a sub-command.

    Raises:
        typer.Exit: With code 2 when a config file is invalid.
    """
    from offgrid.config import resolve_config
    from offgrid.exceptions import ConfigError

    obj = ctx.obj or {}
    try:
        return resolve_config(base_url=base_url, cache_dir=obj.get("cache_dir"))
    except ConfigError as exc:
        error(f"Config error: {exc}")
        raise typer.Exit(code=2) from None


def confirm(ctx: typer.Context, question: str) -> None:
    """Ask *question* unless ``--force`` was given; exit quietly on "no"."""
    from offgrid.output import info

    if (ctx.obj or {}).get("force"):
        return
    if not typer.confirm(question):
        info("Cancelled.")
        raise typer.Exit()
