"""Typer application and the ``offgrid`` console script.

The root callback turns the global flags into an
:class:`~offgrid.output.OutputManager` and a log handler; sub-commands live
in :mod:`offgrid.commands` and are attached by :func:`register_commands`.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import typer

from offgrid import __version__
from offgrid.exit_codes import EXIT_GENERIC_FAILURE

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="offgrid",
    help="Offline-resilient HTTP requests with a fallback response cache.",
    no_args_is_help=True,
    add_completion=False,
)


def _show_version(value: bool) -> None:
    if value:
        typer.echo(f"offgrid {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", callback=_show_version, is_eager=True, help="Show version and exit."
    ),
    json_format: bool = typer.Option(False, "--json", help="Print data as JSON."),
    plain_format: bool = typer.Option(False, "--plain", help="Print data as tab-separated text."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colour."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print data and errors."),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log requests, responses and cache activity."
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Do not ask for confirmation."),
    cache_dir: Optional[str] = typer.Option(
        None, "--cache-dir", help="Root directory of the offline cache."
    ),
) -> None:
    from offgrid.output import OutputFormat, OutputManager, set_output

    if json_format:
        fmt = OutputFormat.JSON
    elif plain_format:
        fmt = OutputFormat.PLAIN
    else:
        fmt = OutputFormat.AUTO
    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    output.configure_logging()

    ctx.obj = {"force": force, "cache_dir": cache_dir}


_registered = False


def register_commands() -> None:
    """Attach the sub-commands to :data:`app`.  Safe to call repeatedly."""
    global _registered
    if _registered:
        return

    from offgrid.commands.cache import cache_app
    from offgrid.commands.config import config_app
    from offgrid.commands.fetch import fetch_command, status_command

    app.command("fetch")(fetch_command)
    app.command("status")(status_command)
    app.add_typer(cache_app, name="cache", help="Inspect and manage the offline cache.")
    app.add_typer(config_app, name="config", help="Show and edit settings.")
    _registered = True


def main() -> None:
    """Console-script entry point.

    An :class:`~offgrid.exceptions.OffgridError` that escapes a command
    exits with its ``exit_code``; anything else is logged with its
    traceback and exits with code 1.
    """
    from offgrid.exceptions import OffgridError
    from offgrid.output import error

    register_commands()
    try:
        app()
    except OffgridError as exc:
        error(str(exc))
        sys.exit(exc.exit_code)
    except Exception:
        logger.exception("Unexpected error")
        sys.exit(EXIT_GENERIC_FAILURE)
