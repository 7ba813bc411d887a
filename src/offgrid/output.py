"""Terminal output for the offgrid CLI.

Data goes to stdout: response bodies, cache statistics, keys and config
dumps.  Diagnostics go to stderr: provenance lines, errors, hints, and the
library's own log records.  Piping ``offgrid fetch`` therefore yields just
the body.

The library never prints.  :meth:`OutputManager.configure_logging` routes
``offgrid.*`` log records to stderr through :class:`rich.logging.RichHandler`.
"""

from __future__ import annotations

import json
import logging
import sys
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from offgrid.client.response import Response

_HANDLER_NAME = "offgrid-cli"


class OutputFormat(str, Enum):
    """How stdout data is rendered.  ``AUTO`` picks ``RICH`` on a colour TTY."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


def _is_tty() -> bool:
    return sys.stdout.isatty()


class OutputManager:
    """Renders CLI data and diagnostics.

    Colour follows ``--no-color`` and the ``NO_COLOR`` environment variable
    (rich reads the latter itself).
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        # Consoles without a file look up sys.stdout/sys.stderr on every write.
        options: dict[str, Any] = {"highlight": False, "soft_wrap": True}
        if no_color:
            options["no_color"] = True
        self._out = Console(**options)
        self._err = Console(stderr=True, **options)
        self.color = not self._err.no_color
        self.quiet = quiet
        self.verbose = verbose
        if format is OutputFormat.AUTO:
            format = OutputFormat.RICH if self.color and _is_tty() else OutputFormat.PLAIN
        self.format = format

    def configure_logging(self) -> logging.Handler:
        """Send ``offgrid`` log records to stderr, DEBUG and up when verbose.

        Replaces the handler installed by an earlier call.
        """
        handler: logging.Handler
        if self.color:
            handler = RichHandler(console=self._err, show_time=False, show_path=False)
        else:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        handler.set_name(_HANDLER_NAME)

        logger = logging.getLogger("offgrid")
        for old in [h for h in logger.handlers if h.get_name() == _HANDLER_NAME]:
            logger.removeHandler(old)
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG if self.verbose else logging.WARNING)
        return handler

    # stdout

    def print_data(self, text: str) -> None:
        print(text, flush=True)

    def print_response(self, response: Response[Any]) -> None:
        """Provenance line to stderr, then the body (if any) to stdout."""
        self.info(response.provenance)
        data = response.display_data
        if data is None:
            return
        content_type = response.headers.get("content-type", "application/json")
        if self.format is OutputFormat.JSON:
            self._print_json(data)
        elif self.format is OutputFormat.PLAIN:
            self._print_plain(data)
        elif isinstance(data, (dict, list)):
            self._print_json(data)
        elif "json" in content_type and isinstance(data, str):
            self._out.print(Syntax(data, "json", word_wrap=True))
        else:
            self._out.print(str(data), markup=False)

    def print_document(self, data: Mapping[str, Any]) -> None:
        """Print a nested mapping such as the effective config."""
        if self.format is OutputFormat.PLAIN:
            for name, value in _flatten(data):
                self.print_data(f"{name}\t{value}")
        else:
            self._print_json(dict(data))

    def print_fields(self, fields: Mapping[str, Any], title: str) -> None:
        """Print name/value pairs: an object, tab-separated lines, or a table."""
        if self.format is OutputFormat.JSON:
            self.print_data(json.dumps(dict(fields), indent=2, default=str))
        elif self.format is OutputFormat.PLAIN:
            for name, value in fields.items():
                self.print_data(f"{name}\t{value}")
        else:
            table = Table(title=title, show_header=False)
            table.add_column(style="bold cyan")
            table.add_column()
            for name, value in fields.items():
                table.add_row(name, str(value))
            self._out.print(table)

    # stderr

    def info(self, message: str) -> None:
        if not self.quiet:
            self._err.print(message, markup=False)

    def hint(self, message: str) -> None:
        if not self.quiet:
            self._err.print(f"→ {message}", style="dim", markup=False)

    def error(self, message: str) -> None:
        self._err.print(Text.assemble(("Error:", "bold red"), " ", message))

    def _print_json(self, data: Any) -> None:
        text = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        if self.format is OutputFormat.RICH:
            self._out.print(Syntax(text, "json", word_wrap=True))
        else:
            self.print_data(text)

    def _print_plain(self, data: Any) -> None:
        if isinstance(data, dict):
            for name, value in data.items():
                self.print_data(f"{name}\t{value}")
        elif isinstance(data, list):
            for item in data:
                row = item.values() if isinstance(item, dict) else [item]
                self.print_data("\t".join(str(v) for v in row))
        else:
            self.print_data(str(data))


def _flatten(data: Mapping[str, Any], prefix: str = "") -> list[tuple[str, Any]]:
    items: list[tuple[str, Any]] = []
    for name, value in data.items():
        if isinstance(value, Mapping) and value:
            items.extend(_flatten(value, f"{prefix}{name}."))
        else:
            items.append((f"{prefix}{name}", value))
    return items


_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the manager installed by the root callback (or a default one)."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: Optional[OutputManager]) -> None:
    global _output
    _output = output


def info(message: str) -> None:
    get_output().info(message)


def hint(message: str) -> None:
    get_output().hint(message)


def error(message: str) -> None:
    get_output().error(message)


def print_data(text: str) -> None:
    get_output().print_data(text)
