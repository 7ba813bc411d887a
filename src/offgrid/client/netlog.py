"""Debug logging for requests, responses, and decoding failures.

Requests are rendered as a copy-pasteable ``curl`` command; responses as a
``METHOD - URL - STATUS`` line followed by the body, pretty-printed when it
is JSON.  Everything is emitted at ``DEBUG`` on the ``offgrid.client.netlog``
logger, so nothing is printed unless the application enables it (the CLI
does so for ``--verbose``).
"""

from __future__ import annotations

import json
import logging
import shlex
from typing import Any

import httpx
from pydantic import ValidationError

logger = logging.getLogger(__name__)


def as_curl(request: httpx.Request) -> str:
    """Render *request* as a multi-line ``curl`` command."""
    parts = ["curl -v", f"-X {request.method}"]
    for name, value in request.headers.items():
        parts.append(f"-H {shlex.quote(f'{name}: {value}')}")
    body = _request_body(request)
    if body:
        parts.append(f"-d {shlex.quote(body)}")
    parts.append(shlex.quote(str(request.url)))
    return " \\\n\t".join(parts)


def pretty_body(content: bytes) -> str:
    """Return *content* as indented JSON, or as text when it is not JSON."""
    if not content:
        return ""
    try:
        return json.dumps(json.loads(content), indent=2, ensure_ascii=False)
    except ValueError:
        return content.decode("utf-8", errors="replace")


def log_request(request: httpx.Request) -> None:
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("%s", as_curl(request))


def log_response(request: httpx.Request, response: httpx.Response) -> None:
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "%s - %s - %d\n%s",
            request.method,
            request.url,
            response.status_code,
            pretty_body(response.content),
        )


def describe_decoding_error(error: Exception, target: Any, raw: bytes) -> str:
    """Build a multi-line description of a failed decode.

    Pydantic validation errors are listed one per line with their location
    (``items.0.id``) and message.  The raw body is appended so the mismatch
    can be seen next to what actually arrived.
    """
    lines = [f"Decoding failed for type: {_type_name(target)}"]
    if isinstance(error, ValidationError):
        for item in error.errors():
            location = ".".join(str(part) for part in item.get("loc", ())) or "<root>"
            lines.append(f"{item.get('type', 'error')} at {location}: {item.get('msg', '')}")
    else:
        lines.append(f"{type(error).__name__}: {error}")
    if raw:
        lines.append("Raw body:")
        lines.append(raw.decode("utf-8", errors="replace"))
    return "\n".join(lines)


def log_decoding_error(error: Exception, target: Any, raw: bytes) -> None:
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("%s", describe_decoding_error(error, target, raw))


def _request_body(request: httpx.Request) -> str:
    try:
        content = request.content
    except httpx.RequestNotRead:
        return ""
    return content.decode("utf-8", errors="replace") if content else ""


def _type_name(target: Any) -> str:
    return getattr(target, "__name__", None) or repr(target)
