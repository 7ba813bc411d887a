"""Deterministic cache keys for the offline fallback cache.

A key is the SHA-256 hex digest of ``PATH|METHOD|QUERY`` where ``QUERY`` is
the request's query parameters rendered as ``name=value`` pairs, sorted, and
joined by ``&``.  A request without a query still keeps both separators, so
the canonical raw form of ``GET /a`` is ``/a|GET|``.

The key never depends on time or on the response, so identical requests
always resolve to the same entry regardless of parameter ordering.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterable, Mapping
from typing import Any, Union

from offgrid.models import HTTPMethod, RequestDescriptor

QueryLike = Union[Mapping[str, Any], Iterable[tuple[str, Any]], None]

_SLASHES = re.compile(r"/{2,}")


def sha256_hex(text: str) -> str:
    """Return the lowercase hex SHA-256 digest of *text* encoded as UTF-8."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def normalize_path(path: str) -> str:
    """Collapse repeated slashes and guarantee a leading ``/``."""
    path = _SLASHES.sub("/", path or "")
    if not path.startswith("/"):
        path = "/" + path
    return path


def _query_pairs(query: QueryLike) -> list[tuple[str, str]]:
    if not query:
        return []
    items = query.items() if isinstance(query, Mapping) else query
    pairs: list[tuple[str, str]] = []
    for name, value in items:
        if isinstance(value, (list, tuple)):
            pairs.extend((str(name), _stringify(v)) for v in value)
        else:
            pairs.append((str(name), _stringify(value)))
    return pairs


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if value is True:
        return "true"
    if value is False:
        return "false"
    return str(value)


def raw_cache_key(path: str, method: str | HTTPMethod, query: QueryLike = None) -> str:
    """Build the unhashed ``PATH|METHOD|QUERY`` string."""
    verb = method.value if isinstance(method, HTTPMethod) else str(method).upper()
    rendered = "&".join(f"{name}={value}" for name, value in sorted(_query_pairs(query)))
    return "|".join([normalize_path(path), verb, rendered])


def cache_key(path: str, method: str | HTTPMethod, query: QueryLike = None) -> str:
    """Return the cache key for a logical request.

    Args:
        path: URL path of the request (without scheme or host).
        method: HTTP method; case-insensitive.
        query: Query parameters as a mapping or a sequence of pairs.  List
            values expand to repeated names.

    Returns:
        A 64-character lowercase hex string.

    Example::

        >>> cache_key("/users", "GET", {"b": 2, "a": 1}) == cache_key("/users", "get", [("a", 1), ("b", 2)])
        True
    """
    return sha256_hex(raw_cache_key(path, method, query))


def request_cache_key(request: RequestDescriptor, method: str | HTTPMethod) -> str:
    """Return the cache key for *request* sent with *method*.

    Path and query are taken from the resolved URL so the key matches what
    goes over the wire, including query strings embedded in ``request.path``.
    """
    url = request.url()
    return cache_key(url.path, method, url.params.multi_items())
