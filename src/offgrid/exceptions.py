"""Exception hierarchy for offgrid.

All exceptions inherit from :class:`OffgridError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`offgrid.exit_codes`.
The CLI entry point in :func:`offgrid.app.main` catches ``OffgridError``
and exits with the appropriate code.

Transport-class failures (anything a caller may retry once connectivity is
back) derive from :class:`TransportError`; a response that arrived but could
not be decoded raises :class:`DecodingError` instead, so callers can tell the
two apart.

Subclass hierarchy::

    OffgridError (exit 1)
    +-- ConfigError          (exit 1)
    +-- TransportError       (exit 6)
    |   +-- ConnectionError_ (exit 6)
    |   +-- QueueCancelled   (exit 6)
    |   +-- HTTPStatusError  (exit 5)
    |       +-- AuthError     (exit 3)
    |       +-- NotFoundError (exit 4)
    +-- DecodingError        (exit 7)
    +-- CacheWriteError      (exit 8)
"""

from __future__ import annotations

from typing import Optional

from offgrid.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CACHE_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_DECODING_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_HTTP_STATUS,
    EXIT_NOT_FOUND,
)


class OffgridError(Exception):
    """Base exception for all offgrid errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`offgrid.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(OffgridError):
    """Raised for configuration problems (invalid JSON, failed validation)."""

    exit_code = EXIT_GENERIC_FAILURE


class TransportError(OffgridError):
    """Raised when the request could not be completed over the network.

    The original exception, if any, is available as ``__cause__``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class ConnectionError_(TransportError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class QueueCancelled(TransportError):
    """Raised to a caller that was suspended while offline and then cancelled.

    Produced by :meth:`~offgrid.network.suspension.RequestSuspensionQueue.cancel_all`.
    Treat it as retryable: the request never reached the network.

    Attributes:
        cause: The error supplied to ``cancel_all``.
    """

    exit_code = EXIT_CONNECTION_ERROR

    def __init__(self, cause: BaseException, message: Optional[str] = None) -> None:
        super().__init__(message or f"Suspended request cancelled: {cause}")
        self.cause = cause


class HTTPStatusError(TransportError):
    """Raised when the server answers with a non-2xx status code.

    Attributes:
        status_code: The HTTP status code returned by the server.
    """

    exit_code = EXIT_HTTP_STATUS

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(HTTPStatusError):
    """Raised when the API returns HTTP 401 or 403."""

    exit_code = EXIT_AUTH_FAILURE


class NotFoundError(HTTPStatusError):
    """Raised when the API returns HTTP 404 (resource not found)."""

    exit_code = EXIT_NOT_FOUND


class DecodingError(OffgridError):
    """Raised when response bytes do not match the expected shape.

    The raw payload is kept on the exception so callers can show or report
    what actually arrived.

    Attributes:
        raw: The undecodable response bytes.
    """

    exit_code = EXIT_DECODING_ERROR

    def __init__(self, message: str, raw: bytes = b"") -> None:
        super().__init__(message)
        self.raw = raw


class CacheWriteError(OffgridError):
    """Raised when a payload cannot be persisted to the disk tier.

    The orchestrator logs and swallows this error; it only reaches callers
    that use :class:`~offgrid.cache.CacheStore` directly.
    """

    exit_code = EXIT_CACHE_ERROR
