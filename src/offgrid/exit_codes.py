"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~offgrid.exceptions.OffgridError` subclass.
Shell wrappers can inspect the exit code of ``offgrid fetch`` to tell a
dropped connection from a malformed payload without parsing stderr.

Example::

    $ offgrid fetch /users --offline
    $ echo $?
    6   # EXIT_CONNECTION_ERROR -- request was released by a shutdown
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""The remote API rejected the credentials (HTTP 401/403)."""

EXIT_NOT_FOUND = 4
"""The requested resource was not found (HTTP 404)."""

EXIT_HTTP_STATUS = 5
"""The remote API answered with a non-2xx status code."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred, or a suspended request was cancelled."""

EXIT_DECODING_ERROR = 7
"""The response body did not match the expected shape."""

EXIT_CACHE_ERROR = 8
"""The offline cache could not be written."""
