"""HTTP client layer for offgrid.

:class:`OfflineClient` is the entry point most applications need.  The
pieces it is made of are exported for callers that want to assemble their
own: :class:`OfflineAwareOrchestrator`, the :class:`Transport` and
:class:`Decoder` interfaces with their default implementations, and the
:class:`Response` envelope.
"""

from offgrid.client.async_client import OfflineClient
from offgrid.client.decoder import Decoder, JSONDecoder
from offgrid.client.orchestrator import OfflineAwareOrchestrator, encode_parameters
from offgrid.client.response import Response, ResponseSource
from offgrid.client.transport import HTTPXTransport, Transport

__all__ = [
    "Decoder",
    "HTTPXTransport",
    "JSONDecoder",
    "OfflineAwareOrchestrator",
    "OfflineClient",
    "Response",
    "ResponseSource",
    "Transport",
    "encode_parameters",
]
