"""offgrid -- an HTTP request layer that keeps working across connectivity loss.

Requests go through an orchestrator that knows whether the network is
reachable.  While offline, requests that opted into caching are answered
from the last successful response, and everything else waits until the
network comes back instead of failing.

Typical use::

    from offgrid import CachePolicy, OfflineClient, resolve_config

    async with OfflineClient(resolve_config()) as client:
        users = await client.get("/users", cache_policy=CachePolicy.CACHE_FOR_OFFLINE)

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    config: Settings file, environment overrides, and directories.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes.
    output: stdout/stderr formatting for the CLI.
    cache: Two-tier offline fallback cache.
    network: Connectivity monitor, probes, and the suspension queue.
    client: Orchestrator, transport, decoder, and the client facade.
"""

__version__ = "0.1.0"

from offgrid.client import OfflineAwareOrchestrator, OfflineClient, Response, ResponseSource
from offgrid.config import resolve_config
from offgrid.models import CachePolicy, ConnectivityState, HTTPMethod, RequestDescriptor

__all__ = [
    "CachePolicy",
    "ConnectivityState",
    "HTTPMethod",
    "OfflineAwareOrchestrator",
    "OfflineClient",
    "RequestDescriptor",
    "Response",
    "ResponseSource",
    "__version__",
    "resolve_config",
]
