"""Connectivity tracking and request suspension.

:class:`NetworkStatusMonitor` reports whether the network is reachable,
fed by a :class:`ConnectivityProbe`.  :class:`RequestSuspensionQueue` parks
callers until the monitor reports that connectivity is back.
"""

from offgrid.network.monitor import NetworkStatusMonitor, StatusSubscription
from offgrid.network.probe import ConnectivityProbe, ManualProbe, PollingProbe
from offgrid.network.suspension import RequestSuspensionQueue, Waiter

__all__ = [
    "ConnectivityProbe",
    "ManualProbe",
    "NetworkStatusMonitor",
    "PollingProbe",
    "RequestSuspensionQueue",
    "StatusSubscription",
    "Waiter",
]
