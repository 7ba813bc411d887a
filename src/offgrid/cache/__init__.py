"""Offline fallback response cache for offgrid.

This package provides :class:`CacheStore`, a two-tier store that keeps raw
response payloads in a bounded memory mirror (:class:`MemoryCache`) and in
signed files on disk (:class:`DiskCache`).  Entries are addressed by
:func:`cache_key`, a SHA-256 digest of the request's path, method, and
sorted query parameters.

The store is consumed by
:class:`~offgrid.client.orchestrator.OfflineAwareOrchestrator` and is read
only while the device is offline.
"""

from offgrid.cache.disk import DiskCache
from offgrid.cache.keys import cache_key, request_cache_key
from offgrid.cache.memory import MemoryCache
from offgrid.cache.store import CacheStore

__all__ = ["CacheStore", "DiskCache", "MemoryCache", "cache_key", "request_cache_key"]
