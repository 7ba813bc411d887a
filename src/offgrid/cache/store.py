"""Two-tier offline cache store.

:class:`CacheStore` owns a :class:`~offgrid.cache.memory.MemoryCache` and a
:class:`~offgrid.cache.disk.DiskCache` and is the only way to reach either
of them.  Every operation runs under one :class:`asyncio.Lock`, so a read
never observes an entry that is halfway through being written.  Blocking
file I/O is pushed to a worker thread with :func:`asyncio.to_thread`.

The store is an offline fallback, not a freshness cache: the orchestrator
reads it only while disconnected and never checks an entry's age.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from offgrid.cache.disk import DiskCache
from offgrid.cache.memory import MemoryCache
from offgrid.models import CacheEntry

logger = logging.getLogger(__name__)


class CacheStore:
    """Serialised access point for the memory and disk tiers.

    Args:
        disk: The persistent tier.
        memory: The volatile tier.  A default-sized one is created when
            omitted.

    Example::

        store = CacheStore(DiskCache(get_cache_dir()))
        await store.write(key, b'{"id": 1}')
        payload = await store.read(key)
    """

    def __init__(self, disk: DiskCache, memory: Optional[MemoryCache] = None) -> None:
        self._disk = disk
        self._memory = memory if memory is not None else MemoryCache()
        self._lock = asyncio.Lock()

    @property
    def disk(self) -> DiskCache:
        return self._disk

    async def read(self, key: str) -> Optional[bytes]:
        """Return the cached payload for *key*, or ``None`` on a miss.

        The memory tier is checked first.  A disk hit is promoted into
        memory so later reads in this process skip the file system.
        Unreadable or corrupt disk entries count as misses.
        """
        async with self._lock:
            entry = self._memory.get(key)
            if entry is not None:
                logger.debug("Memory cache hit for %s", key)
                return entry.value()

            entry = await asyncio.to_thread(self._disk.read, key)
            if entry is None:
                logger.debug("Cache miss for %s", key)
                return None

            logger.debug("Disk cache hit for %s", key)
            self._memory.set(key, entry)
            return entry.value()

    async def write(self, key: str, payload: bytes) -> None:
        """Store *payload* under *key* in memory, then on disk.

        The memory copy is kept even if the disk write fails.

        Raises:
            CacheWriteError: If the disk tier cannot persist the entry.
        """
        entry = CacheEntry(payload=payload)
        async with self._lock:
            self._memory.set(key, entry)
            await asyncio.to_thread(self._disk.write, key, entry)
        logger.debug("Cached %d bytes for %s", len(payload), key)

    async def invalidate(self, key: str) -> None:
        """Remove *key* from both tiers."""
        async with self._lock:
            self._memory.delete(key)
            await asyncio.to_thread(self._disk.delete, key)

    async def clear(self) -> int:
        """Empty both tiers and return the number of disk entries removed."""
        async with self._lock:
            self._memory.clear()
            return await asyncio.to_thread(self._disk.clear)

    async def stats(self) -> dict[str, Any]:
        """Return entry counts for both tiers and the disk directory."""
        async with self._lock:
            disk_entries = await asyncio.to_thread(len, self._disk)
            return {
                "memory_entries": len(self._memory),
                "memory_max_entries": self._memory.max_entries,
                "disk_entries": disk_entries,
                "directory": str(self._disk.directory),
            }
