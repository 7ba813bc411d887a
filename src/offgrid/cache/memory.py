"""Volatile in-memory tier of the offline cache.

A bounded least-recently-used mapping from cache key to
:class:`~offgrid.models.CacheEntry`.  Entries are evicted silently once the
capacity is exceeded, so a miss here never means "absent": callers fall
through to the disk tier.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Optional

from offgrid.models import CacheEntry

logger = logging.getLogger(__name__)


class MemoryCache:
    """LRU mirror of recently used disk entries.

    Not synchronised on its own; :class:`~offgrid.cache.store.CacheStore`
    serialises every access.

    Args:
        max_entries: Capacity.  ``0`` disables the tier entirely.
    """

    def __init__(self, max_entries: int = 256) -> None:
        self.max_entries = max_entries
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is not None:
            self._entries.move_to_end(key)
        return entry

    def set(self, key: str, entry: CacheEntry) -> None:
        if self.max_entries <= 0:
            return
        self._entries[key] = entry
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted memory cache entry %s", evicted)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
