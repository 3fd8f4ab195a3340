"""
Catalog Cache Service
=====================

In-memory cache in front of the catalog read path. Keys are business ids,
values are immutable item snapshots (see services.catalog.CatalogItem), so
cached entries never hold live ORM objects from a closed session.

Only the catalog read path calls get/set. invalidate() is called when a
confirmed mutation touches catalog-derived state (order confirmation), never
on ordinary draft edits.

Eviction:
---------
1. **TTL-based**: entries older than CATALOG_CACHE_TTL_SECONDS are dropped on
   read.
2. **LRU-based**: when the cache reaches CATALOG_CACHE_MAX_SIZE, the oldest
   10% of entries (by last access) are evicted to make room.

All operations hold a threading.Lock; FastAPI serves sync routes from a
thread pool.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional

from ..config import CATALOG_CACHE_MAX_SIZE, CATALOG_CACHE_TTL_SECONDS


logger = logging.getLogger(__name__)


class CatalogCache:
    def __init__(
        self,
        ttl_seconds: int = CATALOG_CACHE_TTL_SECONDS,
        max_size: int = CATALOG_CACHE_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        # {key: {"value": ..., "stored_at": t, "last_access": t}}
        self._entries: Dict[Hashable, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if now - entry["stored_at"] > self.ttl_seconds:
                del self._entries[key]
                logger.debug("Catalog cache entry %s expired", key)
                return None
            entry["last_access"] = now
            return entry["value"]

    def set(self, key: Hashable, value: Any) -> None:
        now = self._clock()
        with self._lock:
            if len(self._entries) >= self.max_size and key not in self._entries:
                self._evict_oldest(max(1, self.max_size // 10))
            self._entries[key] = {"value": value, "stored_at": now, "last_access": now}

    def invalidate(self, key: Hashable) -> bool:
        """Drop one key. Returns True if something was cached."""
        with self._lock:
            removed = self._entries.pop(key, None) is not None
        if removed:
            logger.debug("Catalog cache invalidated for %s", key)
        return removed

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("Cleared %d catalog cache entries", count)
        return count

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            access_times = [entry["last_access"] for entry in self._entries.values()]
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
                "oldest_access": min(access_times) if access_times else None,
                "newest_access": max(access_times) if access_times else None,
            }

    def _evict_oldest(self, count: int) -> None:
        # Caller holds the lock
        oldest = sorted(self._entries.items(), key=lambda kv: kv[1]["last_access"])[:count]
        for key, _ in oldest:
            del self._entries[key]
        logger.debug("Evicted %d oldest catalog cache entries", len(oldest))


# Process-wide instance used by services.catalog
catalog_cache = CatalogCache()
