"""
Memory Cache Backend Module

In-memory cache backend with thread safety, LRU eviction and lazy
expiry of stale entries. Used in development, tests and single-process
deployments.
"""

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional

from learnai.common.logger import app_logger

from .base import CacheBackend, CacheResult
from .entry import CacheEntry

logger = app_logger.getChild("cache.memory")


class MemoryCacheBackend(CacheBackend):
    """
    In-memory cache backend implementation.

    Entries live in an ``OrderedDict`` kept in least-recently-used order.
    Expired entries are dropped when they are read, and in bulk by
    ``cleanup_expired``.
    """

    def __init__(self, max_size: int = 10000, name: str = "memory", clock: Callable[[], float] = time.monotonic):
        self._cache: "OrderedDict[str, CacheEntry[Any]]" = OrderedDict()
        self._lock = threading.RLock()
        self._max_size = max_size
        self._name = name
        self._clock = clock

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    @property
    def name(self) -> str:
        return self._name

    async def get(self, key: str) -> CacheResult[Any]:
        with self._lock:
            entry = self._cache.get(key)

            if entry is None:
                self._misses += 1
                return CacheResult(success=False, source=self.name, error="Key not found")

            if entry.is_expired():
                del self._cache[key]
                self._expirations += 1
                self._misses += 1
                return CacheResult(success=False, source=self.name, error="Entry expired")

            entry.access()
            self._cache.move_to_end(key)
            self._hits += 1

            return CacheResult(success=True, value=entry.value, hit=True, ttl=entry.get_ttl(), source=self.name)

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> CacheResult[Any]:
        with self._lock:
            if key not in self._cache and len(self._cache) >= self._max_size:
                self._evict_entries()

            self._cache[key] = CacheEntry(value, ttl=ttl, clock=self._clock)
            self._cache.move_to_end(key)

            return CacheResult(success=True, value=value, ttl=ttl, source=self.name)

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    async def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [key for key in self._cache if key.startswith(prefix)]
            for key in keys:
                del self._cache[key]
            return len(keys)

    async def has(self, key: str) -> bool:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return False
            if entry.is_expired():
                del self._cache[key]
                self._expirations += 1
                return False
            return True

    async def clear(self) -> bool:
        with self._lock:
            self._cache.clear()
            return True

    async def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                'backend': self.name,
                'size': len(self._cache),
                'max_size': self._max_size,
                'hits': self._hits,
                'misses': self._misses,
                'hit_rate': self._hits / total if total > 0 else 0,
                'evictions': self._evictions,
                'expirations': self._expirations
            }

    def cleanup_expired(self) -> int:
        """Remove expired entries. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired_keys = [key for key, entry in self._cache.items() if entry.is_expired(now)]
            for key in expired_keys:
                del self._cache[key]
            self._expirations += len(expired_keys)
            return len(expired_keys)

    def _evict_entries(self) -> None:
        while self._cache and len(self._cache) >= self._max_size:
            key, _ = self._cache.popitem(last=False)
            self._evictions += 1
            logger.debug(f"Evicted cache entry {key}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
