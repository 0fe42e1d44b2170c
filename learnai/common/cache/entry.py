"""
Cache Entry Module

A cached value together with its expiry and access bookkeeping.
"""

import time
from typing import Callable, Generic, Optional, TypeVar

V = TypeVar('V')


class CacheEntry(Generic[V]):
    """
    Represents a cached value with metadata.

    Attributes:
        value: The cached value
        created_at: When the entry was created (clock time)
        expires_at: When the entry expires, or None for no expiration
        access_count: Number of times the entry has been read
    """

    def __init__(self, value: V, ttl: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.value = value
        self.created_at = clock()
        self.expires_at = None if not ttl else self.created_at + ttl
        self.access_count = 0

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (self._clock() if now is None else now) >= self.expires_at

    def access(self) -> None:
        self.access_count += 1

    def get_ttl(self) -> Optional[float]:
        """Remaining TTL in seconds, or None if the entry never expires."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self._clock())
