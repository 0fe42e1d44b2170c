"""
Base Cache Module

This module defines the core interfaces and types for the caching system:
the result type returned by every cache operation and the abstract
backend interface implemented by the memory and Redis stores.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

V = TypeVar('V')


@dataclass
class CacheResult(Generic[V]):
    """
    Result of a cache operation.

    Attributes:
        success: Whether the operation was successful
        value: The value retrieved or stored
        hit: Whether the value was found in cache (for get operations)
        ttl: Remaining time-to-live in seconds
        source: Name of the backend that served the operation
        error: Optional error message if the operation failed
    """
    success: bool
    value: Optional[V] = None
    hit: bool = False
    ttl: Optional[float] = None
    source: Optional[str] = None
    error: Optional[str] = None


class CacheBackend(ABC):
    """
    Abstract interface for cache backends.

    Keys are strings. ``ttl`` is expressed in seconds; ``None`` or ``0``
    means the entry never expires.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    async def get(self, key: str) -> CacheResult[Any]:
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> CacheResult[Any]:
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key. Returns True if the key existed."""

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``. Returns the number of keys removed."""

    @abstractmethod
    async def has(self, key: str) -> bool:
        pass

    @abstractmethod
    async def clear(self) -> bool:
        pass

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        pass

    async def close(self) -> None:
        """Release backend resources."""
