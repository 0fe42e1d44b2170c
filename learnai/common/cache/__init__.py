"""
Caching for the progress engine.

Exposes the backend interface, the in-memory and Redis backends, key
construction helpers and the high-level ``CacheService``.
"""

from .base import CacheBackend, CacheResult
from .entry import CacheEntry
from .key_builder import KeyBuilder
from .memory import MemoryCacheBackend
from .service import CacheService, create_cache_service

__all__ = [
    'CacheBackend',
    'CacheResult',
    'CacheEntry',
    'KeyBuilder',
    'MemoryCacheBackend',
    'CacheService',
    'create_cache_service',
]
