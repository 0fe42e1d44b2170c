"""
Cache Service Module

High-level cache API used by the progress engine. Wraps a backend,
applies the default TTL, and degrades cache failures to cache misses so
that an unavailable cache never fails a request.
"""

import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from learnai.common.error_handling import CacheError, RetryPolicy, log_error
from learnai.common.logger import app_logger

from .base import CacheBackend
from .memory import MemoryCacheBackend

logger = app_logger.getChild("cache.service")

T = TypeVar('T')


class CacheService:
    """
    Caching service over a single backend.

    ``get`` returns ``default`` on a miss or on a backend failure; ``set``
    and the delete operations return falsy values on failure. Failures are
    logged as warnings.
    """

    def __init__(self, backend: Optional[CacheBackend] = None, default_ttl: Optional[float] = 300, enabled: bool = True):
        self._backend = backend if backend is not None else MemoryCacheBackend()
        self._default_ttl = default_ttl
        self.enabled = enabled

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    async def get(self, key: str, default: Any = None) -> Any:
        if not self.enabled:
            return default
        try:
            result = await self._backend.get(key)
        except CacheError as e:
            self._log_failure(e, "get", key)
            return default
        return result.value if result.hit else default

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        if not self.enabled:
            return False
        try:
            result = await self._backend.set(key, value, ttl if ttl is not None else self._default_ttl)
        except CacheError as e:
            self._log_failure(e, "set", key)
            return False
        return result.success

    async def delete(self, key: str) -> bool:
        try:
            return await self._backend.delete(key)
        except CacheError as e:
            self._log_failure(e, "delete", key)
            return False

    async def invalidate_prefix(self, prefix: str) -> int:
        """Delete every entry whose key starts with ``prefix``."""
        try:
            count = await self._backend.delete_prefix(prefix)
        except CacheError as e:
            self._log_failure(e, "delete_prefix", prefix)
            return 0
        if count:
            logger.debug(f"Invalidated {count} cache entries with prefix {prefix}")
        return count

    async def get_or_set(self, key: str, factory: Callable[[], Awaitable[T]], ttl: Optional[float] = None) -> T:
        """Return the cached value for ``key``, computing and storing it on a miss."""
        sentinel = object()
        cached = await self.get(key, sentinel)
        if cached is not sentinel:
            return cached
        value = await factory()
        await self.set(key, value, ttl)
        return value

    async def clear(self) -> bool:
        try:
            return await self._backend.clear()
        except CacheError as e:
            self._log_failure(e, "clear", "*")
            return False

    async def get_stats(self) -> dict:
        return await self._backend.get_stats()

    async def close(self) -> None:
        await self._backend.close()

    @staticmethod
    def _log_failure(error: CacheError, operation: str, key: str) -> None:
        log_error(error, level=logging.WARNING, include_stack_trace=False,
                  context={"cache_operation": operation, "key": key}, log=logger)


def create_cache_service(cache_config, redis_config=None, retry_policy: Optional[RetryPolicy] = None) -> CacheService:
    """
    Build the cache service described by the configuration.

    Args:
        cache_config: ``CacheConfig`` section
        redis_config: ``RedisConfig`` section, required when ``use_redis`` is set
        retry_policy: Policy applied to Redis calls

    Returns:
        Configured cache service
    """
    if cache_config.use_redis and redis_config is not None:
        from .redis import RedisCacheBackend

        backend: CacheBackend = RedisCacheBackend(
            url=redis_config.connection_string,
            key_prefix=f"{cache_config.key_prefix}:",
            retry_policy=retry_policy,
            socket_timeout=redis_config.connection_timeout,
        )
        logger.info(f"Using Redis cache at {redis_config.host}:{redis_config.port}")
    else:
        backend = MemoryCacheBackend(max_size=cache_config.memory_max_size)
        logger.info("Using in-memory cache")

    return CacheService(backend, default_ttl=cache_config.default_ttl, enabled=cache_config.enabled)
