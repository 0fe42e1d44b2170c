"""
Redis Cache Backend Module

Distributed cache backend on ``redis.asyncio``. Values are stored as JSON
under a configurable key prefix; connection failures are retried with the
shared retry policy and surfaced as ``CacheError``.
"""

import json
from typing import Any, Dict, Optional

from redis import asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from learnai.common.error_handling import CacheConnectionError, CacheError, RetryPolicy
from learnai.common.logger import app_logger
from learnai.common.utils import serialize_datetime

from .base import CacheBackend, CacheResult

logger = app_logger.getChild("cache.redis")


def _is_connection_failure(error: BaseException) -> bool:
    return isinstance(error, CacheConnectionError)


class RedisCacheBackend(CacheBackend):
    """
    Redis cache backend implementation.

    Every public operation goes through ``_call`` which maps redis-py
    exceptions onto the cache error hierarchy and retries connection
    failures.
    """

    def __init__(
        self,
        redis_client: Optional[aioredis.Redis] = None,
        url: str = "redis://localhost:6379/0",
        key_prefix: str = "learnai:",
        retry_policy: Optional[RetryPolicy] = None,
        name: str = "redis",
        socket_timeout: Optional[float] = None
    ):
        self._key_prefix = key_prefix
        self._name = name
        self._redis = redis_client or aioredis.from_url(
            url, decode_responses=False, socket_timeout=socket_timeout
        )
        self._retry = (retry_policy or RetryPolicy()).with_predicate(_is_connection_failure)
        self._hits = 0
        self._misses = 0

    @property
    def name(self) -> str:
        return self._name

    def _build_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    @staticmethod
    def _serialize(value: Any) -> bytes:
        return json.dumps(value, default=serialize_datetime).encode('utf-8')

    @staticmethod
    def _deserialize(data: Optional[bytes]) -> Any:
        if data is None:
            return None
        if isinstance(data, bytes):
            data = data.decode('utf-8')
        return json.loads(data)

    async def _call(self, operation: str, func, *args, **kwargs):
        async def attempt():
            try:
                return await func(*args, **kwargs)
            except (RedisConnectionError, RedisTimeoutError) as e:
                raise CacheConnectionError(self._name, details={"operation": operation}, cause=e)
            except RedisError as e:
                raise CacheError(f"Redis {operation} failed", details={"operation": operation}, cause=e)

        attempt.__name__ = f"redis_{operation}"
        return await self._retry.run(attempt)

    async def get(self, key: str) -> CacheResult[Any]:
        data = await self._call("get", self._redis.get, self._build_key(key))
        if data is None:
            self._misses += 1
            return CacheResult(success=False, source=self.name, error="Key not found")

        try:
            value = self._deserialize(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            await self.delete(key)
            self._misses += 1
            return CacheResult(success=False, source=self.name, error="Undecodable entry")

        self._hits += 1
        return CacheResult(success=True, value=value, hit=True, source=self.name)

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> CacheResult[Any]:
        payload = self._serialize(value)
        expire = int(ttl) if ttl else None
        await self._call("set", self._redis.set, self._build_key(key), payload, ex=expire)
        return CacheResult(success=True, value=value, ttl=ttl, source=self.name)

    async def delete(self, key: str) -> bool:
        deleted = await self._call("delete", self._redis.delete, self._build_key(key))
        return bool(deleted)

    async def delete_prefix(self, prefix: str) -> int:
        async def scan_and_delete() -> int:
            keys = [key async for key in self._redis.scan_iter(match=f"{self._build_key(prefix)}*")]
            if not keys:
                return 0
            return await self._redis.delete(*keys)

        return int(await self._call("delete_prefix", scan_and_delete))

    async def has(self, key: str) -> bool:
        return bool(await self._call("exists", self._redis.exists, self._build_key(key)))

    async def clear(self) -> bool:
        await self.delete_prefix("")
        return True

    async def get_stats(self) -> Dict[str, Any]:
        total = self._hits + self._misses
        return {
            'backend': self.name,
            'hits': self._hits,
            'misses': self._misses,
            'hit_rate': self._hits / total if total > 0 else 0,
        }

    async def close(self) -> None:
        await self._redis.aclose()
