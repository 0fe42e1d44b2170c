import json
import unittest
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from learnai.common.cache import (
    CacheEntry,
    CacheResult,
    CacheService,
    KeyBuilder,
    MemoryCacheBackend,
    create_cache_service,
)
from learnai.common.cache.redis import RedisCacheBackend
from learnai.common.config import CacheConfig, RedisConfig
from learnai.common.error_handling import CacheConnectionError, CacheError, RetryPolicy


class ManualClock:

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestCacheEntry(unittest.TestCase):
    """Test the CacheEntry class."""

    def test_init(self):
        clock = ManualClock()
        entry = CacheEntry({"test": "value"}, clock=clock)
        self.assertEqual(entry.value, {"test": "value"})
        self.assertIsNone(entry.expires_at)
        self.assertEqual(entry.access_count, 0)
        self.assertIsNone(entry.get_ttl())

        entry = CacheEntry("value", ttl=10, clock=clock)
        self.assertEqual(entry.expires_at, 1010.0)
        self.assertEqual(entry.get_ttl(), 10)

    def test_is_expired(self):
        clock = ManualClock()
        entry = CacheEntry("test", ttl=5, clock=clock)
        self.assertFalse(entry.is_expired())

        clock.now += 5
        self.assertTrue(entry.is_expired())
        self.assertEqual(entry.get_ttl(), 0.0)

    def test_zero_ttl_never_expires(self):
        entry = CacheEntry("test", ttl=0)
        self.assertIsNone(entry.expires_at)
        self.assertFalse(entry.is_expired())

    def test_access(self):
        entry = CacheEntry("test")
        entry.access()
        entry.access()
        self.assertEqual(entry.access_count, 2)


class TestKeyBuilder(unittest.TestCase):
    """Test the KeyBuilder class."""

    def test_build(self):
        self.assertEqual(KeyBuilder.build("a", 1, True), "a:1:True")
        self.assertEqual(KeyBuilder.build("a", None), "a:all")
        self.assertEqual(KeyBuilder.build("a", namespace="ns"), "ns:a")

    def test_collections_are_hashed_stably(self):
        self.assertEqual(KeyBuilder.build({"b": 1, "a": 2}), KeyBuilder.build({"a": 2, "b": 1}))
        self.assertEqual(KeyBuilder.build({"x", "y"}), KeyBuilder.build({"y", "x"}))
        self.assertEqual(len(KeyBuilder.build([1, 2, 3])), 10)

    def test_entity_key_and_prefix(self):
        key = KeyBuilder.entity_key("progress", "student-1", "summary", None)
        self.assertEqual(key, "progress:student-1:summary:all")
        self.assertTrue(key.startswith(KeyBuilder.entity_prefix("progress", "student-1")))
        self.assertFalse(
            KeyBuilder.entity_key("progress", "student-10").startswith(
                KeyBuilder.entity_prefix("progress", "student-1")
            )
        )


@pytest.mark.asyncio
async def test_memory_backend_get_set_delete():
    cache = MemoryCacheBackend()

    result = await cache.set("key", {"value": 1})
    assert result.success

    result = await cache.get("key")
    assert result.hit
    assert result.value == {"value": 1}

    assert await cache.has("key")
    assert await cache.delete("key") is True
    assert await cache.delete("key") is False

    result = await cache.get("key")
    assert not result.hit
    assert result.error == "Key not found"


@pytest.mark.asyncio
async def test_memory_backend_expiry():
    clock = ManualClock()
    cache = MemoryCacheBackend(clock=clock)
    await cache.set("short", "value", ttl=1)
    await cache.set("long", "value", ttl=100)

    clock.now += 2

    assert not (await cache.get("short")).hit
    assert (await cache.get("long")).hit
    stats = await cache.get_stats()
    assert stats["expirations"] == 1


@pytest.mark.asyncio
async def test_memory_backend_cleanup_expired():
    clock = ManualClock()
    cache = MemoryCacheBackend(clock=clock)
    for i in range(3):
        await cache.set(f"key{i}", i, ttl=1)
    await cache.set("keep", "value")

    clock.now += 5
    assert cache.cleanup_expired() == 3
    assert len(cache) == 1


@pytest.mark.asyncio
async def test_memory_backend_lru_eviction():
    cache = MemoryCacheBackend(max_size=2)
    await cache.set("a", 1)
    await cache.set("b", 2)
    await cache.get("a")
    await cache.set("c", 3)

    assert await cache.has("a")
    assert not await cache.has("b")
    assert await cache.has("c")
    assert (await cache.get_stats())["evictions"] == 1


@pytest.mark.asyncio
async def test_memory_backend_delete_prefix():
    cache = MemoryCacheBackend()
    await cache.set("progress:s1:summary:all", 1)
    await cache.set("progress:s1:summary:math", 2)
    await cache.set("progress:s10:summary:all", 3)

    assert await cache.delete_prefix("progress:s1:") == 2
    assert await cache.has("progress:s10:summary:all")


@pytest.mark.asyncio
async def test_cache_service_get_or_set():
    service = CacheService()
    factory = AsyncMock(return_value={"total": 3})

    assert await service.get_or_set("k", factory) == {"total": 3}
    assert await service.get_or_set("k", factory) == {"total": 3}
    factory.assert_awaited_once()


@pytest.mark.asyncio
async def test_cache_service_caches_falsy_values():
    service = CacheService()
    factory = AsyncMock(return_value=[])

    await service.get_or_set("k", factory)
    await service.get_or_set("k", factory)
    factory.assert_awaited_once()


@pytest.mark.asyncio
async def test_disabled_cache_service_always_misses():
    service = CacheService(enabled=False)

    assert await service.set("k", 1) is False
    assert await service.get("k", "default") == "default"


@pytest.mark.asyncio
async def test_cache_failures_degrade_to_misses():
    backend = AsyncMock(spec=MemoryCacheBackend)
    backend.get.side_effect = CacheConnectionError("redis")
    backend.set.side_effect = CacheError("Redis set failed")
    backend.delete_prefix.side_effect = CacheConnectionError("redis")
    service = CacheService(backend)

    assert await service.get("k", "fallback") == "fallback"
    assert await service.set("k", 1) is False
    assert await service.invalidate_prefix("progress:") == 0
    assert await service.get_or_set("k", AsyncMock(return_value=5)) == 5


@pytest.mark.asyncio
async def test_cache_service_uses_default_ttl():
    backend = AsyncMock(spec=MemoryCacheBackend)
    backend.set.return_value = CacheResult(success=True)
    service = CacheService(backend, default_ttl=42)

    await service.set("k", 1)
    backend.set.assert_awaited_with("k", 1, 42)

    await service.set("k", 1, ttl=7)
    backend.set.assert_awaited_with("k", 1, 7)


@pytest.mark.asyncio
async def test_create_cache_service_from_config():
    service = create_cache_service(CacheConfig(memory_max_size=5, default_ttl=60))
    assert isinstance(service.backend, MemoryCacheBackend)
    assert (await service.backend.get_stats())["max_size"] == 5

    for i in range(6):
        await service.set(f"k{i}", i)
    assert len(service.backend) == 5


def test_cache_service_keeps_an_empty_backend():
    backend = MemoryCacheBackend(max_size=5)
    assert len(backend) == 0
    assert CacheService(backend).backend is backend


def test_create_redis_cache_service_from_config():
    service = create_cache_service(CacheConfig(use_redis=True), RedisConfig(host="cache.local"))
    assert isinstance(service.backend, RedisCacheBackend)


def no_wait_policy(max_retries: int = 2) -> RetryPolicy:
    return RetryPolicy(max_retries=max_retries, base_delay=0, sleep=AsyncMock())


@pytest.mark.asyncio
async def test_redis_backend_round_trip():
    redis_mock = AsyncMock()
    redis_mock.get.return_value = json.dumps({"mastery": 80}).encode()
    backend = RedisCacheBackend(redis_client=redis_mock, key_prefix="test:", retry_policy=no_wait_policy())

    result = await backend.get("progress:s1")
    assert result.hit
    assert result.value == {"mastery": 80}
    redis_mock.get.assert_awaited_with("test:progress:s1")

    await backend.set("progress:s1", {"mastery": 80}, ttl=30)
    redis_mock.set.assert_awaited_with("test:progress:s1", b'{"mastery": 80}', ex=30)


@pytest.mark.asyncio
async def test_redis_backend_miss():
    redis_mock = AsyncMock()
    redis_mock.get.return_value = None
    backend = RedisCacheBackend(redis_client=redis_mock, retry_policy=no_wait_policy())

    result = await backend.get("missing")
    assert not result.hit
    assert (await backend.get_stats())["misses"] == 1


@pytest.mark.asyncio
async def test_redis_backend_retries_connection_failures():
    redis_mock = AsyncMock()
    redis_mock.get.side_effect = [RedisConnectionError("refused"), b'"value"']
    backend = RedisCacheBackend(redis_client=redis_mock, retry_policy=no_wait_policy())

    result = await backend.get("key")
    assert result.value == "value"
    assert redis_mock.get.await_count == 2


@pytest.mark.asyncio
async def test_redis_backend_gives_up_after_max_retries():
    redis_mock = AsyncMock()
    redis_mock.get.side_effect = RedisConnectionError("refused")
    backend = RedisCacheBackend(redis_client=redis_mock, retry_policy=no_wait_policy(max_retries=2))

    with pytest.raises(CacheConnectionError):
        await backend.get("key")
    assert redis_mock.get.await_count == 3


@pytest.mark.asyncio
async def test_redis_backend_does_not_retry_command_errors():
    redis_mock = AsyncMock()
    redis_mock.set.side_effect = ResponseError("WRONGTYPE")
    backend = RedisCacheBackend(redis_client=redis_mock, retry_policy=no_wait_policy())

    with pytest.raises(CacheError) as exc_info:
        await backend.set("key", 1)
    assert not isinstance(exc_info.value, CacheConnectionError)
    assert redis_mock.set.await_count == 1


@pytest.mark.asyncio
async def test_redis_backend_delete_prefix():
    async def scan_iter(match):
        assert match == "learnai:progress:s1:*"
        for key in (b"learnai:progress:s1:a", b"learnai:progress:s1:b"):
            yield key

    redis_mock = MagicMock()
    redis_mock.scan_iter = scan_iter
    redis_mock.delete = AsyncMock(return_value=2)
    backend = RedisCacheBackend(redis_client=redis_mock, retry_policy=no_wait_policy())

    assert await backend.delete_prefix("progress:s1:") == 2
    redis_mock.delete.assert_awaited_once_with(b"learnai:progress:s1:a", b"learnai:progress:s1:b")
