"""Unit tests for the Redis-backed search cache."""

import fnmatch
from unittest.mock import AsyncMock

import pytest
from redis import RedisError

from src.inspector_dispatch.infrastructure.cache.redis_cache import RedisSearchCache
from tests.factories import make_page

pytestmark = pytest.mark.asyncio


class FakeRedis:
    """Dict-backed stand-in for the redis.asyncio client calls the cache makes."""

    def __init__(self):
        self.values = {}
        self.ttls = {}
        self.closed = False

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value, px=None):
        self.values[key] = value
        self.ttls[key] = px
        return True

    async def pexpire(self, key, milliseconds):
        self.ttls[key] = milliseconds
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None:
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def scan_iter(self, match=None):
        for key in list(self.values):
            if match is None or fnmatch.fnmatch(key, match):
                yield key

    async def aclose(self):
        self.closed = True


class FakeTime:
    """Manually advanced wall-clock time source."""

    def __init__(self):
        self.value = 1_700_000_000.0

    def __call__(self) -> float:
        return self.value


@pytest.fixture
def redis_client():
    return FakeRedis()


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def cache(redis_client, fake_time):
    return RedisSearchCache(
        redis_client,
        sliding_expiration_seconds=300,
        absolute_expiration_seconds=1800,
        time_source=fake_time
    )


class TestRedisSearchCache:
    """Test cases for RedisSearchCache."""

    async def test_set_stores_envelope_with_sliding_ttl(self, cache, redis_client):
        """Test values carry their creation time and the sliding TTL."""
        await cache.set("inspector:search:a", make_page())

        value = redis_client.values["inspector:search:a"]
        assert value.startswith(b"1700000000.000000|")
        assert redis_client.ttls["inspector:search:a"] == 300_000

    async def test_hit_returns_equal_page(self, cache):
        """Test a stored page round-trips through Redis."""
        page = make_page()
        await cache.set("inspector:search:a", page)

        assert await cache.get("inspector:search:a") == page

    async def test_miss(self, cache):
        """Test a missing key is a miss."""
        assert await cache.get("inspector:search:missing") is None

    async def test_read_rearms_ttl_to_nearer_limit(self, cache, redis_client, fake_time):
        """Test reads re-arm the sliding TTL, capped by the absolute ceiling."""
        await cache.set("inspector:search:a", make_page())

        fake_time.value += 200
        await cache.get("inspector:search:a")
        assert redis_client.ttls["inspector:search:a"] == 300_000

        fake_time.value += 1400
        await cache.get("inspector:search:a")
        assert redis_client.ttls["inspector:search:a"] == 200_000

    async def test_absolute_ceiling(self, cache, redis_client, fake_time):
        """Test an entry past the absolute ceiling is deleted on read."""
        await cache.set("inspector:search:a", make_page())

        fake_time.value += 1800
        assert await cache.get("inspector:search:a") is None
        assert "inspector:search:a" not in redis_client.values

    async def test_corrupt_entry_is_a_miss(self, cache, redis_client):
        """Test an unreadable value reads as a miss and is removed."""
        redis_client.values["inspector:search:a"] = b"no envelope here"

        assert await cache.get("inspector:search:a") is None
        assert "inspector:search:a" not in redis_client.values

    async def test_invalidate_all_only_removes_search_keys(self, cache, redis_client):
        """Test invalidation leaves unrelated keys alone."""
        await cache.set("inspector:search:a", make_page())
        await cache.set("inspector:search:b", make_page())
        redis_client.values["session:xyz"] = b"keep"

        await cache.invalidate_all()

        assert list(redis_client.values) == ["session:xyz"]

    async def test_redis_errors_are_swallowed(self, fake_time):
        """Test backend failures read as misses and drop writes."""
        client = AsyncMock()
        client.get.side_effect = RedisError("connection refused")
        client.set.side_effect = RedisError("connection refused")
        cache = RedisSearchCache(client, time_source=fake_time)

        assert await cache.get("inspector:search:a") is None
        await cache.set("inspector:search:a", make_page())

    async def test_close(self, cache, redis_client):
        """Test closing releases the client."""
        await cache.close()

        assert redis_client.closed is True
