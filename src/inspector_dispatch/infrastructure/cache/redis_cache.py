"""Redis-backed search cache shared across worker processes."""

import time
from typing import Callable, Optional

from redis import RedisError
from redis.asyncio import Redis

from src.inspector_dispatch.application.ports.cache import SearchCache
from src.inspector_dispatch.domain.value_objects.page import Page
from src.inspector_dispatch.domain.value_objects.search_criteria import CACHE_KEY_PREFIX
from src.inspector_dispatch.infrastructure.cache.codec import CacheCodecError, PageCodec
from src.inspector_dispatch.infrastructure.cache.memory_cache import (
    DEFAULT_ABSOLUTE_EXPIRATION_SECONDS,
    DEFAULT_SLIDING_EXPIRATION_SECONDS
)
from src.inspector_dispatch.infrastructure.logging import get_logger, log_cache_event


ENVELOPE_SEPARATOR = b"|"


def create_redis_client(
    redis_url: str,
    connect_timeout_seconds: float = 2.0,
    socket_timeout_seconds: float = 2.0,
    max_connections: int = 20
) -> Redis:
    """Construct a Redis client for binary cache payloads."""
    return Redis.from_url(
        redis_url,
        socket_connect_timeout=connect_timeout_seconds,
        socket_timeout=socket_timeout_seconds,
        max_connections=max_connections,
        decode_responses=False,
    )


class RedisSearchCache(SearchCache):
    """Search cache stored in Redis.

    Each value is ``<created-epoch>|<payload>``. Redis TTL implements the
    sliding window; the embedded creation time enforces the absolute
    ceiling, and every read re-arms the TTL to whichever limit is nearer.
    """

    def __init__(
        self,
        client: Redis,
        sliding_expiration_seconds: float = DEFAULT_SLIDING_EXPIRATION_SECONDS,
        absolute_expiration_seconds: float = DEFAULT_ABSOLUTE_EXPIRATION_SECONDS,
        codec: Optional[PageCodec] = None,
        time_source: Callable[[], float] = time.time
    ):
        self._client = client
        self.sliding_expiration_seconds = sliding_expiration_seconds
        self.absolute_expiration_seconds = absolute_expiration_seconds
        self._codec = codec or PageCodec()
        self._time_source = time_source
        self._logger = get_logger(__name__)

    async def get(self, key: str) -> Optional[Page]:
        """Get a cached page, re-arming its sliding expiry."""
        try:
            value = await self._client.get(key)
            if value is None:
                log_cache_event(self._logger, "miss", key)
                return None

            created_at, payload = self._split_envelope(value)
            age = self._time_source() - created_at
            remaining = self.absolute_expiration_seconds - age
            if remaining <= 0:
                await self._client.delete(key)
                log_cache_event(self._logger, "evict", key, eviction_cause="expired")
                return None

            ttl_ms = int(min(self.sliding_expiration_seconds, remaining) * 1000)
            await self._client.pexpire(key, max(ttl_ms, 1))
            page = self._codec.decode(payload)
        except CacheCodecError as exc:
            self._logger.warning(
                "Discarding unreadable search cache entry",
                extra={"cache_key": key, "error": str(exc)}
            )
            await self._safe_delete(key)
            return None
        except RedisError as exc:
            self._logger.error(
                "Redis error during search cache get",
                extra={"cache_key": key, "error": str(exc)}
            )
            return None

        log_cache_event(self._logger, "hit", key)
        return page

    async def set(self, key: str, page: Page) -> None:
        """Store a page with the sliding TTL."""
        try:
            payload = self._codec.encode(page)
            envelope = f"{self._time_source():.6f}".encode("ascii") + ENVELOPE_SEPARATOR + payload
            ttl_ms = int(min(self.sliding_expiration_seconds, self.absolute_expiration_seconds) * 1000)
            await self._client.set(key, envelope, px=ttl_ms)
        except CacheCodecError as exc:
            self._logger.warning(
                "Skipping search cache store",
                extra={"cache_key": key, "error": str(exc)}
            )
            return
        except RedisError as exc:
            self._logger.error(
                "Redis error during search cache set",
                extra={"cache_key": key, "error": str(exc)}
            )
            return

        log_cache_event(self._logger, "store", key, payload_bytes=len(payload))

    async def invalidate_all(self) -> None:
        """Delete every search cache key."""
        removed = 0
        try:
            async for key in self._client.scan_iter(match=f"{CACHE_KEY_PREFIX}*"):
                removed += await self._client.delete(key)
        except RedisError as exc:
            self._logger.error(
                "Redis error during search cache invalidation",
                extra={"error": str(exc), "entries_removed": removed}
            )
            return
        self._logger.debug("Search cache cleared", extra={"entries_removed": removed})

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    @staticmethod
    def _split_envelope(value: bytes):
        header, separator, payload = value.partition(ENVELOPE_SEPARATOR)
        if not separator:
            raise CacheCodecError("Missing cache envelope header")
        try:
            return float(header.decode("ascii")), payload
        except (UnicodeDecodeError, ValueError) as exc:
            raise CacheCodecError(f"Invalid cache envelope header: {exc}") from exc

    async def _safe_delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as exc:
            self._logger.error(
                "Redis error removing unreadable cache entry",
                extra={"cache_key": key, "error": str(exc)}
            )
