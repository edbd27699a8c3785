"""In-process search cache implementations."""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from src.inspector_dispatch.application.ports.cache import SearchCache
from src.inspector_dispatch.domain.value_objects.page import Page
from src.inspector_dispatch.infrastructure.cache.codec import CacheCodecError, PageCodec
from src.inspector_dispatch.infrastructure.logging import get_logger, log_cache_event


DEFAULT_SLIDING_EXPIRATION_SECONDS = 5 * 60
DEFAULT_ABSOLUTE_EXPIRATION_SECONDS = 30 * 60
DEFAULT_MAX_ENTRIES = 1024


@dataclass
class _CacheEntry:
    payload: bytes
    created_at: float
    last_access: float


class InMemorySearchCache(SearchCache):
    """Process-wide search cache with sliding and absolute expiry.

    Payloads are stored encoded so cached pages can't be mutated through a
    shared reference. The lock is only held for dictionary access, never
    across an await.
    """

    def __init__(
        self,
        sliding_expiration_seconds: float = DEFAULT_SLIDING_EXPIRATION_SECONDS,
        absolute_expiration_seconds: float = DEFAULT_ABSOLUTE_EXPIRATION_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        codec: Optional[PageCodec] = None,
        time_source: Callable[[], float] = time.monotonic
    ):
        self.sliding_expiration_seconds = sliding_expiration_seconds
        self.absolute_expiration_seconds = absolute_expiration_seconds
        self.max_entries = max_entries
        self._codec = codec or PageCodec()
        self._time_source = time_source
        self._entries: "OrderedDict[str, _CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._logger = get_logger(__name__)

    async def get(self, key: str) -> Optional[Page]:
        """Get a cached page, touching its sliding expiry."""
        now = self._time_source()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                payload = None
            elif self._is_expired(entry, now):
                del self._entries[key]
                payload = None
                log_cache_event(self._logger, "evict", key, eviction_cause="expired")
            else:
                entry.last_access = now
                self._entries.move_to_end(key)
                payload = entry.payload

        if payload is None:
            log_cache_event(self._logger, "miss", key)
            return None

        try:
            page = self._codec.decode(payload)
        except CacheCodecError as exc:
            self._logger.warning(
                "Discarding unreadable search cache entry",
                extra={"cache_key": key, "error": str(exc)}
            )
            with self._lock:
                self._entries.pop(key, None)
            return None

        log_cache_event(self._logger, "hit", key)
        return page

    async def set(self, key: str, page: Page) -> None:
        """Store a page under the key."""
        try:
            payload = self._codec.encode(page)
        except CacheCodecError as exc:
            self._logger.warning(
                "Skipping search cache store",
                extra={"cache_key": key, "error": str(exc)}
            )
            return

        now = self._time_source()
        with self._lock:
            self._entries[key] = _CacheEntry(payload=payload, created_at=now, last_access=now)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted_key, _ = self._entries.popitem(last=False)
                log_cache_event(self._logger, "evict", evicted_key, eviction_cause="capacity")

        log_cache_event(self._logger, "store", key, payload_bytes=len(payload))

    async def invalidate_all(self) -> None:
        """Drop every cached search page."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        self._logger.debug("Search cache cleared", extra={"entries_removed": count})

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _is_expired(self, entry: _CacheEntry, now: float) -> bool:
        return (now - entry.created_at >= self.absolute_expiration_seconds
                or now - entry.last_access >= self.sliding_expiration_seconds)


class NullSearchCache(SearchCache):
    """Cache that never stores anything."""

    async def get(self, key: str) -> Optional[Page]:
        return None

    async def set(self, key: str, page: Page) -> None:
        return None

    async def invalidate_all(self) -> None:
        return None
