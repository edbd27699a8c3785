"""Port interface for the search result cache."""

from abc import ABC, abstractmethod
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from src.inspector_dispatch.domain.value_objects.page import Page


class SearchCache(ABC):
    """Best-effort cache of search result pages.

    Implementations must be safe under concurrent use and must never raise
    on backend or serialization failure: a failed read is a miss and a
    failed write is dropped.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional["Page"]:
        """Get a cached page, touching its sliding expiry."""
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, page: "Page") -> None:
        """Store a page under the key."""
        raise NotImplementedError

    @abstractmethod
    async def invalidate_all(self) -> None:
        """Drop every cached search page."""
        raise NotImplementedError
