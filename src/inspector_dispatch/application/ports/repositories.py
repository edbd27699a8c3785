"""Port interfaces for storage collaborators (Dependency Inversion Principle)."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from src.inspector_dispatch.domain.entities.inspector import Inspector
    from src.inspector_dispatch.domain.value_objects.geo_point import GeoPoint


class InspectorRepository(ABC):
    """Port interface for inspector storage."""

    @abstractmethod
    async def save(self, inspector: "Inspector") -> "Inspector":
        """Save an inspector (create or update), assigning an ID on create."""
        raise NotImplementedError

    @abstractmethod
    async def find_by_id(self, inspector_id: int, for_update: bool = False) -> Optional["Inspector"]:
        """Find inspector by ID.

        With ``for_update`` the row is freshly loaded and locked until the
        surrounding transaction ends.
        """
        raise NotImplementedError

    @abstractmethod
    async def find_by_badge_number(self, badge_number: str) -> Optional["Inspector"]:
        """Find inspector by badge number, active or not."""
        raise NotImplementedError

    @abstractmethod
    async def find_in_radius(self, point: "GeoPoint", radius_meters: float) -> List["Inspector"]:
        """Find all inspectors whose last location is within the radius."""
        raise NotImplementedError

    @abstractmethod
    async def test_kit_exists(self, test_kit_id: str) -> bool:
        """Check whether a drug test kit ID has already been recorded."""
        raise NotImplementedError


class AuditSink(ABC):
    """Port interface for appending audit records."""

    @abstractmethod
    async def append(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        changes: Dict[str, Any],
        actor: int,
        timestamp: datetime
    ) -> None:
        """Append an audit record to the current transaction."""
        raise NotImplementedError


class UnitOfWork(ABC):
    """Transaction boundary over inspector storage and the audit sink.

    Used as an async context manager; leaving the block without calling
    ``commit`` rolls the transaction back.
    """

    inspectors: InspectorRepository
    audit: AuditSink

    @abstractmethod
    async def begin(self) -> None:
        """Begin the transaction."""
        raise NotImplementedError

    @abstractmethod
    async def commit(self) -> None:
        """Commit the transaction durably."""
        raise NotImplementedError

    @abstractmethod
    async def rollback(self) -> None:
        """Roll back the transaction."""
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """Release underlying resources."""
        raise NotImplementedError

    async def __aenter__(self) -> "UnitOfWork":
        await self.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if not self.committed:
                await self.rollback()
        finally:
            await self.close()

    @property
    @abstractmethod
    def committed(self) -> bool:
        """Check whether commit has completed."""
        raise NotImplementedError
