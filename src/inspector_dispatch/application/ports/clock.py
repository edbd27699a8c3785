"""Port interface for the time source."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    """Source of the current UTC instant."""

    @abstractmethod
    def now(self) -> datetime:
        """Get the current timezone-aware UTC timestamp."""
        raise NotImplementedError


def as_utc(value: datetime) -> datetime:
    """Normalize a timestamp to UTC, treating naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
