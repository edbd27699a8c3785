"""System clock adapter."""

from datetime import datetime, timezone

from src.inspector_dispatch.application.ports.clock import Clock


class SystemClock(Clock):
    """Clock backed by the host's UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
