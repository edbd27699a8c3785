"""Search result page value objects."""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from src.inspector_dispatch.domain.entities.inspector import InspectorStatus


@dataclass(frozen=True)
class InspectorSummary:
    """Read model of an inspector annotated with search distance."""

    id: int
    first_name: str
    last_name: str
    badge_number: str
    status: InspectorStatus
    latitude: float
    longitude: float
    distance_miles: float
    certifications: Tuple[str, ...] = field(default_factory=tuple)
    last_drug_test_date: Optional[datetime] = None
    is_active: bool = True


@dataclass(frozen=True)
class Page:
    """One page of search results."""

    items: Tuple[InspectorSummary, ...]
    total_count: int
    page_number: int
    page_size: int

    @property
    def total_pages(self) -> int:
        """Get number of pages for the full result set."""
        return math.ceil(self.total_count / self.page_size) if self.page_size else 0

    @property
    def has_previous_page(self) -> bool:
        """Check if a previous page exists."""
        return self.page_number > 1

    @property
    def has_next_page(self) -> bool:
        """Check if a following page exists."""
        return self.page_number < self.total_pages
