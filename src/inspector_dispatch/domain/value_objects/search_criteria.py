"""Search criteria value object and cache key canonicalization."""

import hashlib
import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple

from src.inspector_dispatch.domain.entities.inspector import InspectorStatus
from src.inspector_dispatch.domain.value_objects.certification import normalize_certification_name
from src.inspector_dispatch.domain.value_objects.geo_point import GeoPoint

CACHE_KEY_PREFIX = "inspector:search:"

# Coordinates rounded to ~1cm so float noise doesn't split cache entries
COORDINATE_PRECISION = 7
RADIUS_PRECISION = 4


class SortKey(Enum):
    """Supported sort fields for inspector search."""
    DISTANCE = "Distance"
    LAST_NAME = "LastName"
    STATUS = "Status"
    LAST_DRUG_TEST_DATE = "LastDrugTestDate"

    @classmethod
    def parse(cls, value: str) -> "SortKey":
        """Parse a sort key name case-insensitively."""
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        valid = ", ".join(member.value for member in cls)
        raise ValueError(f"Sort field must be one of: {valid}")


@dataclass(frozen=True)
class SearchCriteria:
    """Immutable inspector search request."""

    location: GeoPoint
    radius_miles: float
    status: Optional[InspectorStatus] = None
    required_certifications: Tuple[str, ...] = field(default_factory=tuple)
    is_active: Optional[bool] = None
    page_number: int = 1
    page_size: int = 10
    sort_by: SortKey = SortKey.DISTANCE
    sort_descending: bool = False

    def canonical(self) -> "SearchCriteria":
        """Return the order- and case-independent form of these criteria."""
        certifications = tuple(sorted({
            normalize_certification_name(name)
            for name in self.required_certifications
            if name and name.strip()
        }))
        return replace(
            self,
            location=GeoPoint(
                round(float(self.location.latitude), COORDINATE_PRECISION),
                round(float(self.location.longitude), COORDINATE_PRECISION)
            ),
            radius_miles=round(float(self.radius_miles), RADIUS_PRECISION),
            required_certifications=certifications
        )

    def canonical_json(self) -> str:
        """Stable serialization of the canonical criteria."""
        canonical = self.canonical()
        payload = [
            ["latitude", canonical.location.latitude],
            ["longitude", canonical.location.longitude],
            ["radius_miles", canonical.radius_miles],
            ["status", canonical.status.value if canonical.status else None],
            ["required_certifications", list(canonical.required_certifications)],
            ["is_active", canonical.is_active],
            ["page_number", canonical.page_number],
            ["page_size", canonical.page_size],
            ["sort_by", canonical.sort_by.value],
            ["sort_descending", canonical.sort_descending],
        ]
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=True)

    def cache_key(self) -> str:
        """Derive the cache key for these criteria."""
        digest = hashlib.sha256(self.canonical_json().encode("utf-8")).hexdigest()
        return f"{CACHE_KEY_PREFIX}{digest}"
