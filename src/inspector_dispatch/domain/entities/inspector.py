"""Inspector entity for the dispatch engine."""

from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional

from src.inspector_dispatch.domain.entities.drug_test import DrugTest
from src.inspector_dispatch.domain.exceptions import InvalidStatusTransition
from src.inspector_dispatch.domain.value_objects.certification import (
    Certification,
    normalize_certification_name
)
from src.inspector_dispatch.domain.value_objects.geo_point import GeoPoint


class InspectorStatus(Enum):
    """Inspector status enumeration.

    Valid transitions: Inactive -> Available -> Mobilized -> Available,
    and any -> Suspended. Leaving Suspended is an administrative action
    outside the dispatch engine.
    """
    INACTIVE = "inactive"
    AVAILABLE = "available"
    MOBILIZED = "mobilized"
    SUSPENDED = "suspended"

    @property
    def ordinal(self) -> int:
        """Position used when sorting by status."""
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = [
    InspectorStatus.INACTIVE,
    InspectorStatus.AVAILABLE,
    InspectorStatus.MOBILIZED,
    InspectorStatus.SUSPENDED,
]


class Inspector:
    """Inspector entity representing a dispatchable field inspector."""

    def __init__(
        self,
        first_name: str,
        last_name: str,
        badge_number: str,
        location: GeoPoint,
        inspector_id: Optional[int] = None,
        status: InspectorStatus = InspectorStatus.INACTIVE,
        certifications: Optional[Iterable[Certification]] = None,
        drug_tests: Optional[Iterable[DrugTest]] = None,
        is_active: bool = True,
        last_mobilized_date: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None
    ):
        if not badge_number or not badge_number.strip():
            raise ValueError("Badge number cannot be empty")
        if not location.is_valid:
            raise ValueError(f"Invalid coordinates: {location}")

        self._id = inspector_id
        self._first_name = first_name.strip()
        self._last_name = last_name.strip()
        self._badge_number = badge_number.strip().upper()
        self._location = location
        self._status = status
        self._certifications: List[Certification] = list(certifications or [])
        self._drug_tests: List[DrugTest] = sorted(drug_tests or [], key=lambda test: test.test_date)
        self._is_active = is_active
        self._last_mobilized_date = last_mobilized_date
        self._created_at = created_at or datetime.now(timezone.utc)
        self._updated_at = updated_at or self._created_at

    @property
    def id(self) -> Optional[int]:
        """Get inspector ID (None until persisted)."""
        return self._id

    @property
    def first_name(self) -> str:
        """Get inspector first name."""
        return self._first_name

    @property
    def last_name(self) -> str:
        """Get inspector last name."""
        return self._last_name

    @property
    def full_name(self) -> str:
        """Get inspector full name."""
        return f"{self._first_name} {self._last_name}"

    @property
    def badge_number(self) -> str:
        """Get inspector badge number."""
        return self._badge_number

    @property
    def location(self) -> GeoPoint:
        """Get last reported location."""
        return self._location

    @property
    def status(self) -> InspectorStatus:
        """Get inspector status."""
        return self._status

    @property
    def certifications(self) -> List[Certification]:
        """Get certifications in recorded order."""
        return list(self._certifications)

    @property
    def certification_names(self) -> List[str]:
        """Get certification names in recorded order."""
        return [certification.name for certification in self._certifications]

    @property
    def drug_tests(self) -> List[DrugTest]:
        """Get drug tests ordered by test date."""
        return list(self._drug_tests)

    @property
    def is_active(self) -> bool:
        """Check soft-delete flag."""
        return self._is_active

    @property
    def last_drug_test_date(self) -> Optional[datetime]:
        """Get date of the most recently administered drug test."""
        if not self._drug_tests:
            return None
        return self._drug_tests[-1].test_date

    @property
    def last_mobilized_date(self) -> Optional[datetime]:
        """Get last mobilization timestamp."""
        return self._last_mobilized_date

    @property
    def created_at(self) -> datetime:
        """Get creation timestamp."""
        return self._created_at

    @property
    def updated_at(self) -> datetime:
        """Get last update timestamp."""
        return self._updated_at

    def assign_id(self, inspector_id: int) -> None:
        """Assign the storage identity. Identity never changes once set."""
        if self._id is not None and self._id != inspector_id:
            raise ValueError(f"Inspector already has ID {self._id}")
        self._id = inspector_id

    def has_all_certifications(self, required_names: Iterable[str]) -> bool:
        """Check that every required certification is held (case-insensitive)."""
        held = {certification.normalized_name for certification in self._certifications}
        return all(normalize_certification_name(name) in held for name in required_names)

    def find_drug_test(self, test_kit_id: str) -> Optional[DrugTest]:
        """Find a drug test by kit ID."""
        normalized = test_kit_id.strip().upper()
        for drug_test in self._drug_tests:
            if drug_test.test_kit_id == normalized:
                return drug_test
        return None

    def add_drug_test(self, drug_test: DrugTest, at: datetime) -> None:
        """Attach a newly administered drug test."""
        if self.find_drug_test(drug_test.test_kit_id) is not None:
            raise ValueError(f"Test kit {drug_test.test_kit_id} already recorded for inspector")
        self._drug_tests.append(drug_test)
        self._drug_tests.sort(key=lambda test: test.test_date)
        self._updated_at = at

    def mobilize(self, at: datetime, mobilization_date: Optional[datetime] = None) -> None:
        """Change status from Available to Mobilized, effective at mobilization_date (default: at)."""
        if self._status != InspectorStatus.AVAILABLE:
            raise InvalidStatusTransition("Inspector must be in Available status to be mobilized.")
        self._status = InspectorStatus.MOBILIZED
        self._last_mobilized_date = mobilization_date or at
        self._updated_at = at

    def demobilize(self, at: datetime) -> None:
        """Change status from Mobilized back to Available."""
        if self._status != InspectorStatus.MOBILIZED:
            raise InvalidStatusTransition("Inspector must be in Mobilized status to be demobilized.")
        self._status = InspectorStatus.AVAILABLE
        self._updated_at = at

    def suspend(self, at: datetime) -> None:
        """Suspend the inspector from any status."""
        if self._status == InspectorStatus.SUSPENDED:
            raise InvalidStatusTransition("Inspector is already suspended.")
        self._status = InspectorStatus.SUSPENDED
        self._updated_at = at

    def update_location(self, location: GeoPoint, at: datetime) -> None:
        """Update last reported location."""
        if not location.is_valid:
            raise ValueError(f"Invalid coordinates: {location}")
        self._location = location
        self._updated_at = at

    def __eq__(self, other) -> bool:
        """Check equality based on badge number."""
        if not isinstance(other, Inspector):
            return False
        return self._badge_number == other._badge_number

    def __hash__(self) -> int:
        """Hash based on badge number."""
        return hash(self._badge_number)

    def __str__(self) -> str:
        """String representation."""
        return f"Inspector({self.full_name}, {self._badge_number}, {self._status.value})"

    def __repr__(self) -> str:
        """Detailed string representation."""
        return (f"Inspector(id={self._id}, badge='{self._badge_number}', "
                f"name='{self.full_name}', status='{self._status.value}', "
                f"active={self._is_active})")
