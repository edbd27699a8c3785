"""Shared builders for dispatch engine tests."""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from src.inspector_dispatch.application.ports.clock import Clock
from src.inspector_dispatch.domain.entities.drug_test import DrugTest
from src.inspector_dispatch.domain.entities.inspector import Inspector, InspectorStatus
from src.inspector_dispatch.domain.value_objects.certification import Certification
from src.inspector_dispatch.domain.value_objects.geo_point import GeoPoint
from src.inspector_dispatch.domain.value_objects.page import InspectorSummary, Page


NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
HOUSTON = GeoPoint(29.7604, -95.3698)


class FixedClock(Clock):
    """Clock frozen at a given instant, advanced manually."""

    def __init__(self, now: datetime = NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current = self.current + delta


def build_inspector(
    inspector_id: Optional[int] = None,
    badge_number: str = "TX-1001",
    first_name: str = "Maria",
    last_name: str = "Alvarez",
    location: GeoPoint = HOUSTON,
    status: InspectorStatus = InspectorStatus.AVAILABLE,
    certifications: Iterable[str] = ("API 510",),
    test_age_days: Optional[int] = 10,
    test_result: Optional[bool] = True,
    is_active: bool = True,
    now: datetime = NOW
) -> Inspector:
    """Build an inspector with at most one drug test of the given age.

    The test kit ID reuses the last four characters of the badge number,
    so badges should end in four digits.
    """
    drug_tests = []
    if test_age_days is not None:
        test_date = now - timedelta(days=test_age_days)
        drug_tests.append(DrugTest(
            test_kit_id=f"DT-2025-{badge_number[-4:]}",
            test_type="Standard Panel",
            test_date=test_date,
            result=test_result,
            result_recorded_at=test_date if test_result is not None else None,
            created_at=test_date
        ))

    return Inspector(
        first_name=first_name,
        last_name=last_name,
        badge_number=badge_number,
        location=location,
        inspector_id=inspector_id,
        status=status,
        certifications=[Certification(name, "Issuing Board") for name in certifications],
        drug_tests=drug_tests,
        is_active=is_active,
        created_at=now - timedelta(days=365)
    )


def offset_north(point: GeoPoint, degrees: float) -> GeoPoint:
    """Point due north of another; 0.1 degrees is roughly 6.9 miles."""
    return GeoPoint(point.latitude + degrees, point.longitude)


def make_page(item_count: int = 2) -> Page:
    """Build a search page of near-identical summaries."""
    items = tuple(
        InspectorSummary(
            id=index + 1,
            first_name="Maria",
            last_name=f"Alvarez {index}",
            badge_number=f"TX-{1000 + index}",
            status=InspectorStatus.AVAILABLE,
            latitude=29.7604,
            longitude=-95.3698,
            distance_miles=1.25,
            certifications=("API 510", "OSHA 30"),
            last_drug_test_date=NOW if index % 2 == 0 else None,
            is_active=True
        )
        for index in range(item_count)
    )
    return Page(items=items, total_count=item_count + 5, page_number=1, page_size=item_count)
