"""Unit tests for the inspector directory service."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from src.inspector_dispatch.application.services.directory_service import (
    InspectorDirectoryService,
    SearchCriteriaValidator,
    build_search_criteria
)
from src.inspector_dispatch.domain.entities.inspector import InspectorStatus
from src.inspector_dispatch.domain.exceptions import RetrievalFailure, SearchValidationError
from src.inspector_dispatch.domain.value_objects.geo_point import GeoPoint
from src.inspector_dispatch.domain.value_objects.search_criteria import SearchCriteria, SortKey
from src.inspector_dispatch.infrastructure.cache.memory_cache import InMemorySearchCache, NullSearchCache
from src.inspector_dispatch.infrastructure.repositories.memory_repositories import InMemoryInspectorRepository
from tests.factories import HOUSTON, NOW, build_inspector, offset_north

pytestmark = pytest.mark.asyncio


async def seed(repository, *inspectors):
    for inspector in inspectors:
        await repository.save(inspector)


@pytest.fixture
def repository():
    return InMemoryInspectorRepository()


@pytest.fixture
def service(repository):
    return InspectorDirectoryService(repository, NullSearchCache())


def criteria(**overrides) -> SearchCriteria:
    values = {"location": HOUSTON, "radius_miles": 50}
    values.update(overrides)
    return SearchCriteria(**values)


class TestSearchCriteriaValidator:
    """Test cases for SearchCriteriaValidator."""

    @pytest.mark.parametrize("overrides, message", [
        ({"radius_miles": 0.5}, "Radius must be between 1 and 500 miles."),
        ({"radius_miles": 501}, "Radius must be between 1 and 500 miles."),
        ({"radius_miles": float("nan")}, "Radius must be between 1 and 500 miles."),
        ({"page_size": 0}, "Page size must be between 1 and 100."),
        ({"page_size": 101}, "Page size must be between 1 and 100."),
        ({"page_number": 0}, "Page number must be at least 1."),
        ({"location": GeoPoint(91, 0)}, "Latitude must be between -90 and 90 and longitude between -180 and 180."),
        ({"required_certifications": tuple(f"Cert {i}" for i in range(11))},
         "Cannot filter by more than 10 certifications."),
    ])
    async def test_invalid_criteria(self, overrides, message):
        """Test each constraint violation is reported."""
        assert message in SearchCriteriaValidator.errors(criteria(**overrides))

    async def test_boundaries_are_valid(self):
        """Test inclusive limits are accepted."""
        assert SearchCriteriaValidator.errors(criteria(radius_miles=1, page_size=1)) == []
        assert SearchCriteriaValidator.errors(criteria(radius_miles=500, page_size=100)) == []

    async def test_collects_all_errors(self):
        """Test every violation is reported at once."""
        with pytest.raises(SearchValidationError) as exc_info:
            SearchCriteriaValidator.validate(criteria(radius_miles=0, page_size=0))

        assert len(exc_info.value.errors) == 2


class TestBuildSearchCriteria:
    """Test cases for build_search_criteria."""

    async def test_parses_raw_values(self):
        """Test status and sort names parse case-insensitively."""
        result = build_search_criteria(
            29.7604, -95.3698, 25,
            status="Available",
            certifications=["API 510"],
            sort_by="lastname",
            sort_descending=True
        )

        assert result.status == InspectorStatus.AVAILABLE
        assert result.sort_by == SortKey.LAST_NAME
        assert result.required_certifications == ("API 510",)

    async def test_rejects_unknown_status_and_sort(self):
        """Test unknown names are reported together."""
        with pytest.raises(SearchValidationError) as exc_info:
            build_search_criteria(29.7604, -95.3698, 25, status="retired", sort_by="Age")

        assert len(exc_info.value.errors) == 2


class TestInspectorDirectoryService:
    """Test cases for InspectorDirectoryService."""

    async def test_invalid_criteria_never_touch_storage(self):
        """Test validation happens before any storage access."""
        repository = AsyncMock()
        service = InspectorDirectoryService(repository, NullSearchCache())

        with pytest.raises(SearchValidationError):
            await service.search(criteria(radius_miles=0))

        repository.find_in_radius.assert_not_called()

    async def test_radius_filter_and_distance_order(self, repository, service):
        """Test only inspectors inside the radius are returned, nearest first."""
        await seed(
            repository,
            build_inspector(badge_number="TX-0001", location=offset_north(HOUSTON, 0.5)),
            build_inspector(badge_number="TX-0002", location=offset_north(HOUSTON, 0.1)),
            build_inspector(badge_number="TX-0003", location=offset_north(HOUSTON, 1.0)),
        )

        page = await service.search(criteria(radius_miles=50))

        assert [item.badge_number for item in page.items] == ["TX-0002", "TX-0001"]
        assert page.total_count == 2
        assert page.items[0].distance_miles == pytest.approx(6.91, abs=0.01)

    async def test_distance_is_rounded_to_two_places(self, repository, service):
        """Test reported distances are rounded."""
        await seed(repository, build_inspector(location=offset_north(HOUSTON, 0.123456)))

        page = await service.search(criteria())

        distance = page.items[0].distance_miles
        assert distance == round(distance, 2)

    async def test_filters(self, repository, service):
        """Test status, active flag and certification filters all apply."""
        await seed(
            repository,
            build_inspector(badge_number="TX-0001", certifications=("API 510", "OSHA 30")),
            build_inspector(badge_number="TX-0002", certifications=("API 510",)),
            build_inspector(badge_number="TX-0003", certifications=("api 510", "osha 30"),
                            status=InspectorStatus.MOBILIZED),
            build_inspector(badge_number="TX-0004", certifications=("API 510", "OSHA 30"), is_active=False),
        )

        page = await service.search(criteria(
            status=InspectorStatus.AVAILABLE,
            required_certifications=("osha 30", "API 510"),
            is_active=True
        ))

        assert [item.badge_number for item in page.items] == ["TX-0001"]

    async def test_certification_match_is_case_insensitive(self, repository, service):
        """Test certification names match regardless of case."""
        await seed(repository, build_inspector(certifications=("API 510",)))

        page = await service.search(criteria(required_certifications=("api 510",)))

        assert page.total_count == 1

    async def test_last_name_sort_uses_distance_tie_break(self, repository, service):
        """Test last-name ordering is case-insensitive and ties go to the nearer inspector."""
        await seed(
            repository,
            build_inspector(badge_number="TX-0001", last_name="smith", location=offset_north(HOUSTON, 0.3)),
            build_inspector(badge_number="TX-0002", last_name="Adams", location=offset_north(HOUSTON, 0.4)),
            build_inspector(badge_number="TX-0003", last_name="smith", location=offset_north(HOUSTON, 0.1)),
            build_inspector(badge_number="TX-0004", last_name="Baker", location=offset_north(HOUSTON, 0.2)),
        )

        page = await service.search(criteria(sort_by=SortKey.LAST_NAME))

        assert [item.badge_number for item in page.items] == ["TX-0002", "TX-0004", "TX-0003", "TX-0001"]

    async def test_descending_sort_keeps_nearest_first_on_ties(self, repository, service):
        """Test equal keys still order by ascending distance when sorting descending."""
        await seed(
            repository,
            build_inspector(badge_number="TX-0001", last_name="Adams", location=offset_north(HOUSTON, 0.1)),
            build_inspector(badge_number="TX-0002", last_name="Smith", location=offset_north(HOUSTON, 0.3)),
            build_inspector(badge_number="TX-0003", last_name="Smith", location=offset_north(HOUSTON, 0.2)),
        )

        page = await service.search(criteria(sort_by=SortKey.LAST_NAME, sort_descending=True))

        assert [item.badge_number for item in page.items] == ["TX-0003", "TX-0002", "TX-0001"]

    async def test_status_sort_descending(self, repository, service):
        """Test status ordering follows the lifecycle order."""
        await seed(
            repository,
            build_inspector(badge_number="TX-0001", status=InspectorStatus.AVAILABLE),
            build_inspector(badge_number="TX-0002", status=InspectorStatus.SUSPENDED),
            build_inspector(badge_number="TX-0003", status=InspectorStatus.INACTIVE),
        )

        page = await service.search(criteria(sort_by=SortKey.STATUS, sort_descending=True))

        assert [item.status for item in page.items] == [
            InspectorStatus.SUSPENDED, InspectorStatus.AVAILABLE, InspectorStatus.INACTIVE
        ]

    async def test_drug_test_sort_puts_untested_first(self, repository, service):
        """Test inspectors without tests sort as the oldest."""
        await seed(
            repository,
            build_inspector(badge_number="TX-0001", test_age_days=5),
            build_inspector(badge_number="TX-0002", test_age_days=None),
            build_inspector(badge_number="TX-0003", test_age_days=40),
        )

        page = await service.search(criteria(sort_by=SortKey.LAST_DRUG_TEST_DATE))

        assert [item.badge_number for item in page.items] == ["TX-0002", "TX-0003", "TX-0001"]
        assert page.items[2].last_drug_test_date == NOW - timedelta(days=5)

    async def test_pagination(self, repository, service):
        """Test page windows and navigation flags."""
        await seed(repository, *[
            build_inspector(badge_number=f"TX-{index:04d}", location=offset_north(HOUSTON, index * 0.01))
            for index in range(1, 6)
        ])

        page = await service.search(criteria(page_number=2, page_size=2))

        assert [item.badge_number for item in page.items] == ["TX-0003", "TX-0004"]
        assert page.total_count == 5
        assert page.total_pages == 3
        assert page.has_previous_page is True
        assert page.has_next_page is True

    async def test_page_past_the_end_is_empty(self, repository, service):
        """Test a page beyond the results is empty but keeps the total."""
        await seed(repository, build_inspector())

        page = await service.search(criteria(page_number=4))

        assert page.items == ()
        assert page.total_count == 1

    async def test_identical_criteria_served_from_cache(self, repository):
        """Test repeated searches return identical pages without a second storage read."""
        await seed(repository, build_inspector())
        repository.find_in_radius = AsyncMock(wraps=repository.find_in_radius)
        service = InspectorDirectoryService(repository, InMemorySearchCache())

        first = await service.search(criteria(required_certifications=("API 510", "OSHA 30")))
        second = await service.search(criteria(required_certifications=("osha 30", "api 510")))

        assert first == second
        repository.find_in_radius.assert_awaited_once()

    async def test_storage_error_becomes_retrieval_failure(self):
        """Test storage exceptions surface as RetrievalFailure."""
        repository = AsyncMock()
        repository.find_in_radius.side_effect = ConnectionError("database unavailable")
        service = InspectorDirectoryService(repository, NullSearchCache())

        with pytest.raises(RetrievalFailure):
            await service.search(criteria())

    async def test_timeout_becomes_retrieval_failure(self):
        """Test a search exceeding its deadline fails with RetrievalFailure."""
        async def slow_find(point, radius_meters):
            await asyncio.sleep(1)
            return []

        repository = AsyncMock()
        repository.find_in_radius.side_effect = slow_find
        service = InspectorDirectoryService(repository, NullSearchCache(), search_timeout_seconds=0.01)

        with pytest.raises(RetrievalFailure, match="timed out"):
            await service.search(criteria())
