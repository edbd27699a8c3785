"""Inspector directory service answering geographic searches."""

import asyncio
import math
from typing import List, Optional, Tuple

from src.inspector_dispatch.application.ports.cache import SearchCache
from src.inspector_dispatch.application.ports.repositories import InspectorRepository
from src.inspector_dispatch.domain.entities.inspector import Inspector, InspectorStatus
from src.inspector_dispatch.domain.exceptions import RetrievalFailure, SearchValidationError
from src.inspector_dispatch.domain.value_objects.geo_point import (
    GeoPoint,
    distance_meters,
    is_valid_coordinates,
    meters_to_miles,
    miles_to_meters
)
from src.inspector_dispatch.domain.value_objects.page import InspectorSummary, Page
from src.inspector_dispatch.domain.value_objects.search_criteria import SearchCriteria, SortKey
from src.inspector_dispatch.infrastructure.logging import get_logger


MIN_RADIUS_MILES = 1
MAX_RADIUS_MILES = 500
MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 100
MAX_REQUIRED_CERTIFICATIONS = 10
DEFAULT_SEARCH_TIMEOUT_SECONDS = 30.0


class SearchCriteriaValidator:
    """Validates search criteria before any storage access."""

    @staticmethod
    def errors(criteria: SearchCriteria) -> List[str]:
        """Collect every constraint violation."""
        errors = []

        location = criteria.location
        if not is_valid_coordinates(location.latitude, location.longitude):
            errors.append("Latitude must be between -90 and 90 and longitude between -180 and 180.")

        radius = criteria.radius_miles
        if (not isinstance(radius, (int, float)) or not math.isfinite(radius)
                or not MIN_RADIUS_MILES <= radius <= MAX_RADIUS_MILES):
            errors.append(f"Radius must be between {MIN_RADIUS_MILES} and {MAX_RADIUS_MILES} miles.")

        if not MIN_PAGE_SIZE <= criteria.page_size <= MAX_PAGE_SIZE:
            errors.append(f"Page size must be between {MIN_PAGE_SIZE} and {MAX_PAGE_SIZE}.")

        if criteria.page_number < 1:
            errors.append("Page number must be at least 1.")

        if not isinstance(criteria.sort_by, SortKey):
            valid = ", ".join(member.value for member in SortKey)
            errors.append(f"Sort field must be one of: {valid}")

        if len(criteria.required_certifications) > MAX_REQUIRED_CERTIFICATIONS:
            errors.append(f"Cannot filter by more than {MAX_REQUIRED_CERTIFICATIONS} certifications.")

        if criteria.status is not None and not isinstance(criteria.status, InspectorStatus):
            errors.append("Status filter is not a valid inspector status.")

        return errors

    @classmethod
    def validate(cls, criteria: SearchCriteria) -> None:
        """Raise SearchValidationError if the criteria are invalid."""
        errors = cls.errors(criteria)
        if errors:
            raise SearchValidationError(errors)


class InspectorDirectoryService:
    """Application service for inspector search.

    Pages are served from the injected cache when possible; otherwise the
    storage collaborator is asked for every inspector inside the radius and
    filtering, ranking and pagination happen here.
    """

    def __init__(
        self,
        inspector_repository: InspectorRepository,
        search_cache: SearchCache,
        search_timeout_seconds: float = DEFAULT_SEARCH_TIMEOUT_SECONDS
    ):
        self._inspector_repository = inspector_repository
        self._search_cache = search_cache
        self._search_timeout_seconds = search_timeout_seconds
        self._logger = get_logger(__name__)

    async def search(self, criteria: SearchCriteria) -> Page:
        """Search inspectors around a point."""
        SearchCriteriaValidator.validate(criteria)
        canonical = criteria.canonical()

        try:
            return await asyncio.wait_for(self._search(canonical), timeout=self._search_timeout_seconds)
        except asyncio.TimeoutError as exc:
            self._logger.error(
                "Inspector search timed out",
                extra={"timeout_seconds": self._search_timeout_seconds}
            )
            raise RetrievalFailure(
                f"Inspector search timed out after {self._search_timeout_seconds} seconds"
            ) from exc

    async def _search(self, criteria: SearchCriteria) -> Page:
        cache_key = criteria.cache_key()
        cached = await self._search_cache.get(cache_key)
        if cached is not None:
            return cached

        radius_meters = miles_to_meters(criteria.radius_miles)
        try:
            candidates = await self._inspector_repository.find_in_radius(criteria.location, radius_meters)
        except (RetrievalFailure, asyncio.TimeoutError):
            raise
        except Exception as exc:
            self._logger.error(
                "Storage failure during inspector search",
                extra={"error": str(exc), "error_type": type(exc).__name__}
            )
            raise RetrievalFailure(f"Failed to retrieve inspectors: {exc}") from exc

        matches = []
        for inspector in candidates:
            distance = distance_meters(criteria.location, inspector.location)
            if distance <= radius_meters and self._matches_filters(inspector, criteria):
                matches.append((inspector, distance))

        ranked = self._rank(matches, criteria.sort_by, criteria.sort_descending)
        page = self._paginate(ranked, criteria.page_number, criteria.page_size)

        self._logger.info(
            "Inspector search completed",
            extra={
                "candidate_count": len(candidates),
                "match_count": len(matches),
                "page_number": criteria.page_number,
                "sort_by": criteria.sort_by.value
            }
        )

        await self._search_cache.set(cache_key, page)
        return page

    @staticmethod
    def _matches_filters(inspector: Inspector, criteria: SearchCriteria) -> bool:
        if criteria.status is not None and inspector.status != criteria.status:
            return False
        if criteria.is_active is not None and inspector.is_active != criteria.is_active:
            return False
        return inspector.has_all_certifications(criteria.required_certifications)

    @staticmethod
    def _rank(
        matches: List[Tuple[Inspector, float]],
        sort_by: SortKey,
        descending: bool
    ) -> List[Tuple[Inspector, float]]:
        # Nearest first, then id, so every later stable sort breaks ties by distance
        ranked = sorted(matches, key=lambda match: (match[1], match[0].id))

        if sort_by == SortKey.DISTANCE:
            if descending:
                ranked.sort(key=lambda match: match[1], reverse=True)
            return ranked

        if sort_by == SortKey.LAST_NAME:
            key = lambda match: (match[0].last_name.casefold(), match[0].last_name)
        elif sort_by == SortKey.STATUS:
            key = lambda match: match[0].status.ordinal
        else:
            key = lambda match: _drug_test_sort_key(match[0])

        ranked.sort(key=key, reverse=descending)
        return ranked

    @staticmethod
    def _paginate(ranked: List[Tuple[Inspector, float]], page_number: int, page_size: int) -> Page:
        start = (page_number - 1) * page_size
        window = ranked[start:start + page_size]
        return Page(
            items=tuple(_to_summary(inspector, distance) for inspector, distance in window),
            total_count=len(ranked),
            page_number=page_number,
            page_size=page_size
        )


def _drug_test_sort_key(inspector: Inspector) -> tuple:
    # A missing test date orders as the oldest possible date
    last_test = inspector.last_drug_test_date
    return (0,) if last_test is None else (1, last_test)


def _to_summary(inspector: Inspector, distance: float) -> InspectorSummary:
    return InspectorSummary(
        id=inspector.id,
        first_name=inspector.first_name,
        last_name=inspector.last_name,
        badge_number=inspector.badge_number,
        status=inspector.status,
        latitude=inspector.location.latitude,
        longitude=inspector.location.longitude,
        distance_miles=round(meters_to_miles(distance), 2),
        certifications=tuple(inspector.certification_names),
        last_drug_test_date=inspector.last_drug_test_date,
        is_active=inspector.is_active
    )


def build_search_criteria(
    latitude: float,
    longitude: float,
    radius_miles: float,
    status: Optional[str] = None,
    certifications: Optional[List[str]] = None,
    is_active: Optional[bool] = None,
    page_number: int = 1,
    page_size: int = 10,
    sort_by: str = SortKey.DISTANCE.value,
    sort_descending: bool = False
) -> SearchCriteria:
    """Build criteria from raw request values, collecting parse errors."""
    errors = []
    parsed_status = None
    if status:
        try:
            parsed_status = InspectorStatus(status.strip().lower())
        except ValueError:
            valid = ", ".join(member.value for member in InspectorStatus)
            errors.append(f"Status must be one of: {valid}")

    try:
        parsed_sort = SortKey.parse(sort_by)
    except ValueError as exc:
        errors.append(str(exc))
        parsed_sort = SortKey.DISTANCE

    if errors:
        raise SearchValidationError(errors)

    return SearchCriteria(
        location=GeoPoint(latitude, longitude),
        radius_miles=radius_miles,
        status=parsed_status,
        required_certifications=tuple(certifications or ()),
        is_active=is_active,
        page_number=page_number,
        page_size=page_size,
        sort_by=parsed_sort,
        sort_descending=sort_descending
    )
