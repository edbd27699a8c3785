"""Inspector administration and drug test use cases."""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from src.inspector_dispatch.application.ports.cache import SearchCache
from src.inspector_dispatch.application.ports.clock import Clock, as_utc
from src.inspector_dispatch.application.ports.repositories import InspectorRepository, UnitOfWork
from src.inspector_dispatch.application.services.transaction import run_to_completion
from src.inspector_dispatch.domain.entities.drug_test import VALID_TEST_TYPES, DrugTest
from src.inspector_dispatch.domain.entities.inspector import Inspector, InspectorStatus
from src.inspector_dispatch.domain.exceptions import (
    DrugTestResultRejected,
    DuplicateBadgeNumber,
    DuplicateTestKit,
    InspectorNotFound,
    InspectorValidationError,
    RejectionReason
)
from src.inspector_dispatch.domain.value_objects.certification import Certification
from src.inspector_dispatch.domain.value_objects.geo_point import GeoPoint, is_valid_coordinates
from src.inspector_dispatch.infrastructure.logging import get_logger


MAX_NAME_LENGTH = 100
MAX_BADGE_LENGTH = 20
MAX_DRUG_TEST_NOTES_LENGTH = 1000
MAX_ADMINISTERED_BY_LENGTH = 200
TEST_KIT_PATTERN = re.compile(r"^DT-\d{4}-\d{4}$")
INITIAL_STATUSES = (InspectorStatus.INACTIVE, InspectorStatus.AVAILABLE)

AUDIT_ENTITY_TYPE = "Inspector"


@dataclass(frozen=True)
class CertificationInput:
    """Certification supplied when creating an inspector."""

    name: str
    issuing_authority: str
    expiry_date: Optional[date] = None


@dataclass(frozen=True)
class CreateInspectorCommand:
    """Request to register a new inspector."""

    first_name: str
    last_name: str
    badge_number: str
    latitude: float
    longitude: float
    requesting_user_id: int
    status: InspectorStatus = InspectorStatus.INACTIVE
    certifications: Tuple[CertificationInput, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RecordDrugTestCommand:
    """Request to record an administered drug test."""

    inspector_id: int
    test_kit_id: str
    test_type: str
    test_date: datetime
    requesting_user_id: int
    administered_by: Optional[str] = None
    result: Optional[bool] = None
    notes: Optional[str] = None


class InspectorService:
    """Application service for inspector administration.

    Every mutation runs in a unit of work against a freshly locked row and
    appends its audit record in the same transaction.
    """

    def __init__(
        self,
        inspector_repository: InspectorRepository,
        unit_of_work_factory: Callable[[], UnitOfWork],
        clock: Clock,
        search_cache: Optional[SearchCache] = None
    ):
        self._inspector_repository = inspector_repository
        self._unit_of_work_factory = unit_of_work_factory
        self._clock = clock
        self._search_cache = search_cache
        self._logger = get_logger(__name__)

    async def get_inspector(self, inspector_id: int) -> Inspector:
        """Get an inspector by ID."""
        inspector = await self._inspector_repository.find_by_id(inspector_id)
        if inspector is None:
            raise InspectorNotFound(inspector_id)
        return inspector

    async def create_inspector(self, command: CreateInspectorCommand) -> Inspector:
        """Register a new inspector with a unique badge number."""
        self._validate_create(command)
        badge_number = command.badge_number.strip().upper()

        if await self._inspector_repository.find_by_badge_number(badge_number) is not None:
            raise DuplicateBadgeNumber(badge_number)

        now = self._clock.now()
        inspector = Inspector(
            first_name=command.first_name,
            last_name=command.last_name,
            badge_number=badge_number,
            location=GeoPoint(command.latitude, command.longitude),
            status=command.status,
            certifications=[
                Certification(item.name.strip(), item.issuing_authority.strip(), item.expiry_date)
                for item in command.certifications
            ],
            created_at=now
        )

        async def create() -> Inspector:
            async with self._unit_of_work_factory() as uow:
                if await uow.inspectors.find_by_badge_number(badge_number) is not None:
                    raise DuplicateBadgeNumber(badge_number)
                saved = await uow.inspectors.save(inspector)
                await uow.audit.append(
                    entity_type=AUDIT_ENTITY_TYPE,
                    entity_id=str(saved.id),
                    action="Create",
                    changes={
                        "badge_number": saved.badge_number,
                        "status": saved.status.value,
                        "latitude": saved.location.latitude,
                        "longitude": saved.location.longitude,
                        "certifications": saved.certification_names
                    },
                    actor=command.requesting_user_id,
                    timestamp=now
                )
                await uow.commit()
                return saved

        saved = await run_to_completion(create())
        await self._invalidate_search_cache()
        self._logger.info(
            "Inspector created",
            extra={"inspector_id": saved.id, "badge_number": saved.badge_number}
        )
        return saved

    async def demobilize(self, inspector_id: int, requesting_user_id: int) -> Inspector:
        """Return a mobilized inspector to Available."""
        def apply(inspector: Inspector, now: datetime) -> Dict[str, Any]:
            previous_status = inspector.status
            inspector.demobilize(now)
            return {"previous_status": previous_status.value, "new_status": inspector.status.value}

        return await self._update(inspector_id, requesting_user_id, apply)

    async def suspend(self, inspector_id: int, requesting_user_id: int, reason: Optional[str] = None) -> Inspector:
        """Suspend an inspector from any status."""
        reason = (reason or "").strip() or None
        if reason is not None and len(reason) > MAX_DRUG_TEST_NOTES_LENGTH:
            raise InspectorValidationError([f"Reason cannot exceed {MAX_DRUG_TEST_NOTES_LENGTH} characters."])

        def apply(inspector: Inspector, now: datetime) -> Dict[str, Any]:
            previous_status = inspector.status
            inspector.suspend(now)
            return {
                "previous_status": previous_status.value,
                "new_status": inspector.status.value,
                "reason": reason
            }

        return await self._update(inspector_id, requesting_user_id, apply)

    async def update_location(
        self,
        inspector_id: int,
        latitude: float,
        longitude: float,
        requesting_user_id: int
    ) -> Inspector:
        """Record a new last-known location."""
        if not is_valid_coordinates(latitude, longitude):
            raise InspectorValidationError(
                ["Latitude must be between -90 and 90 and longitude between -180 and 180."]
            )
        location = GeoPoint(latitude, longitude)

        def apply(inspector: Inspector, now: datetime) -> Dict[str, Any]:
            previous = inspector.location
            inspector.update_location(location, now)
            return {
                "previous_location": [previous.latitude, previous.longitude],
                "new_location": [location.latitude, location.longitude]
            }

        return await self._update(inspector_id, requesting_user_id, apply)

    async def record_drug_test(self, command: RecordDrugTestCommand) -> DrugTest:
        """Record an administered drug test, optionally with its result."""
        now = self._clock.now()
        self._validate_drug_test(command, now)
        test_kit_id = command.test_kit_id.strip().upper()
        test_date = as_utc(command.test_date)
        notes = (command.notes or "").strip() or None
        administered_by = (command.administered_by or "").strip() or None

        async def record() -> DrugTest:
            async with self._unit_of_work_factory() as uow:
                inspector = await uow.inspectors.find_by_id(command.inspector_id, for_update=True)
                if inspector is None:
                    raise InspectorNotFound(command.inspector_id)
                if await uow.inspectors.test_kit_exists(test_kit_id):
                    raise DuplicateTestKit(test_kit_id)

                drug_test = DrugTest(
                    test_kit_id=test_kit_id,
                    test_type=command.test_type,
                    test_date=test_date,
                    administered_by=administered_by,
                    notes=notes,
                    created_at=now
                )
                if command.result is not None:
                    drug_test.record_result(command.result, now)
                inspector.add_drug_test(drug_test, now)

                await uow.inspectors.save(inspector)
                await uow.audit.append(
                    entity_type="DrugTest",
                    entity_id=test_kit_id,
                    action="Create",
                    changes={
                        "inspector_id": inspector.id,
                        "test_type": drug_test.test_type,
                        "test_date": drug_test.test_date.isoformat(),
                        "result": drug_test.result
                    },
                    actor=command.requesting_user_id,
                    timestamp=now
                )
                await uow.commit()
                return drug_test

        drug_test = await run_to_completion(record())
        await self._invalidate_search_cache()
        self._logger.info(
            "Drug test recorded",
            extra={"inspector_id": command.inspector_id, "test_kit_id": test_kit_id}
        )
        return drug_test

    async def record_drug_test_result(
        self,
        inspector_id: int,
        test_kit_id: str,
        result: bool,
        requesting_user_id: int,
        notes: Optional[str] = None
    ) -> DrugTest:
        """Record the result of a pending drug test exactly once."""
        if notes is not None and len(notes.strip()) > MAX_DRUG_TEST_NOTES_LENGTH:
            raise InspectorValidationError([f"Notes cannot exceed {MAX_DRUG_TEST_NOTES_LENGTH} characters."])
        normalized_kit = test_kit_id.strip().upper()
        now = self._clock.now()

        async def record() -> DrugTest:
            async with self._unit_of_work_factory() as uow:
                inspector = await uow.inspectors.find_by_id(inspector_id, for_update=True)
                if inspector is None:
                    raise InspectorNotFound(inspector_id)
                drug_test = inspector.find_drug_test(normalized_kit)
                if drug_test is None:
                    raise DrugTestResultRejected(
                        RejectionReason.DRUG_TEST_NOT_FOUND,
                        f"Test kit {normalized_kit} not found for inspector {inspector_id}."
                    )

                drug_test.record_result(result, now, notes)
                await uow.inspectors.save(inspector)
                await uow.audit.append(
                    entity_type="DrugTest",
                    entity_id=normalized_kit,
                    action="Update",
                    changes={"inspector_id": inspector_id, "previous_result": None, "new_result": result},
                    actor=requesting_user_id,
                    timestamp=now
                )
                await uow.commit()
                return drug_test

        drug_test = await run_to_completion(record())
        await self._invalidate_search_cache()
        self._logger.info(
            "Drug test result recorded",
            extra={"inspector_id": inspector_id, "test_kit_id": normalized_kit, "result": result}
        )
        return drug_test

    async def _update(
        self,
        inspector_id: int,
        requesting_user_id: int,
        apply: Callable[[Inspector, datetime], Dict[str, Any]]
    ) -> Inspector:
        now = self._clock.now()

        async def update() -> Inspector:
            async with self._unit_of_work_factory() as uow:
                inspector = await uow.inspectors.find_by_id(inspector_id, for_update=True)
                if inspector is None:
                    raise InspectorNotFound(inspector_id)
                changes = apply(inspector, now)
                await uow.inspectors.save(inspector)
                await uow.audit.append(
                    entity_type=AUDIT_ENTITY_TYPE,
                    entity_id=str(inspector_id),
                    action="Update",
                    changes=changes,
                    actor=requesting_user_id,
                    timestamp=now
                )
                await uow.commit()
                return inspector

        inspector = await run_to_completion(update())
        await self._invalidate_search_cache()
        return inspector

    async def _invalidate_search_cache(self) -> None:
        if self._search_cache is not None:
            await self._search_cache.invalidate_all()

    @staticmethod
    def _validate_create(command: CreateInspectorCommand) -> None:
        errors = []
        for label, value in (("First name", command.first_name), ("Last name", command.last_name)):
            if not value or not value.strip():
                errors.append(f"{label} is required.")
            elif len(value.strip()) > MAX_NAME_LENGTH:
                errors.append(f"{label} cannot exceed {MAX_NAME_LENGTH} characters.")

        badge = (command.badge_number or "").strip()
        if not badge:
            errors.append("Badge number is required.")
        elif len(badge) > MAX_BADGE_LENGTH:
            errors.append(f"Badge number cannot exceed {MAX_BADGE_LENGTH} characters.")

        if not is_valid_coordinates(command.latitude, command.longitude):
            errors.append("Latitude must be between -90 and 90 and longitude between -180 and 180.")

        if command.status not in INITIAL_STATUSES:
            errors.append("Initial status must be inactive or available.")

        if command.requesting_user_id <= 0:
            errors.append("Requesting user ID must be a positive integer.")

        for certification in command.certifications:
            if not certification.name or not certification.name.strip():
                errors.append("Certification name is required.")
            if not certification.issuing_authority or not certification.issuing_authority.strip():
                errors.append("Certification issuing authority is required.")

        if errors:
            raise InspectorValidationError(errors)

    @staticmethod
    def _validate_drug_test(command: RecordDrugTestCommand, now: datetime) -> None:
        errors = []
        if command.inspector_id <= 0:
            errors.append("Inspector ID must be a positive integer.")
        if command.requesting_user_id <= 0:
            errors.append("Requesting user ID must be a positive integer.")
        if not TEST_KIT_PATTERN.match((command.test_kit_id or "").strip().upper()):
            errors.append("Test kit ID must match the format DT-YYYY-NNNN.")
        if command.test_type not in VALID_TEST_TYPES:
            errors.append(f"Test type must be one of: {', '.join(VALID_TEST_TYPES)}")
        if as_utc(command.test_date) > now:
            errors.append("Test date cannot be in the future.")
        if command.notes is not None and len(command.notes.strip()) > MAX_DRUG_TEST_NOTES_LENGTH:
            errors.append(f"Notes cannot exceed {MAX_DRUG_TEST_NOTES_LENGTH} characters.")
        if command.administered_by is not None and len(command.administered_by.strip()) > MAX_ADMINISTERED_BY_LENGTH:
            errors.append(f"Administered by cannot exceed {MAX_ADMINISTERED_BY_LENGTH} characters.")
        if errors:
            raise InspectorValidationError(errors)
