"""Unit tests for inspector administration and drug test recording."""

from datetime import timedelta

import pytest

from src.inspector_dispatch.application.services.inspector_service import (
    CertificationInput,
    CreateInspectorCommand,
    InspectorService,
    RecordDrugTestCommand
)
from src.inspector_dispatch.domain.entities.inspector import InspectorStatus
from src.inspector_dispatch.domain.exceptions import (
    DrugTestResultRejected,
    DuplicateBadgeNumber,
    DuplicateTestKit,
    InspectorNotFound,
    InspectorValidationError,
    InvalidStatusTransition,
    RejectionReason
)
from src.inspector_dispatch.domain.value_objects.geo_point import GeoPoint
from src.inspector_dispatch.infrastructure.cache.memory_cache import InMemorySearchCache
from src.inspector_dispatch.infrastructure.repositories.memory_repositories import (
    InMemoryInspectorRepository,
    InMemoryInspectorStore,
    InMemoryUnitOfWork
)
from tests.factories import NOW, FixedClock, build_inspector, make_page

pytestmark = pytest.mark.asyncio


@pytest.fixture
def store():
    return InMemoryInspectorStore()


@pytest.fixture
def repository(store):
    return InMemoryInspectorRepository(store)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def search_cache():
    return InMemorySearchCache()


@pytest.fixture
def service(store, repository, clock, search_cache):
    return InspectorService(
        inspector_repository=repository,
        unit_of_work_factory=lambda: InMemoryUnitOfWork(store),
        clock=clock,
        search_cache=search_cache
    )


def create_command(**overrides) -> CreateInspectorCommand:
    values = {
        "first_name": "Maria",
        "last_name": "Alvarez",
        "badge_number": "tx-1001",
        "latitude": 29.7604,
        "longitude": -95.3698,
        "requesting_user_id": 7,
        "status": InspectorStatus.AVAILABLE,
        "certifications": (CertificationInput("API 510", "American Petroleum Institute"),),
    }
    values.update(overrides)
    return CreateInspectorCommand(**values)


def drug_test_command(inspector_id: int, **overrides) -> RecordDrugTestCommand:
    values = {
        "inspector_id": inspector_id,
        "test_kit_id": "DT-2025-0042",
        "test_type": "Standard Panel",
        "test_date": NOW - timedelta(hours=2),
        "requesting_user_id": 7,
    }
    values.update(overrides)
    return RecordDrugTestCommand(**values)


class TestCreateInspector:
    """Test cases for inspector registration."""

    async def test_create_assigns_id_and_audits(self, service, store):
        """Test a new inspector is stored with a normalized badge and audited."""
        inspector = await service.create_inspector(create_command())

        assert inspector.id == 1
        assert inspector.badge_number == "TX-1001"
        assert inspector.certification_names == ["API 510"]
        assert store.inspectors[1].status == InspectorStatus.AVAILABLE

        assert len(store.audit_records) == 1
        record = store.audit_records[0]
        assert record.action == "Create"
        assert record.entity_id == "1"
        assert record.changes["badge_number"] == "TX-1001"

    async def test_duplicate_badge_rejected(self, service, store):
        """Test badge numbers are unique regardless of case."""
        await service.create_inspector(create_command(badge_number="TX-1001"))

        with pytest.raises(DuplicateBadgeNumber) as exc_info:
            await service.create_inspector(create_command(badge_number=" tx-1001 "))

        assert exc_info.value.reason == RejectionReason.DUPLICATE_BADGE_NUMBER
        assert len(store.inspectors) == 1

    async def test_validation_errors_collected(self, service, store):
        """Test every invalid field is reported and nothing is stored."""
        with pytest.raises(InspectorValidationError) as exc_info:
            await service.create_inspector(create_command(
                first_name=" ",
                badge_number="X" * 21,
                latitude=100,
                status=InspectorStatus.MOBILIZED
            ))

        assert exc_info.value.errors == [
            "First name is required.",
            "Badge number cannot exceed 20 characters.",
            "Latitude must be between -90 and 90 and longitude between -180 and 180.",
            "Initial status must be inactive or available.",
        ]
        assert store.inspectors == {}

    async def test_create_invalidates_search_cache(self, service, search_cache):
        """Test registering an inspector clears cached search pages."""
        await search_cache.set("inspector:search:a", make_page())

        await service.create_inspector(create_command())

        assert len(search_cache) == 0


class TestGetInspector:
    """Test cases for inspector lookup."""

    async def test_get_existing(self, service, repository):
        """Test an existing inspector is returned."""
        saved = await repository.save(build_inspector())

        assert (await service.get_inspector(saved.id)).badge_number == "TX-1001"

    async def test_get_missing(self, service):
        """Test an unknown inspector raises InspectorNotFound."""
        with pytest.raises(InspectorNotFound) as exc_info:
            await service.get_inspector(404)

        assert exc_info.value.reason == RejectionReason.INSPECTOR_NOT_FOUND


class TestStatusChanges:
    """Test cases for demobilize, suspend and location updates."""

    async def test_demobilize(self, service, repository, store):
        """Test a mobilized inspector returns to Available with an audit record."""
        saved = await repository.save(build_inspector(status=InspectorStatus.MOBILIZED))

        inspector = await service.demobilize(saved.id, 7)

        assert inspector.status == InspectorStatus.AVAILABLE
        assert store.inspectors[saved.id].status == InspectorStatus.AVAILABLE
        assert store.audit_records[0].changes == {"previous_status": "mobilized", "new_status": "available"}

    async def test_demobilize_requires_mobilized(self, service, repository, store):
        """Test demobilizing an available inspector fails without an audit record."""
        saved = await repository.save(build_inspector())

        with pytest.raises(InvalidStatusTransition):
            await service.demobilize(saved.id, 7)

        assert store.audit_records == []

    async def test_suspend_records_reason(self, service, repository, store):
        """Test suspension captures the reason in the audit trail."""
        saved = await repository.save(build_inspector())

        inspector = await service.suspend(saved.id, 7, reason="  failed site audit ")

        assert inspector.status == InspectorStatus.SUSPENDED
        assert store.audit_records[0].changes["reason"] == "failed site audit"

    async def test_update_location(self, service, repository, store):
        """Test a new location is stored."""
        saved = await repository.save(build_inspector())

        await service.update_location(saved.id, 30.2672, -97.7431, 7)

        assert store.inspectors[saved.id].location == GeoPoint(30.2672, -97.7431)

    async def test_update_location_validates(self, service, repository):
        """Test invalid coordinates are rejected."""
        saved = await repository.save(build_inspector())

        with pytest.raises(InspectorValidationError):
            await service.update_location(saved.id, 30.0, 181.0, 7)

    async def test_missing_inspector(self, service):
        """Test status changes on unknown inspectors raise InspectorNotFound."""
        with pytest.raises(InspectorNotFound):
            await service.suspend(404, 7)


class TestDrugTests:
    """Test cases for drug test recording."""

    async def test_record_pending_test(self, service, repository, store):
        """Test a test without a result is stored pending and audited."""
        saved = await repository.save(build_inspector(test_age_days=None))

        drug_test = await service.record_drug_test(drug_test_command(saved.id, test_kit_id="dt-2025-0042"))

        assert drug_test.test_kit_id == "DT-2025-0042"
        assert drug_test.is_pending
        assert store.inspectors[saved.id].last_drug_test_date == NOW - timedelta(hours=2)
        assert store.audit_records[0].entity_type == "DrugTest"
        assert store.audit_records[0].entity_id == "DT-2025-0042"

    async def test_record_with_immediate_result(self, service, repository):
        """Test a result supplied with the test is recorded at once."""
        saved = await repository.save(build_inspector(test_age_days=None))

        drug_test = await service.record_drug_test(drug_test_command(saved.id, result=True))

        assert drug_test.is_passing
        assert drug_test.result_recorded_at == NOW

    async def test_duplicate_test_kit_rejected(self, service, repository):
        """Test a kit ID can only be used once across all inspectors."""
        first = await repository.save(build_inspector(badge_number="TX-1001", test_age_days=None))
        second = await repository.save(build_inspector(badge_number="TX-1002", test_age_days=None))
        await service.record_drug_test(drug_test_command(first.id))

        with pytest.raises(DuplicateTestKit):
            await service.record_drug_test(drug_test_command(second.id))

    async def test_future_test_date_rejected(self, service, repository):
        """Test tests cannot be dated in the future."""
        saved = await repository.save(build_inspector(test_age_days=None))

        with pytest.raises(InspectorValidationError) as exc_info:
            await service.record_drug_test(drug_test_command(saved.id, test_date=NOW + timedelta(minutes=1)))

        assert "Test date cannot be in the future." in exc_info.value.errors

    @pytest.mark.parametrize("overrides, message", [
        ({"test_kit_id": "KIT-1"}, "Test kit ID must match the format DT-YYYY-NNNN."),
        ({"test_type": "Hair Panel"}, "Test type must be one of: Standard Panel, DOT Panel, Extended Panel"),
        ({"notes": "x" * 1001}, "Notes cannot exceed 1000 characters."),
    ])
    async def test_invalid_drug_test(self, service, overrides, message):
        """Test malformed drug test input is rejected."""
        with pytest.raises(InspectorValidationError) as exc_info:
            await service.record_drug_test(drug_test_command(1, **overrides))

        assert message in exc_info.value.errors

    async def test_result_is_single_write(self, service, repository, store, clock):
        """Test a result can be recorded once and never changed."""
        saved = await repository.save(build_inspector(test_age_days=None))
        await service.record_drug_test(drug_test_command(saved.id))
        clock.advance(timedelta(hours=1))

        drug_test = await service.record_drug_test_result(saved.id, "DT-2025-0042", True, 7, notes="negative")

        assert drug_test.is_passing
        assert drug_test.result_recorded_at == NOW + timedelta(hours=1)

        with pytest.raises(DrugTestResultRejected) as exc_info:
            await service.record_drug_test_result(saved.id, "DT-2025-0042", False, 7)

        assert exc_info.value.reason == RejectionReason.RESULT_ALREADY_RECORDED
        assert store.inspectors[saved.id].find_drug_test("DT-2025-0042").result is True
        assert len(store.audit_records) == 2

    async def test_result_for_unknown_kit(self, service, repository):
        """Test recording a result for an unknown kit is rejected."""
        saved = await repository.save(build_inspector(test_age_days=None))

        with pytest.raises(DrugTestResultRejected) as exc_info:
            await service.record_drug_test_result(saved.id, "DT-2025-9999", True, 7)

        assert exc_info.value.reason == RejectionReason.DRUG_TEST_NOT_FOUND

    async def test_recorded_pass_makes_inspector_eligible(self, service, repository, store):
        """Test a recorded pass is visible to later eligibility checks."""
        saved = await repository.save(build_inspector(test_age_days=None))
        await service.record_drug_test(drug_test_command(saved.id, result=True))

        stored = store.inspectors[saved.id]
        assert stored.drug_tests[0].is_passing
