"""SQLAlchemy repository implementations."""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.inspector_dispatch.application.ports.clock import as_utc
from src.inspector_dispatch.application.ports.repositories import AuditSink, InspectorRepository, UnitOfWork
from src.inspector_dispatch.domain.entities.drug_test import DrugTest
from src.inspector_dispatch.domain.entities.inspector import Inspector
from src.inspector_dispatch.domain.exceptions import DuplicateBadgeNumber, DuplicateTestKit
from src.inspector_dispatch.domain.value_objects.certification import Certification
from src.inspector_dispatch.domain.value_objects.geo_point import GeoPoint, bounding_box
from src.inspector_dispatch.infrastructure.database.models import (
    AuditLogModel,
    CertificationModel,
    DrugTestModel,
    InspectorModel
)
from src.inspector_dispatch.infrastructure.logging import get_logger, log_database_operation


def _as_utc_or_none(value: Optional[datetime]) -> Optional[datetime]:
    # Some drivers hand back naive timestamps
    return as_utc(value) if value is not None else None


class SQLAlchemyInspectorRepository(InspectorRepository):
    """SQLAlchemy implementation of inspector repository."""

    def __init__(self, session: AsyncSession):
        self._session = session
        self._logger = get_logger(__name__)

    async def save(self, inspector: Inspector) -> Inspector:
        """Save an inspector to the database."""
        if inspector.id is None:
            log_database_operation(self._logger, "INSERT", "inspectors", badge_number=inspector.badge_number)

            inspector_model = self._entity_to_model(inspector)
            self._session.add(inspector_model)
            await self._flush(inspector)
            inspector.assign_id(inspector_model.id)

            self._logger.info(
                "New inspector created successfully",
                extra={"inspector_id": inspector.id, "badge_number": inspector.badge_number}
            )
            return inspector

        existing_inspector = await self._load(inspector.id)
        if existing_inspector is None:
            raise ValueError(f"Inspector {inspector.id} does not exist")

        log_database_operation(self._logger, "UPDATE", "inspectors", inspector_id=inspector.id)

        existing_inspector.first_name = inspector.first_name
        existing_inspector.last_name = inspector.last_name
        existing_inspector.latitude = inspector.location.latitude
        existing_inspector.longitude = inspector.location.longitude
        existing_inspector.status = inspector.status
        existing_inspector.is_active = inspector.is_active
        existing_inspector.last_mobilized_date = inspector.last_mobilized_date
        existing_inspector.updated_at = inspector.updated_at
        self._sync_drug_tests(existing_inspector, inspector.drug_tests)

        await self._flush(inspector)
        return inspector

    async def find_by_id(self, inspector_id: int, for_update: bool = False) -> Optional[Inspector]:
        """Find inspector by ID, optionally locking the row."""
        log_database_operation(
            self._logger,
            "SELECT",
            "inspectors",
            inspector_id=inspector_id,
            for_update=for_update
        )

        inspector_model = await self._load(inspector_id, for_update=for_update)
        if not inspector_model:
            self._logger.debug("Inspector not found by ID", extra={"inspector_id": inspector_id})
            return None
        return self._model_to_entity(inspector_model)

    async def find_by_badge_number(self, badge_number: str) -> Optional[Inspector]:
        """Find inspector by badge number."""
        sanitized_badge = badge_number.strip().upper()
        log_database_operation(self._logger, "SELECT", "inspectors", lookup_field="badge_number")

        stmt = self._select_inspectors().where(InspectorModel.badge_number == sanitized_badge)
        result = await self._session.execute(stmt)
        inspector_model = result.scalar_one_or_none()
        return self._model_to_entity(inspector_model) if inspector_model else None

    async def find_in_radius(self, point: GeoPoint, radius_meters: float) -> List[Inspector]:
        """Find inspectors inside the bounding box of the radius.

        The box is a coarse index filter; rows in its corners are returned
        too and are removed by the caller's exact distance check.
        """
        box = bounding_box(point, radius_meters)
        conditions = [InspectorModel.latitude.between(box.min_latitude, box.max_latitude)]
        if not box.spans_all_longitudes:
            conditions.append(InspectorModel.longitude.between(box.min_longitude, box.max_longitude))

        log_database_operation(
            self._logger,
            "SELECT",
            "inspectors",
            lookup_field="bounding_box",
            radius_meters=radius_meters
        )

        stmt = self._select_inspectors().where(and_(*conditions)).order_by(InspectorModel.id)
        result = await self._session.execute(stmt)
        return [self._model_to_entity(model) for model in result.scalars().all()]

    async def test_kit_exists(self, test_kit_id: str) -> bool:
        """Check whether a test kit ID is already recorded."""
        stmt = select(func.count(DrugTestModel.id)).where(
            DrugTestModel.test_kit_id == test_kit_id.strip().upper()
        )
        result = await self._session.execute(stmt)
        return result.scalar_one() > 0

    async def _flush(self, inspector: Inspector) -> None:
        try:
            await self._session.flush()
        except IntegrityError as exc:
            detail = str(exc.orig)
            if "badge_number" in detail:
                raise DuplicateBadgeNumber(inspector.badge_number) from exc
            if "test_kit_id" in detail:
                kits = [drug_test.test_kit_id for drug_test in inspector.drug_tests]
                raise DuplicateTestKit(", ".join(kits)) from exc
            raise

    @staticmethod
    def _select_inspectors():
        return select(InspectorModel).options(
            selectinload(InspectorModel.certifications),
            selectinload(InspectorModel.drug_tests)
        )

    async def _load(self, inspector_id: int, for_update: bool = False) -> Optional[InspectorModel]:
        stmt = self._select_inspectors().where(InspectorModel.id == inspector_id)
        if for_update:
            # Re-read the row even if it is already in the identity map
            stmt = stmt.with_for_update(of=InspectorModel).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    def _sync_drug_tests(self, model: InspectorModel, drug_tests: List[DrugTest]) -> None:
        existing = {test_model.test_kit_id: test_model for test_model in model.drug_tests}
        for drug_test in drug_tests:
            test_model = existing.get(drug_test.test_kit_id)
            if test_model is None:
                log_database_operation(
                    self._logger,
                    "INSERT",
                    "drug_tests",
                    inspector_id=model.id,
                    test_kit_id=drug_test.test_kit_id
                )
                model.drug_tests.append(self._drug_test_to_model(drug_test))
            elif test_model.result is None and drug_test.result is not None:
                log_database_operation(
                    self._logger,
                    "UPDATE",
                    "drug_tests",
                    inspector_id=model.id,
                    test_kit_id=drug_test.test_kit_id
                )
                test_model.result = drug_test.result
                test_model.notes = drug_test.notes
                test_model.result_recorded_at = drug_test.result_recorded_at

    def _entity_to_model(self, inspector: Inspector) -> InspectorModel:
        return InspectorModel(
            first_name=inspector.first_name,
            last_name=inspector.last_name,
            badge_number=inspector.badge_number,
            latitude=inspector.location.latitude,
            longitude=inspector.location.longitude,
            status=inspector.status,
            is_active=inspector.is_active,
            last_mobilized_date=inspector.last_mobilized_date,
            created_at=inspector.created_at,
            updated_at=inspector.updated_at,
            certifications=[
                CertificationModel(
                    name=certification.name,
                    issuing_authority=certification.issuing_authority,
                    expiry_date=certification.expiry_date
                )
                for certification in inspector.certifications
            ],
            drug_tests=[self._drug_test_to_model(drug_test) for drug_test in inspector.drug_tests]
        )

    @staticmethod
    def _drug_test_to_model(drug_test: DrugTest) -> DrugTestModel:
        return DrugTestModel(
            test_kit_id=drug_test.test_kit_id,
            test_type=drug_test.test_type,
            test_date=drug_test.test_date,
            administered_by=drug_test.administered_by,
            result=drug_test.result,
            notes=drug_test.notes,
            result_recorded_at=drug_test.result_recorded_at,
            created_at=drug_test.created_at
        )

    def _model_to_entity(self, model: InspectorModel) -> Inspector:
        """Convert database model to domain entity."""
        return Inspector(
            inspector_id=model.id,
            first_name=model.first_name,
            last_name=model.last_name,
            badge_number=model.badge_number,
            location=GeoPoint(model.latitude, model.longitude),
            status=model.status,
            certifications=[
                Certification(
                    name=certification.name,
                    issuing_authority=certification.issuing_authority,
                    expiry_date=certification.expiry_date
                )
                for certification in model.certifications
            ],
            drug_tests=[
                DrugTest(
                    test_kit_id=test_model.test_kit_id,
                    test_type=test_model.test_type,
                    test_date=as_utc(test_model.test_date),
                    administered_by=test_model.administered_by,
                    result=test_model.result,
                    notes=test_model.notes,
                    result_recorded_at=_as_utc_or_none(test_model.result_recorded_at),
                    created_at=as_utc(test_model.created_at)
                )
                for test_model in model.drug_tests
            ],
            is_active=model.is_active,
            last_mobilized_date=_as_utc_or_none(model.last_mobilized_date),
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at)
        )


class SQLAlchemyAuditSink(AuditSink):
    """Audit sink writing to the audit_log table in the caller's session."""

    def __init__(self, session: AsyncSession):
        self._session = session
        self._logger = get_logger(__name__)

    async def append(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        changes: Dict[str, Any],
        actor: int,
        timestamp: datetime
    ) -> None:
        """Append an audit record to the current transaction."""
        log_database_operation(
            self._logger,
            "INSERT",
            "audit_log",
            entity_type=entity_type,
            entity_id=entity_id,
            action=action
        )
        self._session.add(AuditLogModel(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            changes=changes,
            actor=actor,
            timestamp=timestamp
        ))
        await self._session.flush()


class SQLAlchemyUnitOfWork(UnitOfWork):
    """Unit of work over a single AsyncSession transaction."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory
        self._session: Optional[AsyncSession] = None
        self._committed = False
        self._logger = get_logger(__name__)

    async def begin(self) -> None:
        """Open a session and start its transaction."""
        self._session = self._session_factory()
        await self._session.begin()
        self.inspectors = SQLAlchemyInspectorRepository(self._session)
        self.audit = SQLAlchemyAuditSink(self._session)

    async def commit(self) -> None:
        """Commit the transaction."""
        await self._session.commit()
        self._committed = True

    async def rollback(self) -> None:
        """Roll back the transaction."""
        if self._session is not None:
            await self._session.rollback()
            self._logger.debug("Transaction rolled back")

    async def close(self) -> None:
        """Close the session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    @property
    def committed(self) -> bool:
        return self._committed
