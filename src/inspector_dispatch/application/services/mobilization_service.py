"""Mobilization workflow: the audited Available -> Mobilized transition."""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from src.inspector_dispatch.application.ports.cache import SearchCache
from src.inspector_dispatch.application.ports.clock import Clock, as_utc
from src.inspector_dispatch.application.ports.repositories import InspectorRepository, UnitOfWork
from src.inspector_dispatch.application.services.transaction import run_to_completion
from src.inspector_dispatch.domain.entities.inspector import InspectorStatus
from src.inspector_dispatch.domain.exceptions import (
    MobilizationRejected,
    MobilizationValidationError
)
from src.inspector_dispatch.domain.services.eligibility import EligibilityDecision, EligibilityEvaluator
from src.inspector_dispatch.infrastructure.logging import get_logger, log_business_rule_violation


MAX_NOTES_LENGTH = 500
AUDIT_ENTITY_TYPE = "Inspector"
AUDIT_ACTION_UPDATE = "Update"


@dataclass(frozen=True)
class MobilizeInspectorCommand:
    """Request to mobilize an inspector."""

    inspector_id: int
    requesting_user_id: int
    notes: Optional[str] = None
    mobilization_date: Optional[datetime] = None


@dataclass(frozen=True)
class MobilizationResult:
    """Outcome of a successful mobilization."""

    inspector_id: int
    previous_status: InspectorStatus
    new_status: InspectorStatus
    mobilization_date: datetime
    mobilized_at: datetime


def _is_positive_id(value) -> bool:
    # bool is an int subclass
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class MobilizeInspectorCommandValidator:
    """Validates the shape of a mobilize command."""

    @staticmethod
    def errors(command: MobilizeInspectorCommand) -> List[str]:
        """Collect every constraint violation."""
        errors = []
        if not _is_positive_id(command.inspector_id):
            errors.append("Inspector ID must be a positive integer.")
        if not _is_positive_id(command.requesting_user_id):
            errors.append("Requesting user ID must be a positive integer.")
        if command.notes is not None and len(command.notes.strip()) > MAX_NOTES_LENGTH:
            errors.append(f"Notes cannot exceed {MAX_NOTES_LENGTH} characters.")
        return errors

    @classmethod
    def validate(cls, command: MobilizeInspectorCommand) -> None:
        """Raise MobilizationValidationError if the command is malformed."""
        errors = cls.errors(command)
        if errors:
            raise MobilizationValidationError(errors)


class MobilizationService:
    """Application service for mobilizing inspectors.

    Eligibility is checked twice: once against a plain read to reject
    cheaply, then again inside the transaction against the locked row. Only
    the second check decides.
    """

    def __init__(
        self,
        inspector_repository: InspectorRepository,
        unit_of_work_factory: Callable[[], UnitOfWork],
        clock: Clock,
        eligibility_evaluator: Optional[EligibilityEvaluator] = None,
        search_cache: Optional[SearchCache] = None
    ):
        self._inspector_repository = inspector_repository
        self._unit_of_work_factory = unit_of_work_factory
        self._clock = clock
        self._eligibility_evaluator = eligibility_evaluator or EligibilityEvaluator()
        self._search_cache = search_cache
        self._logger = get_logger(__name__)

    async def mobilize(self, command: MobilizeInspectorCommand) -> MobilizationResult:
        """Mobilize an inspector, or raise MobilizationRejected."""
        MobilizeInspectorCommandValidator.validate(command)

        now = self._clock.now()
        mobilization_date = as_utc(command.mobilization_date or now)
        notes = (command.notes or "").strip() or None

        inspector = await self._inspector_repository.find_by_id(command.inspector_id)
        decision = self._eligibility_evaluator.evaluate(inspector, mobilization_date, now)
        if not decision.eligible:
            self._reject(command, decision, rejection_kind="precheck")

        result = await run_to_completion(
            self._mobilize_in_transaction(command, mobilization_date, notes, now)
        )

        if self._search_cache is not None:
            await self._search_cache.invalidate_all()

        self._logger.info(
            "Inspector mobilized",
            extra={
                "inspector_id": result.inspector_id,
                "requesting_user_id": command.requesting_user_id,
                "mobilization_date": result.mobilization_date.isoformat()
            }
        )
        return result

    async def _mobilize_in_transaction(
        self,
        command: MobilizeInspectorCommand,
        mobilization_date: datetime,
        notes: Optional[str],
        now: datetime
    ) -> MobilizationResult:
        async with self._unit_of_work_factory() as uow:
            inspector = await uow.inspectors.find_by_id(command.inspector_id, for_update=True)
            decision = self._eligibility_evaluator.evaluate(inspector, mobilization_date, now)
            if not decision.eligible:
                self._reject(command, decision, rejection_kind="concurrency")

            previous_status = inspector.status
            inspector.mobilize(now, mobilization_date)
            await uow.inspectors.save(inspector)
            await uow.audit.append(
                entity_type=AUDIT_ENTITY_TYPE,
                entity_id=str(inspector.id),
                action=AUDIT_ACTION_UPDATE,
                changes={
                    "previous_status": previous_status.value,
                    "new_status": inspector.status.value,
                    "mobilization_date": mobilization_date.isoformat(),
                    "notes": notes
                },
                actor=command.requesting_user_id,
                timestamp=now
            )
            await uow.commit()

        return MobilizationResult(
            inspector_id=inspector.id,
            previous_status=previous_status,
            new_status=inspector.status,
            mobilization_date=mobilization_date,
            mobilized_at=now
        )

    def _reject(self, command: MobilizeInspectorCommand, decision: EligibilityDecision, rejection_kind: str) -> None:
        log_business_rule_violation(
            self._logger,
            "mobilization_eligibility",
            decision.message,
            inspector_id=command.inspector_id,
            requesting_user_id=command.requesting_user_id,
            reason=decision.reason.value,
            rejection_kind=rejection_kind
        )
        raise MobilizationRejected(decision.reason, decision.message)
