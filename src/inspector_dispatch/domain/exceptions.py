"""Domain error taxonomy for the dispatch engine."""

from enum import Enum
from typing import Iterable, List


class RejectionReason(Enum):
    """Reason codes surfaced to callers on a domain rejection."""
    INSPECTOR_NOT_FOUND = "INSPECTOR_NOT_FOUND"
    INSPECTOR_DEACTIVATED = "INSPECTOR_DEACTIVATED"
    INVALID_STATUS = "INVALID_STATUS"
    DRUG_TEST_NON_COMPLIANT = "DRUG_TEST_NON_COMPLIANT"
    MOBILIZATION_DATE_OUT_OF_WINDOW = "MOBILIZATION_DATE_OUT_OF_WINDOW"
    DUPLICATE_BADGE_NUMBER = "DUPLICATE_BADGE_NUMBER"
    DUPLICATE_TEST_KIT = "DUPLICATE_TEST_KIT"
    DRUG_TEST_NOT_FOUND = "DRUG_TEST_NOT_FOUND"
    RESULT_ALREADY_RECORDED = "RESULT_ALREADY_RECORDED"
    RESULT_BEFORE_TEST_DATE = "RESULT_BEFORE_TEST_DATE"


class DispatchError(Exception):
    """Base class for all dispatch engine errors."""
    pass


class ValidationRejection(DispatchError):
    """Malformed or out-of-range request parameters.

    Raised before any storage access; safe to retry after correcting input.
    """

    def __init__(self, errors: Iterable[str]):
        self.errors: List[str] = list(errors)
        super().__init__("; ".join(self.errors))


class SearchValidationError(ValidationRejection):
    """Raised when search criteria violate a constraint."""
    pass


class MobilizationValidationError(ValidationRejection):
    """Raised when a mobilize command is malformed."""
    pass


class InspectorValidationError(ValidationRejection):
    """Raised when inspector or drug test input is malformed."""
    pass


class DomainRejection(DispatchError):
    """Business-rule violation. Never retried automatically."""

    def __init__(self, reason: RejectionReason, message: str):
        self.reason = reason
        self.message = message
        super().__init__(message)


class MobilizationRejected(DomainRejection):
    """Inspector is not eligible for mobilization right now."""
    pass


class InspectorNotFound(DomainRejection):
    """Inspector does not exist."""

    def __init__(self, inspector_id: int):
        self.inspector_id = inspector_id
        super().__init__(
            RejectionReason.INSPECTOR_NOT_FOUND,
            f"Inspector with ID {inspector_id} not found."
        )


class InvalidStatusTransition(DomainRejection):
    """Requested state change is not allowed from the current status."""

    def __init__(self, message: str):
        super().__init__(RejectionReason.INVALID_STATUS, message)


class DuplicateBadgeNumber(DomainRejection):
    """Badge number already assigned to another inspector."""

    def __init__(self, badge_number: str):
        self.badge_number = badge_number
        super().__init__(
            RejectionReason.DUPLICATE_BADGE_NUMBER,
            f"Badge number {badge_number} is already in use."
        )


class DuplicateTestKit(DomainRejection):
    """Test kit id already recorded."""

    def __init__(self, test_kit_id: str):
        self.test_kit_id = test_kit_id
        super().__init__(
            RejectionReason.DUPLICATE_TEST_KIT,
            f"Test kit {test_kit_id} has already been used."
        )


class DrugTestResultRejected(DomainRejection):
    """Drug test result cannot be recorded."""
    pass


class RetrievalFailure(DispatchError):
    """Storage failure or timeout while answering a search."""
    pass
