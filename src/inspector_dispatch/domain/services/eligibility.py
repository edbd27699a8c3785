"""Mobilization eligibility rules."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from src.inspector_dispatch.domain.entities.drug_test import DrugTest
from src.inspector_dispatch.domain.entities.inspector import Inspector, InspectorStatus
from src.inspector_dispatch.domain.exceptions import RejectionReason


DEFAULT_COMPLIANCE_WINDOW = timedelta(days=90)
DEFAULT_BACKDATE_TOLERANCE = timedelta(days=1)
DEFAULT_SCHEDULING_HORIZON = timedelta(days=30)


@dataclass(frozen=True)
class EligibilityDecision:
    """Outcome of an eligibility evaluation."""

    eligible: bool
    reason: Optional[RejectionReason] = None
    message: str = ""
    qualifying_test: Optional[DrugTest] = None

    @classmethod
    def approve(cls, qualifying_test: DrugTest) -> "EligibilityDecision":
        return cls(eligible=True, qualifying_test=qualifying_test)

    @classmethod
    def reject(cls, reason: RejectionReason, message: str) -> "EligibilityDecision":
        return cls(eligible=False, reason=reason, message=message)


class EligibilityEvaluator:
    """Pure decision function for the Available -> Mobilized transition.

    All window checks are measured from the ``now`` passed in by the caller,
    which comes from the injected clock, never from a caller-supplied date.
    """

    def __init__(
        self,
        compliance_window: timedelta = DEFAULT_COMPLIANCE_WINDOW,
        backdate_tolerance: timedelta = DEFAULT_BACKDATE_TOLERANCE,
        scheduling_horizon: timedelta = DEFAULT_SCHEDULING_HORIZON
    ):
        self.compliance_window = compliance_window
        self.backdate_tolerance = backdate_tolerance
        self.scheduling_horizon = scheduling_horizon

    def evaluate(
        self,
        inspector: Optional[Inspector],
        mobilization_date: datetime,
        now: datetime
    ) -> EligibilityDecision:
        """Decide whether the inspector may be mobilized."""
        if inspector is None:
            return EligibilityDecision.reject(
                RejectionReason.INSPECTOR_NOT_FOUND,
                "Inspector not found."
            )

        if not inspector.is_active:
            return EligibilityDecision.reject(
                RejectionReason.INSPECTOR_DEACTIVATED,
                f"Inspector {inspector.id} has been deactivated."
            )

        if inspector.status != InspectorStatus.AVAILABLE:
            return EligibilityDecision.reject(
                RejectionReason.INVALID_STATUS,
                "Inspector must be in Available status to be mobilized."
            )

        qualifying_test = self.latest_qualifying_test(inspector.drug_tests, now)
        if qualifying_test is None:
            window_days = self.compliance_window.days
            return EligibilityDecision.reject(
                RejectionReason.DRUG_TEST_NON_COMPLIANT,
                f"Inspector must have a passing drug test within the last {window_days} days."
            )

        if not self.is_within_mobilization_window(mobilization_date, now):
            return EligibilityDecision.reject(
                RejectionReason.MOBILIZATION_DATE_OUT_OF_WINDOW,
                f"Mobilization date must be between {self.backdate_tolerance.days} day(s) ago "
                f"and {self.scheduling_horizon.days} days from now."
            )

        return EligibilityDecision.approve(qualifying_test)

    def latest_qualifying_test(self, drug_tests: Iterable[DrugTest], now: datetime) -> Optional[DrugTest]:
        """Most recent passing test inside the compliance window.

        Pending or failing tests never disqualify on their own; only the
        existence of a passing test in the window matters.
        """
        window_start = now - self.compliance_window
        passing = [
            drug_test for drug_test in drug_tests
            if drug_test.is_passing and window_start <= drug_test.test_date <= now
        ]
        if not passing:
            return None
        return max(passing, key=lambda drug_test: drug_test.test_date)

    def is_within_mobilization_window(self, mobilization_date: datetime, now: datetime) -> bool:
        """Check the requested date against the backdate/scheduling window."""
        return (now - self.backdate_tolerance) <= mobilization_date <= (now + self.scheduling_horizon)
