"""Classification of a test result against its past runs."""

from abc import ABC, abstractmethod

from boostsec.results_store.models.history import HistoryTestResult
from boostsec.results_store.models.test_result import (
    TestResult,
    TransitionStatus,
)

FLAKY_HISTORY_DEPTH = 5

_FAILING = ("failed", "broken")

_TRANSITIONS: dict[str, TransitionStatus] = {
    "passed": "fixed",
    "failed": "regressed",
    "broken": "malfunctioned",
}


class StatusClassifier(ABC):
    """Decides the transition and the flakiness of a result."""

    @abstractmethod
    def get_transition(
        self, result: TestResult, history: list[HistoryTestResult]
    ) -> TransitionStatus | None:
        """Return the status transition of the result.

        Args:
            result: Result being ingested
            history: Past results with the same history id, newest first

        Returns:
            Transition, or None when the status didn't change

        """

    @abstractmethod
    def is_flaky(self, result: TestResult, history: list[HistoryTestResult]) -> bool:
        """Return whether the result is flaky given its history."""


class HistoryStatusClassifier(StatusClassifier):
    """Compares the result with the most recent runs."""

    def __init__(self, depth: int = FLAKY_HISTORY_DEPTH) -> None:
        """Initialize with the number of past runs checked for flakiness."""
        self.depth = depth

    def get_transition(
        self, result: TestResult, history: list[HistoryTestResult]
    ) -> TransitionStatus | None:
        if not history:
            return "new"

        if history[0].status == result.status:
            return None

        return _TRANSITIONS.get(result.status)

    def is_flaky(self, result: TestResult, history: list[HistoryTestResult]) -> bool:
        if result.flaky:
            return True

        if result.status not in _FAILING:
            return False

        statuses = {entry.status for entry in history[: self.depth]}
        return "passed" in statuses and bool(statuses.intersection(_FAILING))
