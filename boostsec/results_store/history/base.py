"""History log contract and history entry construction."""

import time
from abc import ABC, abstractmethod

from boostsec.results_store.models.history import (
    HistoryDataPoint,
    HistoryTestResult,
)
from boostsec.results_store.models.test_result import TestCase, TestResult

DEFAULT_REPORT_NAME = "Allure Report"


class History(ABC):
    """Durable log of past run snapshots."""

    @abstractmethod
    async def read_history(self) -> list[HistoryDataPoint]:
        """Return the retained entries, oldest first."""

    @abstractmethod
    async def append_history(self, entry: HistoryDataPoint) -> None:
        """Append an entry, dropping the oldest ones beyond the retention limit."""


def to_history_test_result(result: TestResult) -> HistoryTestResult:
    """Project a test result onto its history representation."""
    return HistoryTestResult(
        id=result.id,
        name=result.name,
        full_name=result.full_name,
        environment=result.environment,
        status=result.status,
        error=result.error,
        start=result.start,
        stop=result.stop,
        duration=result.duration,
        labels=result.labels,
        history_id=result.history_id,
    )


def create_history(
    report_uuid: str,
    test_cases: list[TestCase],
    test_results: list[TestResult],
    report_name: str = DEFAULT_REPORT_NAME,
    remote_url: str = "",
) -> HistoryDataPoint:
    """Build the history entry of a completed run.

    Args:
        report_uuid: Unique id of the report
        test_cases: All test cases of the run
        test_results: Results to record, those without a history id are skipped
        report_name: Report name
        remote_url: Where the report is published, if anywhere

    Returns:
        History entry timestamped now

    """
    return HistoryDataPoint(
        uuid=report_uuid,
        name=report_name,
        timestamp=int(time.time() * 1000),
        known_test_case_ids=[test_case.id for test_case in test_cases],
        test_results={
            result.history_id: to_history_test_result(result)
            for result in test_results
            if result.history_id
        },
        url=remote_url,
    )
