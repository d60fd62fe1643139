"""Models for history data points stored in the history log."""

from pydantic import Field

from boostsec.results_store.models.base import WireModel
from boostsec.results_store.models.test_result import (
    TestError,
    TestLabel,
    TestStatus,
)


class HistoryTestResult(WireModel):
    """Minimal projection of a past test result."""

    id: str = Field(..., description="Result id in the past run")
    name: str = Field(..., description="Test name")
    full_name: str | None = None
    environment: str | None = None
    status: TestStatus = "unknown"
    error: TestError | None = None
    start: int | None = None
    stop: int | None = None
    duration: int | None = None
    labels: list[TestLabel] = Field(default_factory=list)
    url: str = ""
    history_id: str | None = None
    report_links: list[dict[str, str]] = Field(default_factory=list)


class HistoryDataPoint(WireModel):
    """Snapshot of one completed run, one line of the history log."""

    uuid: str = Field(..., description="Unique report id")
    name: str = Field(..., description="Report name")
    timestamp: int = Field(..., description="Creation time, ms since epoch")
    known_test_case_ids: list[str] = Field(default_factory=list)
    test_results: dict[str, HistoryTestResult] = Field(
        default_factory=dict, description="Results keyed by history id"
    )
    metrics: dict[str, float] = Field(default_factory=dict)
    url: str = ""
