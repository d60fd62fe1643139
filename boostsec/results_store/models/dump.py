"""Transport model of the full store state."""

from typing import Any

from pydantic import Field

from boostsec.results_store.models.attachment import AttachmentLink
from boostsec.results_store.models.base import WireModel
from boostsec.results_store.models.fixture import TestFixtureResult
from boostsec.results_store.models.known import KnownTestFailure
from boostsec.results_store.models.quality_gate import (
    ExitCode,
    QualityGateValidationResult,
)
from boostsec.results_store.models.test_result import (
    TestCase,
    TestError,
    TestResult,
)


class StoreDump(WireModel):
    """Self-contained, id-keyed snapshot of a store.

    Indices reference entities by id only, so a dump can be shipped between
    isolated processes and merged into another store.
    """

    test_results: dict[str, TestResult] = Field(default_factory=dict)
    attachments: dict[str, AttachmentLink] = Field(default_factory=dict)
    test_cases: dict[str, TestCase] = Field(default_factory=dict)
    fixtures: dict[str, TestFixtureResult] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    environments: list[str] = Field(default_factory=list)
    report_variables: dict[str, str] = Field(default_factory=dict)
    global_attachment_ids: list[str] = Field(default_factory=list)
    global_errors: list[TestError] = Field(default_factory=list)
    global_exit_code: ExitCode | None = None
    quality_gate_results: list[QualityGateValidationResult] = Field(
        default_factory=list
    )
    index_attachment_by_test_result: dict[str, list[str]] = Field(
        default_factory=dict
    )
    index_test_result_by_history_id: dict[str, list[str]] = Field(
        default_factory=dict
    )
    index_test_result_by_test_case: dict[str, list[str]] = Field(
        default_factory=dict
    )
    index_latest_env_test_result_by_history_id: dict[str, dict[str, str]] = Field(
        default_factory=dict, description="environment -> history id -> result id"
    )
    index_attachment_by_fixture: dict[str, list[str]] = Field(default_factory=dict)
    index_fixtures_by_test_result: dict[str, list[str]] = Field(
        default_factory=dict
    )
    index_known_by_history_id: dict[str, list[KnownTestFailure]] = Field(
        default_factory=dict
    )
