"""Models for setup/teardown fixture results."""

from typing import Literal

from pydantic import Field

from boostsec.results_store.models.base import WireModel
from boostsec.results_store.models.test_result import (
    SourceMetadata,
    TestError,
    TestStatus,
    TestStep,
)


class TestFixtureResult(WireModel):
    """Setup or teardown record linked to zero or more test results."""

    __test__ = False

    id: str = Field(..., description="Run-local unique id")
    name: str = Field(..., description="Fixture name")
    type: Literal["before", "after"] = Field(..., description="Setup or teardown")
    status: TestStatus = "unknown"
    error: TestError | None = None
    start: int | None = None
    stop: int | None = None
    duration: int | None = None
    test_result_ids: list[str] = Field(
        default_factory=list, description="Ids of the results the fixture wraps"
    )
    steps: list[TestStep] = Field(default_factory=list)
    source_metadata: SourceMetadata | None = None
