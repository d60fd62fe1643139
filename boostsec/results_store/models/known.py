"""Models for known test failures."""

from pydantic import Field

from boostsec.results_store.models.base import WireModel
from boostsec.results_store.models.test_result import TestError, TestLink


class KnownTestFailure(WireModel):
    """Failure that is expected and tracked elsewhere."""

    history_id: str = Field(..., description="History id of the failing test")
    issues: list[TestLink] = Field(default_factory=list)
    comment: str | None = None
    error: TestError | None = None
