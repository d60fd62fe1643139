"""Raw, reader-produced models before normalization."""

from typing import Annotated, Any, Literal

from pydantic import Field

from boostsec.results_store.models.base import WireModel
from boostsec.results_store.models.test_result import (
    TestLabel,
    TestLink,
    TestParameter,
    TestStatus,
)


class ReaderContext(WireModel):
    """Context passed along with every visited raw result."""

    reader_id: str = Field(..., description="Id of the reader")
    metadata: dict[str, Any] = Field(default_factory=dict)


class RawTestAttachment(WireModel):
    """Attachment reference inside a raw result."""

    type: Literal["attachment"] = "attachment"
    name: str | None = None
    original_file_name: str | None = None
    content_type: str | None = None
    start: int | None = None


class RawTestStep(WireModel):
    """Raw step, possibly nested."""

    type: Literal["step"] = "step"
    name: str | None = None
    status: TestStatus | None = None
    message: str | None = None
    trace: str | None = None
    start: int | None = None
    stop: int | None = None
    duration: int | None = None
    parameters: list[TestParameter] = Field(default_factory=list)
    steps: list["RawStep"] = Field(default_factory=list)


RawStep = Annotated[RawTestAttachment | RawTestStep, Field(discriminator="type")]

RawTestStep.model_rebuild()


class RawTestResult(WireModel):
    """Test result as produced by a reader."""

    uuid: str | None = None
    name: str | None = None
    full_name: str | None = None
    test_id: str | None = None
    history_id: str | None = None
    status: TestStatus | None = None
    message: str | None = None
    trace: str | None = None
    flaky: bool = False
    muted: bool = False
    known: bool = False
    start: int | None = None
    stop: int | None = None
    duration: int | None = None
    description: str | None = None
    description_html: str | None = None
    labels: list[TestLabel] = Field(default_factory=list)
    parameters: list[TestParameter] = Field(default_factory=list)
    links: list[TestLink] = Field(default_factory=list)
    steps: list[RawStep] = Field(default_factory=list)


class RawFixtureResult(WireModel):
    """Setup/teardown as produced by a reader."""

    uuid: str | None = None
    name: str | None = None
    type: Literal["before", "after"] = "before"
    status: TestStatus | None = None
    message: str | None = None
    trace: str | None = None
    start: int | None = None
    stop: int | None = None
    duration: int | None = None
    test_result_ids: list[str] = Field(default_factory=list)
    steps: list[RawStep] = Field(default_factory=list)


class RawGlobalError(WireModel):
    """Error not bound to any test."""

    message: str | None = None
    trace: str | None = None


class RawGlobals(WireModel):
    """Run-level errors and attachments."""

    errors: list[RawGlobalError] = Field(default_factory=list)
    attachments: list[RawTestAttachment] = Field(default_factory=list)
