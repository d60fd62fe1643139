"""Normalization of raw reader output into store state."""

import hashlib
import uuid
from pathlib import PurePath

from boostsec.results_store.models.attachment import AttachmentLink
from boostsec.results_store.models.fixture import TestFixtureResult
from boostsec.results_store.models.raw import (
    RawFixtureResult,
    RawStep,
    RawTestAttachment,
    RawTestResult,
    ReaderContext,
)
from boostsec.results_store.models.test_result import (
    AttachmentStep,
    SourceMetadata,
    TestCase,
    TestError,
    TestParameter,
    TestResult,
    TestStep,
    TestStepResult,
)
from boostsec.results_store.result_file import guess_content_type, guess_extension

DEFAULT_TEST_NAME = "Unknown test"
DEFAULT_FIXTURE_NAME = "Unknown fixture"
DEFAULT_STEP_NAME = "Unknown step"


def md5(value: str) -> str:
    """Return the hex md5 digest of a UTF-8 string."""
    return hashlib.md5(value.encode("utf-8")).hexdigest()  # noqa: S324


def parameters_hash(parameters: list[TestParameter]) -> str:
    """Hash the sorted ``name:value`` pairs of the non-excluded parameters."""
    pairs = sorted(
        f"{param.name}:{param.value}" for param in parameters if not param.excluded
    )
    return md5(",".join(pairs))


def compute_history_id(
    test_id: str | None, full_name: str | None, parameters: list[TestParameter]
) -> str | None:
    """Compute the stable cross-run identity of a test.

    Args:
        test_id: Framework-provided test id, preferred when present
        full_name: Fully qualified test name
        parameters: Test parameters, excluded ones are ignored

    Returns:
        ``md5(identity).md5(parameters)``, or None without an identity

    """
    identity = test_id or full_name
    if not identity:
        return None
    return f"{md5(identity)}.{parameters_hash(parameters)}"


def _new_id() -> str:
    return str(uuid.uuid4())


def _duration(start: int | None, stop: int | None, duration: int | None) -> int | None:
    if duration is not None:
        return duration
    if start is not None and stop is not None:
        return stop - start
    return None


def _error(message: str | None, trace: str | None) -> TestError | None:
    if message is None and trace is None:
        return None
    return TestError(message=message, trace=trace)


class AttachmentLinker:
    """Turns attachment references into links registered with the store.

    The same link object is shared between the attachments map and the steps
    that reference it, so file arrival updates every step in place.
    """

    def __init__(self, attachments: dict[str, AttachmentLink]) -> None:
        """Initialize with the store's attachments map."""
        self.attachments = attachments
        self.links: list[AttachmentLink] = []

    def link(self, raw: RawTestAttachment) -> AttachmentLink:
        """Return the link for a raw attachment, registering it when new."""
        if raw.original_file_name is None:
            return self._register(self._placeholder(raw, _new_id()))

        link_id = md5(raw.original_file_name)
        existing = self.attachments.get(link_id)

        if existing is None:
            return self._register(self._placeholder(raw, link_id))

        if existing.used:
            # Already referenced by another result: the step gets its own copy.
            return AttachmentLink(
                id=_new_id(),
                name=raw.name,
                ext="",
                content_type=raw.content_type,
                used=True,
                missed=True,
            )

        existing.used = True
        existing.name = raw.name
        existing.content_type = raw.content_type or existing.content_type
        self.links.append(existing)
        return existing

    def _placeholder(self, raw: RawTestAttachment, link_id: str) -> AttachmentLink:
        file_name = raw.original_file_name
        content_type = raw.content_type or (
            guess_content_type(file_name) if file_name else None
        )
        ext = (PurePath(file_name).suffix if file_name else "") or guess_extension(
            content_type
        )
        return AttachmentLink(
            id=link_id,
            name=raw.name,
            original_file_name=file_name,
            ext=ext,
            content_type=content_type,
            used=True,
            missed=True,
        )

    def _register(self, link: AttachmentLink) -> AttachmentLink:
        self.attachments[link.id] = link
        self.links.append(link)
        return link


def _has_message(steps: list[TestStep], message: str) -> bool:
    for step in steps:
        if not isinstance(step, TestStepResult):
            continue
        if step.error is not None and step.error.message == message:
            return True
        if _has_message(step.steps, message):
            return True
    return False


def convert_steps(raw_steps: list[RawStep], linker: AttachmentLinker) -> list[TestStep]:
    """Convert raw steps, linking attachments on the way."""
    steps: list[TestStep] = []
    for raw in raw_steps:
        if isinstance(raw, RawTestAttachment):
            steps.append(AttachmentStep(link=linker.link(raw)))
            continue

        children = convert_steps(raw.steps, linker)
        steps.append(
            TestStepResult(
                name=raw.name or DEFAULT_STEP_NAME,
                status=raw.status or "unknown",
                error=_error(raw.message, raw.trace),
                start=raw.start,
                stop=raw.stop,
                duration=_duration(raw.start, raw.stop, raw.duration),
                parameters=raw.parameters,
                steps=children,
                has_similar_error_in_sub_steps=(
                    raw.message is not None and _has_message(children, raw.message)
                ),
            )
        )
    return steps


def raw_to_test_result(
    raw: RawTestResult,
    context: ReaderContext,
    test_cases: dict[str, TestCase],
    linker: AttachmentLinker,
) -> TestResult:
    """Normalize a raw test result.

    Registers the result's test case in ``test_cases`` when it's new.

    Args:
        raw: Reader output
        context: Reader context recorded as source metadata
        test_cases: Store test cases keyed by id
        linker: Attachment linker collecting the result's links

    Returns:
        Normalized test result without environment, transition or hiding

    """
    name = raw.name or DEFAULT_TEST_NAME
    identity = raw.test_id or raw.full_name

    test_case = None
    if identity:
        test_case_id = md5(identity)
        test_case = test_cases.get(test_case_id)
        if test_case is None:
            test_case = TestCase(id=test_case_id, name=name, full_name=raw.full_name)
            test_cases[test_case_id] = test_case

    return TestResult(
        id=raw.uuid or _new_id(),
        name=name,
        full_name=raw.full_name,
        history_id=raw.history_id
        or compute_history_id(raw.test_id, raw.full_name, raw.parameters),
        test_case=test_case,
        status=raw.status or "unknown",
        error=_error(raw.message, raw.trace),
        start=raw.start,
        stop=raw.stop,
        duration=_duration(raw.start, raw.stop, raw.duration),
        flaky=raw.flaky,
        muted=raw.muted,
        known=raw.known,
        labels=[label.model_copy() for label in raw.labels],
        parameters=raw.parameters,
        links=raw.links,
        steps=convert_steps(raw.steps, linker),
        description=raw.description,
        description_html=raw.description_html,
        source_metadata=SourceMetadata(
            reader_id=context.reader_id, metadata=context.metadata
        ),
    )


def raw_to_fixture(
    raw: RawFixtureResult, context: ReaderContext, linker: AttachmentLinker
) -> TestFixtureResult:
    """Normalize a raw setup/teardown result."""
    return TestFixtureResult(
        id=raw.uuid or _new_id(),
        name=raw.name or DEFAULT_FIXTURE_NAME,
        type=raw.type,
        status=raw.status or "unknown",
        error=_error(raw.message, raw.trace),
        start=raw.start,
        stop=raw.stop,
        duration=_duration(raw.start, raw.stop, raw.duration),
        test_result_ids=raw.test_result_ids,
        steps=convert_steps(raw.steps, linker),
        source_metadata=SourceMetadata(
            reader_id=context.reader_id, metadata=context.metadata
        ),
    )
