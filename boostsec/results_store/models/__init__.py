"""Data models for test results, history entries, attachments and dumps."""

from boostsec.results_store.models.attachment import AttachmentLink
from boostsec.results_store.models.dump import StoreDump
from boostsec.results_store.models.fixture import TestFixtureResult
from boostsec.results_store.models.history import (
    HistoryDataPoint,
    HistoryTestResult,
)
from boostsec.results_store.models.known import KnownTestFailure
from boostsec.results_store.models.quality_gate import (
    ExitCode,
    QualityGateState,
    QualityGateValidationResult,
)
from boostsec.results_store.models.raw import (
    RawFixtureResult,
    RawGlobalError,
    RawGlobals,
    RawTestAttachment,
    RawTestResult,
    RawTestStep,
    ReaderContext,
)
from boostsec.results_store.models.store_config import (
    EnvironmentConfig,
    LabelMatcher,
    StoreConfig,
)
from boostsec.results_store.models.test_result import (
    DEFAULT_ENVIRONMENT,
    AttachmentStep,
    SourceMetadata,
    Statistic,
    TestCase,
    TestEnvGroup,
    TestError,
    TestLabel,
    TestLink,
    TestParameter,
    TestResult,
    TestStepResult,
)

__all__ = [
    "DEFAULT_ENVIRONMENT",
    "AttachmentLink",
    "AttachmentStep",
    "EnvironmentConfig",
    "ExitCode",
    "HistoryDataPoint",
    "HistoryTestResult",
    "KnownTestFailure",
    "LabelMatcher",
    "QualityGateState",
    "QualityGateValidationResult",
    "RawFixtureResult",
    "RawGlobalError",
    "RawGlobals",
    "RawTestAttachment",
    "RawTestResult",
    "RawTestStep",
    "ReaderContext",
    "SourceMetadata",
    "Statistic",
    "StoreConfig",
    "StoreDump",
    "TestCase",
    "TestEnvGroup",
    "TestError",
    "TestFixtureResult",
    "TestLabel",
    "TestLink",
    "TestParameter",
    "TestResult",
    "TestStepResult",
]
