"""In-memory store of one run's test results."""

import logging
from collections.abc import Callable
from typing import Any

from boostsec.results_store.classify import HistoryStatusClassifier, StatusClassifier
from boostsec.results_store.convert import (
    AttachmentLinker,
    md5,
    raw_to_fixture,
    raw_to_test_result,
)
from boostsec.results_store.events import GlobalAttachment, RealtimeBus, Unsubscribe
from boostsec.results_store.history.base import History
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
    QualityGateValidationResult,
)
from boostsec.results_store.models.raw import (
    RawFixtureResult,
    RawGlobals,
    RawTestResult,
    ReaderContext,
)
from boostsec.results_store.models.store_config import (
    EnvironmentConfig,
    match_environment,
)
from boostsec.results_store.models.test_result import (
    DEFAULT_ENVIRONMENT,
    Statistic,
    TestCase,
    TestEnvGroup,
    TestError,
    TestLabel,
    TestResult,
    get_worst_status,
)
from boostsec.results_store.result_file import ResultFile

logger = logging.getLogger(__name__)

TestResultFilter = Callable[[TestResult], bool]


def _index(index: dict[str, list[Any]], key: str | None, *items: Any) -> None:
    if key and items:
        index.setdefault(key, []).extend(items)


def _start_key(result: TestResult) -> float:
    return float("-inf") if result.start is None else result.start


class ResultsStore:
    """Canonical, queryable state of a single run.

    Entities live in id-keyed maps; every index maps a key to entity ids
    resolved through those maps, so indices can be dumped and merged as-is.
    Visits must be awaited one after another: the store does no locking.
    """

    def __init__(
        self,
        history: History | None = None,
        known: list[KnownTestFailure] | None = None,
        bus: RealtimeBus | None = None,
        default_labels: dict[str, str | list[str]] | None = None,
        environment: str | None = None,
        environments: dict[str, EnvironmentConfig] | None = None,
        report_variables: dict[str, str] | None = None,
        classifier: StatusClassifier | None = None,
    ) -> None:
        """Initialize an empty store.

        Args:
            history: History log, None disables history lookups
            known: Known failures
            bus: Realtime bus used to announce and receive run updates
            default_labels: Labels added when absent from a result
            environment: Environment forced on every result
            environments: Environment matchers, checked in order
            report_variables: Report-wide variables
            classifier: Transition and flakiness classifier

        """
        self.history = history
        self.bus = bus
        self.default_labels = default_labels or {}
        self.environment = environment
        self.environments_config = environments or {}
        self.report_variables = report_variables or {}
        self.classifier = classifier or HistoryStatusClassifier()

        self._test_results: dict[str, TestResult] = {}
        self._attachments: dict[str, AttachmentLink] = {}
        self._attachment_contents: dict[str, ResultFile] = {}
        self._test_cases: dict[str, TestCase] = {}
        self._fixtures: dict[str, TestFixtureResult] = {}
        self._metadata: dict[str, Any] = {}

        self._index_test_result_by_test_case: dict[str, list[str]] = {}
        self._index_test_result_by_history_id: dict[str, list[str]] = {}
        self._index_latest_env_test_result_by_history_id: dict[str, dict[str, str]] = {}
        self._index_attachment_by_test_result: dict[str, list[str]] = {}
        self._index_attachment_by_fixture: dict[str, list[str]] = {}
        self._index_fixtures_by_test_result: dict[str, list[str]] = {}
        self._index_known_by_history_id: dict[str, list[KnownTestFailure]] = {}

        self._global_attachment_ids: list[str] = []
        self._global_errors: list[TestError] = []
        self._global_exit_code: ExitCode | None = None
        self._quality_gate_results_by_rule: dict[str, QualityGateValidationResult] = {}
        self._history_points: list[HistoryDataPoint] = []
        self._environments: list[str] = []
        self._subscriptions: list[Unsubscribe] = []

        for known_failure in known or []:
            _index(
                self._index_known_by_history_id,
                known_failure.history_id,
                known_failure,
            )

        configured = list(self.environments_config)
        if environment:
            configured.append(environment)
        self._add_environments(configured)

        if bus is not None:
            self._subscriptions = [
                bus.on_quality_gate_results(self._on_quality_gate_results),
                bus.on_global_exit_code(self._on_global_exit_code),
                bus.on_global_error(self._on_global_error),
                bus.on_global_attachment(self._on_global_attachment),
            ]

    def close(self) -> None:
        """Drop the store's realtime subscriptions."""
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions = []

    # realtime handlers

    def _on_quality_gate_results(
        self, results: list[QualityGateValidationResult]
    ) -> None:
        for result in results:
            self._quality_gate_results_by_rule[result.rule] = result

    def _on_global_exit_code(self, exit_code: ExitCode) -> None:
        self._global_exit_code = exit_code

    def _on_global_error(self, error: TestError) -> None:
        self._global_errors.append(error)

    def _on_global_attachment(self, payload: GlobalAttachment) -> None:
        attachment: ResultFile = payload.attachment
        link = AttachmentLink(
            id=md5(attachment.original_file_name),
            name=payload.file_name or attachment.original_file_name,
            original_file_name=attachment.original_file_name,
            ext=attachment.get_extension(),
            content_type=attachment.get_content_type(),
            content_length=attachment.get_content_length(),
            used=True,
            missed=False,
        )
        self._attachments[link.id] = link
        self._attachment_contents[link.id] = attachment
        if link.id not in self._global_attachment_ids:
            self._global_attachment_ids.append(link.id)

    def _add_environments(self, environments: list[str]) -> None:
        if not self._environments:
            self._environments.append(DEFAULT_ENVIRONMENT)

        for environment in environments:
            if environment and environment not in self._environments:
                self._environments.append(environment)
            if environment:
                self._index_latest_env_test_result_by_history_id.setdefault(
                    environment, {}
                )

    # history

    async def read_history(self) -> list[HistoryDataPoint]:
        """Load the history log, newest entry first."""
        if self.history is None:
            return []

        points = await self.history.read_history()
        self._history_points = sorted(
            points, key=lambda point: point.timestamp, reverse=True
        )
        return self._history_points

    async def append_history(self, entry: HistoryDataPoint) -> None:
        """Append an entry to the history log."""
        if self.history is None:
            return

        self._history_points.insert(0, entry)
        await self.history.append_history(entry)

    # visitor API

    async def visit_test_result(
        self, raw: RawTestResult, context: ReaderContext
    ) -> TestResult:
        """Normalize and index a raw test result.

        Args:
            raw: Reader output
            context: Reader context

        Returns:
            Stored test result

        """
        linker = AttachmentLinker(self._attachments)
        result = raw_to_test_result(raw, context, self._test_cases, linker)

        self._apply_default_labels(result)
        result.environment = (
            self.environment
            or match_environment(self.environments_config, result)
            or DEFAULT_ENVIRONMENT
        )

        history = self.history_by_tr(result)
        if history is not None:
            result.transition = self.classifier.get_transition(result, history)
            result.flaky = self.classifier.is_flaky(result, history)

        self._test_results[result.id] = result
        self._hide_previous_attempt(result)

        _index(
            self._index_test_result_by_test_case,
            result.test_case.id if result.test_case else None,
            result.id,
        )
        _index(self._index_test_result_by_history_id, result.history_id, result.id)
        _index(
            self._index_attachment_by_test_result,
            result.id,
            *[link.id for link in linker.links],
        )

        logger.debug(f"Visited test result {result.id} ({result.name})")
        if self.bus is not None:
            await self.bus.send_test_result(result.id)
        return result

    async def visit_test_fixture_result(
        self, raw: RawFixtureResult, context: ReaderContext
    ) -> TestFixtureResult:
        """Normalize and index a raw fixture."""
        linker = AttachmentLinker(self._attachments)
        fixture = raw_to_fixture(raw, context, linker)

        self._fixtures[fixture.id] = fixture
        for test_result_id in fixture.test_result_ids:
            _index(self._index_fixtures_by_test_result, test_result_id, fixture.id)
        _index(
            self._index_attachment_by_fixture,
            fixture.id,
            *[link.id for link in linker.links],
        )

        logger.debug(f"Visited fixture {fixture.id} ({fixture.name})")
        if self.bus is not None:
            await self.bus.send_test_fixture_result(fixture.id)
        return fixture

    async def visit_attachment_file(
        self, result_file: ResultFile, context: ReaderContext | None = None
    ) -> AttachmentLink:
        """Register attachment content, completing a pending link if any.

        Content always replaces previously received content with the same
        name. A pending link is updated in place since steps reference it.
        """
        original_file_name = result_file.original_file_name
        link_id = md5(original_file_name)

        self._attachment_contents[link_id] = result_file

        link = self._attachments.get(link_id)
        if link is not None:
            link.missed = False
            link.ext = link.ext or result_file.get_extension()
            link.content_type = link.content_type or result_file.get_content_type()
            link.content_length = result_file.get_content_length()
        else:
            link = AttachmentLink(
                id=link_id,
                original_file_name=original_file_name,
                ext=result_file.get_extension(),
                content_type=result_file.get_content_type(),
                content_length=result_file.get_content_length(),
                used=False,
                missed=False,
            )
            self._attachments[link_id] = link

        logger.debug(f"Visited attachment file {original_file_name}")
        if self.bus is not None:
            await self.bus.send_attachment_file(link_id)
        return link

    async def visit_metadata(self, metadata: dict[str, Any]) -> None:
        """Merge a metadata record into the run metadata."""
        self._metadata.update(metadata)

    async def visit_globals(
        self, raw: RawGlobals, context: ReaderContext | None = None
    ) -> None:
        """Record run-level errors and attachments."""
        for error in raw.errors:
            self._global_errors.append(
                TestError(message=error.message, trace=error.trace)
            )

        linker = AttachmentLinker(self._attachments)
        for attachment in raw.attachments:
            if attachment.name is None:
                attachment = attachment.model_copy(
                    update={"name": attachment.original_file_name}
                )
            link = linker.link(attachment)
            if link.id in self._attachments and link.id not in self._global_attachment_ids:
                self._global_attachment_ids.append(link.id)

    def _apply_default_labels(self, result: TestResult) -> None:
        present = {label.name for label in result.labels}
        for name, value in self.default_labels.items():
            if name in present:
                continue
            values = [value] if isinstance(value, str) else value
            result.labels.extend(TestLabel(name=name, value=item) for item in values)

    def _hide_previous_attempt(self, result: TestResult) -> None:
        """Keep only the latest attempt per environment and history id visible.

        A result without start time counts as the earliest attempt; on a tie
        the current latest attempt stays visible.
        """
        environment = result.environment
        if not environment:
            return

        latest = self._index_latest_env_test_result_by_history_id.setdefault(
            environment, {}
        )
        history_id = result.history_id
        if not history_id:
            return

        current = self._test_results.get(latest.get(history_id, ""))
        if current is None or current.id == result.id:
            latest[history_id] = result.id
            return

        if _start_key(result) > _start_key(current):
            latest[history_id] = result.id
            current.hidden = True
        else:
            result.hidden = True

    # state access API

    def all_test_cases(self) -> list[TestCase]:
        return list(self._test_cases.values())

    def all_test_results(
        self, include_hidden: bool = False, predicate: TestResultFilter | None = None
    ) -> list[TestResult]:
        """Return the stored results.

        Args:
            include_hidden: Also return retried attempts
            predicate: Optional predicate results must satisfy

        Returns:
            Results in ingestion order

        """
        return [
            result
            for result in self._test_results.values()
            if (include_hidden or not result.hidden)
            and (predicate is None or predicate(result))
        ]

    def all_attachments(
        self, include_missed: bool = False, include_unused: bool = False
    ) -> list[AttachmentLink]:
        """Return attachment links, by default only used ones with content."""
        return [
            link
            for link in self._attachments.values()
            if (include_missed or not link.missed) and (include_unused or link.used)
        ]

    def all_metadata(self) -> dict[str, Any]:
        return dict(self._metadata)

    def all_fixtures(self) -> list[TestFixtureResult]:
        return list(self._fixtures.values())

    def all_history_data_points(self) -> list[HistoryDataPoint]:
        return self._history_points

    def all_history_data_points_by_environment(
        self, environment: str
    ) -> list[HistoryDataPoint]:
        """Return history entries restricted to one environment's results.

        Past results without a recorded environment are matched against the
        configured environments by their labels.
        """
        points = []
        for point in self._history_points:
            matching = [
                entry
                for entry in point.test_results.values()
                if self._history_environment(entry) == environment
            ]
            points.append(
                point.model_copy(
                    update={
                        "test_results": {
                            entry.history_id: entry
                            for entry in matching
                            if entry.history_id
                        },
                        "known_test_case_ids": [entry.id for entry in matching],
                    }
                )
            )
        return points

    def _history_environment(self, entry: HistoryTestResult) -> str | None:
        if entry.environment:
            return entry.environment
        if not entry.labels:
            return None
        return match_environment(self.environments_config, entry) or DEFAULT_ENVIRONMENT

    def all_known_issues(self) -> list[KnownTestFailure]:
        return [
            known
            for known_failures in self._index_known_by_history_id.values()
            for known in known_failures
        ]

    def all_new_test_results(
        self, predicate: TestResultFilter | None = None
    ) -> list[TestResult]:
        """Return visible results never seen in the loaded history."""
        if self.history is None:
            return []

        return [
            result
            for result in self.all_test_results(predicate=predicate)
            if not result.history_id
            or not any(
                result.history_id in point.test_results
                for point in self._history_points
            )
        ]

    # search API

    def test_case_by_id(self, test_case_id: str) -> TestCase | None:
        return self._test_cases.get(test_case_id)

    def test_result_by_id(self, test_result_id: str) -> TestResult | None:
        return self._test_results.get(test_result_id)

    def attachment_by_id(self, attachment_id: str) -> AttachmentLink | None:
        return self._attachments.get(attachment_id)

    def attachment_content_by_id(self, attachment_id: str) -> ResultFile | None:
        return self._attachment_contents.get(attachment_id)

    def metadata_by_key(self, key: str) -> Any:
        return self._metadata.get(key)

    def test_results_by_tc_id(self, test_case_id: str) -> list[TestResult]:
        return self._resolve(
            self._test_results, self._index_test_result_by_test_case.get(test_case_id)
        )

    def attachments_by_tr_id(self, test_result_id: str) -> list[AttachmentLink]:
        return self._resolve(
            self._attachments,
            self._index_attachment_by_test_result.get(test_result_id),
        )

    def attachments_by_fixture_id(self, fixture_id: str) -> list[AttachmentLink]:
        return self._resolve(
            self._attachments, self._index_attachment_by_fixture.get(fixture_id)
        )

    def fixtures_by_tr_id(self, test_result_id: str) -> list[TestFixtureResult]:
        return self._resolve(
            self._fixtures, self._index_fixtures_by_test_result.get(test_result_id)
        )

    def retries_by_tr(self, result: TestResult) -> list[TestResult]:
        """Return the hidden attempts of a visible result, newest first.

        Attempts are matched by history id across all environments.
        """
        if result.hidden or not result.history_id:
            return []

        retries = [
            attempt
            for attempt in self._resolve(
                self._test_results,
                self._index_test_result_by_history_id.get(result.history_id),
            )
            if attempt.hidden
        ]
        return sorted(retries, key=_start_key, reverse=True)

    def retries_by_tr_id(self, test_result_id: str) -> list[TestResult]:
        result = self.test_result_by_id(test_result_id)
        return self.retries_by_tr(result) if result else []

    def history_by_tr(self, result: TestResult) -> list[HistoryTestResult] | None:
        """Return past runs of the result, newest first.

        Returns:
            Matching history entries, or None when no history is configured

        """
        if self.history is None:
            return None
        if not result.history_id:
            return []

        return [
            point.test_results[result.history_id]
            for point in self._history_points
            if result.history_id in point.test_results
        ]

    def history_by_tr_id(self, test_result_id: str) -> list[HistoryTestResult] | None:
        result = self.test_result_by_id(test_result_id)
        return self.history_by_tr(result) if result else None

    @staticmethod
    def _resolve(entities: dict[str, Any], ids: list[str] | None) -> list[Any]:
        return [entities[entity_id] for entity_id in ids or [] if entity_id in entities]

    # aggregate API

    def failed_test_results(self) -> list[TestResult]:
        return [
            result
            for result in self.all_test_results()
            if result.status in ("failed", "broken")
        ]

    def unknown_failed_test_results(self) -> list[TestResult]:
        """Return failed results that aren't known failures."""
        return [
            result
            for result in self.failed_test_results()
            if result.history_id not in self._index_known_by_history_id
        ]

    def test_results_by_label(
        self, label_name: str
    ) -> dict[str | None, list[TestResult]]:
        """Group visible results by the values of a label.

        Results without the label are grouped under the ``None`` key, which no
        label value can take. A result with several values for the label
        appears in each group.
        """
        groups: dict[str | None, list[TestResult]] = {None: []}

        for result in self.all_test_results():
            values = [
                label.value
                for label in result.labels
                if label.name == label_name and label.value is not None
            ]
            if not values:
                groups[None].append(result)
                continue
            for value in values:
                groups.setdefault(value, []).append(result)

        return groups

    def tests_statistic(self, predicate: TestResultFilter | None = None) -> Statistic:
        """Count visible results by status, retries, flakiness and novelty."""
        statistic = Statistic()

        for result in self.all_test_results(predicate=predicate):
            statistic.total += 1
            if self.retries_by_tr(result):
                statistic.retries += 1
            if result.flaky:
                statistic.flaky += 1
            if result.transition == "new":
                statistic.new += 1
            setattr(statistic, result.status, getattr(statistic, result.status) + 1)

        return statistic

    # environments

    def all_environments(self) -> list[str]:
        return list(self._environments)

    def test_results_by_environment(
        self, environment: str, include_hidden: bool = False
    ) -> list[TestResult]:
        return [
            result
            for result in self.all_test_results(include_hidden=include_hidden)
            if result.environment == environment
        ]

    def all_test_env_groups(self) -> list[TestEnvGroup]:
        """Group visible results of each test case by environment."""
        by_test_case: dict[str, list[TestResult]] = {}
        for result in self.all_test_results():
            if result.test_case is not None:
                by_test_case.setdefault(result.test_case.id, []).append(result)

        groups = []
        for test_case_id, results in by_test_case.items():
            first = results[0]
            groups.append(
                TestEnvGroup(
                    id=test_case_id,
                    name=first.name,
                    full_name=first.full_name,
                    status=get_worst_status([result.status for result in results])
                    or "passed",
                    test_results_by_env={
                        (result.environment or DEFAULT_ENVIRONMENT): result.id
                        for result in results
                    },
                )
            )
        return groups

    # variables

    def all_variables(self) -> dict[str, str]:
        return dict(self.report_variables)

    def env_variables(self, environment: str) -> dict[str, str]:
        """Return report variables overridden by the environment's variables."""
        config = self.environments_config.get(environment)
        return {**self.report_variables, **(config.variables if config else {})}

    # globals and quality gate

    def global_exit_code(self) -> ExitCode | None:
        return self._global_exit_code

    def all_global_errors(self) -> list[TestError]:
        return list(self._global_errors)

    def all_global_attachments(self) -> list[AttachmentLink]:
        return self._resolve(self._attachments, self._global_attachment_ids)

    def quality_gate_results(self) -> list[QualityGateValidationResult]:
        return list(self._quality_gate_results_by_rule.values())

    def quality_gate_results_by_env(
        self,
    ) -> dict[str, list[QualityGateValidationResult]]:
        """Group quality gate results by the environment they were run for."""
        groups: dict[str, list[QualityGateValidationResult]] = {}
        for result in self._quality_gate_results_by_rule.values():
            groups.setdefault(result.environment or DEFAULT_ENVIRONMENT, []).append(
                result
            )
        return groups

    # dump and restore

    def dump_state(self) -> StoreDump:
        """Snapshot every entity and index, detached from the live store."""
        return StoreDump(
            test_results=self._test_results,
            attachments=self._attachments,
            test_cases=self._test_cases,
            fixtures=self._fixtures,
            metadata=self._metadata,
            environments=self._environments,
            report_variables=self.report_variables,
            global_attachment_ids=self._global_attachment_ids,
            global_errors=self._global_errors,
            global_exit_code=self._global_exit_code,
            quality_gate_results=self.quality_gate_results(),
            index_attachment_by_test_result=self._index_attachment_by_test_result,
            index_test_result_by_history_id=self._index_test_result_by_history_id,
            index_test_result_by_test_case=self._index_test_result_by_test_case,
            index_latest_env_test_result_by_history_id=(
                self._index_latest_env_test_result_by_history_id
            ),
            index_attachment_by_fixture=self._index_attachment_by_fixture,
            index_fixtures_by_test_result=self._index_fixtures_by_test_result,
            index_known_by_history_id=self._index_known_by_history_id,
        ).model_copy(deep=True)

    def restore_state(
        self,
        dump: StoreDump,
        attachment_contents: dict[str, ResultFile] | None = None,
    ) -> None:
        """Merge a dump into the store.

        Entities are upserted and index entries appended. The latest attempt
        per environment and history id is then recomputed for the merged
        results with the same rule as ingestion, so restoring several dumps
        gives the same visible results in any order.

        Args:
            dump: Snapshot produced by ``dump_state``
            attachment_contents: Attachment contents keyed by attachment id

        """
        dump = dump.model_copy(deep=True)

        self._test_results.update(dump.test_results)
        self._attachments.update(dump.attachments)
        self._test_cases.update(dump.test_cases)
        self._fixtures.update(dump.fixtures)
        self._metadata.update(dump.metadata)
        self._attachment_contents.update(attachment_contents or {})

        self._add_environments(dump.environments)
        self.report_variables.update(dump.report_variables)
        for attachment_id in dump.global_attachment_ids:
            if attachment_id not in self._global_attachment_ids:
                self._global_attachment_ids.append(attachment_id)
        self._global_errors.extend(dump.global_errors)
        if dump.global_exit_code is not None and self._global_exit_code is None:
            self._global_exit_code = dump.global_exit_code
        self._on_quality_gate_results(dump.quality_gate_results)

        self._merge_index(
            self._index_attachment_by_test_result,
            dump.index_attachment_by_test_result,
            self._attachments,
        )
        self._merge_index(
            self._index_test_result_by_history_id,
            dump.index_test_result_by_history_id,
            self._test_results,
        )
        self._merge_index(
            self._index_test_result_by_test_case,
            dump.index_test_result_by_test_case,
            self._test_results,
        )
        self._merge_index(
            self._index_attachment_by_fixture,
            dump.index_attachment_by_fixture,
            self._attachments,
        )
        self._merge_index(
            self._index_fixtures_by_test_result,
            dump.index_fixtures_by_test_result,
            self._fixtures,
        )
        for history_id, known_failures in dump.index_known_by_history_id.items():
            present = self._index_known_by_history_id.get(history_id, [])
            _index(
                self._index_known_by_history_id,
                history_id,
                *[known for known in known_failures if known not in present],
            )

        candidates = [
            test_result_id
            for latest in dump.index_latest_env_test_result_by_history_id.values()
            for test_result_id in latest.values()
        ]
        candidates.extend(
            result.id for result in dump.test_results.values() if not result.hidden
        )
        for test_result_id in dict.fromkeys(candidates):
            result = self._test_results.get(test_result_id)
            if result is not None and not result.hidden:
                self._hide_previous_attempt(result)

        logger.info(
            f"Restored {len(dump.test_results)} test results",
            extra={
                "attachments": len(dump.attachments),
                "fixtures": len(dump.fixtures),
            },
        )

    @staticmethod
    def _merge_index(
        index: dict[str, list[str]],
        entries: dict[str, list[str]],
        entities: dict[str, Any],
    ) -> None:
        for key, ids in entries.items():
            present = set(index.get(key, []))
            new_ids = [
                entity_id
                for entity_id in dict.fromkeys(ids)
                if entity_id in entities and entity_id not in present
            ]
            _index(index, key, *new_ids)
