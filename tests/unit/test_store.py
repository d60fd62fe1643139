"""Tests for the results store."""

from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from boostsec.results_store.convert import md5
from boostsec.results_store.events import RealtimeBus
from boostsec.results_store.history.local import LocalHistory
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
    RawGlobalError,
    RawGlobals,
    RawTestAttachment,
    RawTestResult,
    ReaderContext,
)
from boostsec.results_store.models.store_config import (
    EnvironmentConfig,
    LabelMatcher,
)
from boostsec.results_store.models.test_result import TestError, TestLabel
from boostsec.results_store.result_file import BufferResultFile
from boostsec.results_store.store import ResultsStore

CONTEXT = ReaderContext(reader_id="test_store")


def _raw(uuid: str, test_id: str | None = "t", **fields) -> RawTestResult:
    return RawTestResult(uuid=uuid, test_id=test_id, name=uuid, **fields)


def _chrome_firefox() -> dict[str, EnvironmentConfig]:
    return {
        "chrome": EnvironmentConfig(matcher=LabelMatcher(labels={"browser": "chrome"})),
        "firefox": EnvironmentConfig(
            matcher=LabelMatcher(labels={"browser": "firefox"}),
            variables={"browser": "Firefox"},
        ),
    }


def _visible_ids(store: ResultsStore) -> set[str]:
    return {result.id for result in store.all_test_results()}


def _history_entry(
    uuid: str, timestamp: int, **statuses: str
) -> HistoryDataPoint:
    return HistoryDataPoint(
        uuid=uuid,
        name="report",
        timestamp=timestamp,
        test_results={
            history_id: HistoryTestResult(
                id=f"{uuid}-{history_id}",
                name=history_id,
                status=status,
                history_id=history_id,
            )
            for history_id, status in statuses.items()
        },
    )


async def _store_with_history(tmp_path: Path, *entries: HistoryDataPoint) -> ResultsStore:
    path = tmp_path / "history.jsonl"
    path.write_text("".join(f"{entry.to_json()}\n" for entry in entries))
    store = ResultsStore(history=LocalHistory(path))
    await store.read_history()
    return store


# retries


@pytest.mark.parametrize("order", [("late", "early"), ("early", "late")])
async def test_latest_attempt_visible_in_any_order(order: tuple[str, str]) -> None:
    """The attempt with the greatest start stays visible whatever the order."""
    store = ResultsStore()
    starts = {"late": 1000, "early": 0}

    for uuid in order:
        await store.visit_test_result(_raw(uuid, start=starts[uuid]), CONTEXT)

    assert _visible_ids(store) == {"late"}
    assert store.test_result_by_id("early").hidden is True
    assert store.test_result_by_id("late").hidden is False


async def test_missing_start_counts_as_earliest() -> None:
    """A result without start time is hidden by a timed attempt."""
    store = ResultsStore()

    await store.visit_test_result(_raw("timed", start=5), CONTEXT)
    await store.visit_test_result(_raw("untimed"), CONTEXT)

    assert _visible_ids(store) == {"timed"}


async def test_tie_keeps_existing_latest() -> None:
    """On equal start times the first ingested attempt stays visible."""
    store = ResultsStore()

    await store.visit_test_result(_raw("first", start=10), CONTEXT)
    await store.visit_test_result(_raw("second", start=10), CONTEXT)

    assert _visible_ids(store) == {"first"}


async def test_results_without_history_id_are_never_hidden() -> None:
    """Results without test id or full name can't be retries."""
    store = ResultsStore()

    await store.visit_test_result(_raw("a", test_id=None, start=1), CONTEXT)
    await store.visit_test_result(_raw("b", test_id=None, start=2), CONTEXT)

    assert _visible_ids(store) == {"a", "b"}
    assert store.retries_by_tr_id("b") == []


async def test_exactly_one_visible_attempt_per_environment() -> None:
    """Hiding is done per environment."""
    store = ResultsStore(environments=_chrome_firefox())
    chrome = [TestLabel(name="browser", value="chrome")]
    firefox = [TestLabel(name="browser", value="firefox")]

    await store.visit_test_result(_raw("c1", start=1, labels=chrome), CONTEXT)
    await store.visit_test_result(_raw("c2", start=2, labels=chrome), CONTEXT)
    await store.visit_test_result(_raw("f1", start=1, labels=firefox), CONTEXT)

    assert _visible_ids(store) == {"c2", "f1"}


async def test_retries_by_tr() -> None:
    """Retries are the hidden attempts, newest first."""
    store = ResultsStore()
    for uuid, start in (("a", 1), ("c", 3), ("b", 2)):
        await store.visit_test_result(_raw(uuid, start=start), CONTEXT)

    retries = store.retries_by_tr_id("c")

    assert [retry.id for retry in retries] == ["b", "a"]
    assert store.retries_by_tr_id("a") == []
    assert store.retries_by_tr_id("missing") == []


# ingestion


async def test_visit_test_result_publishes_id() -> None:
    """visit_test_result announces the new result on the bus."""
    bus = RealtimeBus()
    listener = AsyncMock()
    bus.on_test_result(listener)
    store = ResultsStore(bus=bus)

    await store.visit_test_result(_raw("tr-1"), CONTEXT)

    listener.assert_awaited_once_with("tr-1")


async def test_default_labels_only_added_when_absent() -> None:
    """Default labels are added only for label names the result lacks."""
    store = ResultsStore(default_labels={"owner": "qa", "tag": ["a", "b"]})

    result = await store.visit_test_result(
        _raw("tr-1", labels=[TestLabel(name="owner", value="dev")]), CONTEXT
    )

    assert [(label.name, label.value) for label in result.labels] == [
        ("owner", "dev"),
        ("tag", "a"),
        ("tag", "b"),
    ]


async def test_environment_assignment() -> None:
    """Environment is the first matching one, else the default."""
    store = ResultsStore(environments=_chrome_firefox())

    chrome = await store.visit_test_result(
        _raw("c", labels=[TestLabel(name="browser", value="chrome")]), CONTEXT
    )
    other = await store.visit_test_result(_raw("o", test_id="other"), CONTEXT)

    assert chrome.environment == "chrome"
    assert other.environment == "default"
    assert store.all_environments() == ["default", "chrome", "firefox"]


async def test_environment_override() -> None:
    """An explicit environment wins over matchers."""
    store = ResultsStore(environment="staging", environments=_chrome_firefox())

    result = await store.visit_test_result(
        _raw("c", labels=[TestLabel(name="browser", value="chrome")]), CONTEXT
    )

    assert result.environment == "staging"
    assert "staging" in store.all_environments()


async def test_transition_and_flaky_from_history(tmp_path: Path) -> None:
    """Results are classified against their history."""
    history_id = f"{md5('t')}.{md5('')}"
    store = await _store_with_history(
        tmp_path,
        _history_entry("r1", 1, **{history_id: "failed"}),
        _history_entry("r2", 2, **{history_id: "passed"}),
    )

    result = await store.visit_test_result(_raw("tr", status="failed"), CONTEXT)

    assert result.transition == "regressed"
    assert result.flaky is True
    assert store.history_by_tr_id("tr") == store.history_by_tr(result)
    assert store.history_by_tr_id("missing") is None
    assert [entry.status for entry in store.history_by_tr(result)] == [
        "passed",
        "failed",
    ]


async def test_custom_classifier_is_used() -> None:
    """The store stores what its classifier returns."""
    classifier = Mock()
    classifier.get_transition.return_value = "fixed"
    classifier.is_flaky.return_value = True
    store = ResultsStore(history=AsyncMock(), classifier=classifier)

    result = await store.visit_test_result(_raw("tr"), CONTEXT)

    assert result.transition == "fixed"
    assert result.flaky is True
    classifier.get_transition.assert_called_once_with(result, [])


async def test_no_history_leaves_transition_unset() -> None:
    """Without history there is no classification."""
    store = ResultsStore()

    result = await store.visit_test_result(_raw("tr"), CONTEXT)

    assert result.transition is None
    assert store.history_by_tr(result) is None
    assert store.all_new_test_results() == []


async def test_visit_test_fixture_result() -> None:
    """Fixtures are indexed by result id and their attachments by fixture id."""
    bus = RealtimeBus()
    listener = Mock()
    bus.on_test_fixture_result(listener)
    store = ResultsStore(bus=bus)

    await store.visit_test_fixture_result(
        RawFixtureResult(
            uuid="fx",
            name="setup",
            test_result_ids=["tr-1", "tr-2"],
            steps=[RawTestAttachment(original_file_name="setup.log")],
        ),
        CONTEXT,
    )

    assert [fixture.id for fixture in store.fixtures_by_tr_id("tr-2")] == ["fx"]
    assert [fixture.name for fixture in store.all_fixtures()] == ["setup"]
    assert [link.id for link in store.attachments_by_fixture_id("fx")] == [
        md5("setup.log")
    ]
    listener.assert_called_once_with("fx")


async def test_visit_metadata() -> None:
    """Metadata records are merged."""
    store = ResultsStore()

    await store.visit_metadata({"branch": "main"})
    await store.visit_metadata({"commit": "abc"})

    assert store.all_metadata() == {"branch": "main", "commit": "abc"}
    assert store.metadata_by_key("commit") == "abc"
    assert store.metadata_by_key("missing") is None


# attachments


async def test_link_before_file() -> None:
    """A file arriving after its link completes the same link object."""
    store = ResultsStore()
    result = await store.visit_test_result(
        _raw("tr", steps=[RawTestAttachment(name="log", original_file_name="out")]),
        CONTEXT,
    )
    link = result.steps[0].link
    assert link.missed is True
    assert store.all_attachments() == []

    await store.visit_attachment_file(BufferResultFile(b"hello", "out"))

    assert link.missed is False
    assert link.content_length == 5
    assert link.content_type == "text/plain"
    assert link.ext == ".txt"
    assert store.attachment_by_id(md5("out")) is link
    assert store.attachments_by_tr_id("tr") == [link]
    assert store.all_attachments() == [link]


async def test_link_before_file_keeps_link_metadata() -> None:
    """Content type and extension set by the link win over the file's."""
    store = ResultsStore()
    result = await store.visit_test_result(
        _raw(
            "tr",
            steps=[
                RawTestAttachment(
                    original_file_name="data.txt", content_type="application/json"
                )
            ],
        ),
        CONTEXT,
    )

    await store.visit_attachment_file(BufferResultFile(b"{}", "data.txt"))

    link = result.steps[0].link
    assert link.content_type == "application/json"
    assert link.ext == ".txt"


async def test_file_before_link() -> None:
    """A file arriving first is unused until a result links it."""
    store = ResultsStore()
    await store.visit_attachment_file(BufferResultFile(b"png", "shot.png"))

    assert store.all_attachments() == []
    assert len(store.all_attachments(include_unused=True)) == 1

    result = await store.visit_test_result(
        _raw("tr", steps=[RawTestAttachment(name="Shot", original_file_name="shot.png")]),
        CONTEXT,
    )

    link = result.steps[0].link
    assert link.used is True
    assert link.missed is False
    assert link.name == "Shot"
    assert link.content_type == "image/png"
    assert store.all_attachments() == [link]


async def test_attachment_content_is_overwritten() -> None:
    """The latest content received for a file name wins."""
    store = ResultsStore()
    await store.visit_attachment_file(BufferResultFile(b"old", "a.txt"))
    await store.visit_attachment_file(BufferResultFile(b"newer", "a.txt"))

    content = store.attachment_content_by_id(md5("a.txt"))

    assert content.read_bytes() == b"newer"
    assert store.attachment_by_id(md5("a.txt")).content_length == 5


async def test_missed_attachments_filter() -> None:
    """Missed links are only listed on request."""
    store = ResultsStore()
    await store.visit_test_result(
        _raw("tr", steps=[RawTestAttachment(original_file_name="never.txt")]), CONTEXT
    )

    assert store.all_attachments() == []
    assert [link.original_file_name for link in store.all_attachments(include_missed=True)] == [
        "never.txt"
    ]


# globals


async def test_visit_globals() -> None:
    """Global errors and attachments are recorded."""
    store = ResultsStore()
    await store.visit_attachment_file(BufferResultFile(b"out", "stdout.txt"))

    await store.visit_globals(
        RawGlobals(
            errors=[RawGlobalError(message="setup failed", trace="trace")],
            attachments=[RawTestAttachment(original_file_name="stdout.txt")],
        )
    )

    assert store.all_global_errors() == [
        TestError(message="setup failed", trace="trace")
    ]
    [attachment] = store.all_global_attachments()
    assert attachment.id == md5("stdout.txt")
    assert attachment.name == "stdout.txt"
    assert attachment.used is True
    assert attachment.missed is False


async def test_realtime_globals_update_store() -> None:
    """The store records globals published on the bus."""
    bus = RealtimeBus()
    store = ResultsStore(bus=bus)

    await bus.send_global_error(TestError(message="crash"))
    await bus.send_global_exit_code(ExitCode(original=1, actual=0))
    await bus.send_quality_gate_results(
        [
            QualityGateValidationResult(success=False, rule="maxFailures", actual=1),
            QualityGateValidationResult(
                success=True, rule="minTestsCount", environment="chrome"
            ),
            QualityGateValidationResult(success=True, rule="maxFailures", actual=0),
        ]
    )
    await bus.send_global_attachment(BufferResultFile(b"log", "run.log"), "stdout")

    assert store.all_global_errors() == [TestError(message="crash")]
    assert store.global_exit_code() == ExitCode(original=1, actual=0)
    results = store.quality_gate_results()
    assert [(result.rule, result.success) for result in results] == [
        ("maxFailures", True),
        ("minTestsCount", True),
    ]
    assert set(store.quality_gate_results_by_env()) == {"default", "chrome"}
    [attachment] = store.all_global_attachments()
    assert attachment.name == "stdout"
    assert store.attachment_content_by_id(attachment.id).read_bytes() == b"log"


async def test_close_drops_subscriptions() -> None:
    """A closed store ignores bus events."""
    bus = RealtimeBus()
    store = ResultsStore(bus=bus)

    store.close()
    await bus.send_global_exit_code(ExitCode(original=2))

    assert store.global_exit_code() is None


# queries


async def test_test_results_by_label() -> None:
    """Results are grouped by label value, unlabeled ones under None."""
    store = ResultsStore()
    await store.visit_test_result(
        _raw("a", test_id="a", labels=[TestLabel(name="tag", value="__class__")]),
        CONTEXT,
    )
    await store.visit_test_result(
        _raw(
            "b",
            test_id="b",
            labels=[
                TestLabel(name="tag", value="constructor"),
                TestLabel(name="tag", value="__class__"),
            ],
        ),
        CONTEXT,
    )
    await store.visit_test_result(_raw("c", test_id="c"), CONTEXT)

    groups = store.test_results_by_label("tag")

    assert {key: [r.id for r in results] for key, results in groups.items()} == {
        None: ["c"],
        "__class__": ["a", "b"],
        "constructor": ["b"],
    }


async def test_test_results_by_label_empty_store() -> None:
    """An empty store still has the unlabeled group."""
    assert ResultsStore().test_results_by_label("tag") == {None: []}


async def test_test_results_by_label_underscore_value() -> None:
    """A label value of '_' gets its own group, apart from unlabeled results."""
    store = ResultsStore()
    await store.visit_test_result(
        _raw("a", test_id="a", labels=[TestLabel(name="tag", value="_")]), CONTEXT
    )
    await store.visit_test_result(_raw("b", test_id="b"), CONTEXT)

    groups = store.test_results_by_label("tag")

    assert [result.id for result in groups["_"]] == ["a"]
    assert [result.id for result in groups[None]] == ["b"]


async def test_tests_statistic() -> None:
    """Statistic counts visible results by status, retries, flaky and new."""
    store = ResultsStore()
    await store.visit_test_result(_raw("r1", status="failed", start=1), CONTEXT)
    await store.visit_test_result(_raw("r2", status="passed", start=2), CONTEXT)
    await store.visit_test_result(
        _raw("x", test_id="x", status="broken", flaky=True), CONTEXT
    )
    await store.visit_test_result(_raw("y", test_id="y", status="skipped"), CONTEXT)

    statistic = store.tests_statistic()

    assert statistic.total == 3
    assert statistic.passed == 1
    assert statistic.broken == 1
    assert statistic.skipped == 1
    assert statistic.failed == 0
    assert statistic.retries == 1
    assert statistic.flaky == 1
    assert store.tests_statistic(lambda result: result.status == "passed").total == 1


async def test_failed_and_unknown_failed_results() -> None:
    """Known failures are excluded from unknown failures."""
    known_history_id = f"{md5('known')}.{md5('')}"
    store = ResultsStore(known=[KnownTestFailure(history_id=known_history_id)])
    await store.visit_test_result(_raw("k", test_id="known", status="failed"), CONTEXT)
    await store.visit_test_result(_raw("n", test_id="new", status="broken"), CONTEXT)
    await store.visit_test_result(_raw("p", test_id="ok", status="passed"), CONTEXT)

    assert {result.id for result in store.failed_test_results()} == {"k", "n"}
    assert [result.id for result in store.unknown_failed_test_results()] == ["n"]
    assert [known.history_id for known in store.all_known_issues()] == [
        known_history_id
    ]


async def test_test_cases_and_results_by_test_case() -> None:
    """Results are indexed by their test case."""
    store = ResultsStore()
    await store.visit_test_result(_raw("a", start=1), CONTEXT)
    await store.visit_test_result(_raw("b", start=2), CONTEXT)

    [test_case] = store.all_test_cases()

    assert store.test_case_by_id(test_case.id) is test_case
    assert [result.id for result in store.test_results_by_tc_id(test_case.id)] == [
        "a",
        "b",
    ]
    assert store.test_results_by_tc_id("missing") == []


async def test_results_by_environment_and_env_groups() -> None:
    """Env groups report the worst status and the result per environment."""
    store = ResultsStore(environments=_chrome_firefox())
    await store.visit_test_result(
        _raw("c", status="passed", labels=[TestLabel(name="browser", value="chrome")]),
        CONTEXT,
    )
    await store.visit_test_result(
        _raw("f", status="failed", labels=[TestLabel(name="browser", value="firefox")]),
        CONTEXT,
    )

    [group] = store.all_test_env_groups()

    assert group.status == "failed"
    assert group.test_results_by_env == {"chrome": "c", "firefox": "f"}
    assert [result.id for result in store.test_results_by_environment("firefox")] == [
        "f"
    ]


async def test_variables() -> None:
    """Environment variables override report variables."""
    store = ResultsStore(
        environments=_chrome_firefox(),
        report_variables={"browser": "any", "team": "qa"},
    )

    assert store.all_variables() == {"browser": "any", "team": "qa"}
    assert store.env_variables("firefox") == {"browser": "Firefox", "team": "qa"}
    assert store.env_variables("unknown") == {"browser": "any", "team": "qa"}


async def test_new_test_results(tmp_path: Path) -> None:
    """New results are the visible ones absent from history."""
    seen_history_id = f"{md5('seen')}.{md5('')}"
    store = await _store_with_history(
        tmp_path, _history_entry("r1", 1, **{seen_history_id: "passed"})
    )
    await store.visit_test_result(_raw("seen", test_id="seen"), CONTEXT)
    await store.visit_test_result(_raw("fresh", test_id="fresh"), CONTEXT)

    assert [result.id for result in store.all_new_test_results()] == ["fresh"]
    assert store.tests_statistic().new == 1


async def test_history_points_sorted_newest_first(tmp_path: Path) -> None:
    """read_history orders history points by timestamp, newest first."""
    store = await _store_with_history(
        tmp_path,
        _history_entry("old", 1),
        _history_entry("new", 3),
        _history_entry("mid", 2),
    )

    assert [point.uuid for point in store.all_history_data_points()] == [
        "new",
        "mid",
        "old",
    ]


async def test_history_points_by_environment(tmp_path: Path) -> None:
    """History points are filtered to one environment's results."""
    point = HistoryDataPoint(
        uuid="r1",
        name="report",
        timestamp=1,
        test_results={
            "h1": HistoryTestResult(
                id="a", name="a", environment="chrome", history_id="h1"
            ),
            "h2": HistoryTestResult(
                id="b",
                name="b",
                labels=[TestLabel(name="browser", value="firefox")],
                history_id="h2",
            ),
            "h3": HistoryTestResult(id="c", name="c", history_id="h3"),
        },
    )
    path = tmp_path / "history.jsonl"
    path.write_text(f"{point.to_json()}\n")
    store = ResultsStore(
        history=LocalHistory(path), environments=_chrome_firefox()
    )
    await store.read_history()

    [chrome] = store.all_history_data_points_by_environment("chrome")
    [firefox] = store.all_history_data_points_by_environment("firefox")
    [staging] = store.all_history_data_points_by_environment("staging")

    assert list(chrome.test_results) == ["h1"]
    assert chrome.known_test_case_ids == ["a"]
    assert list(firefox.test_results) == ["h2"]
    assert staging.test_results == {}


async def test_append_history_updates_points(tmp_path: Path) -> None:
    """append_history writes through the log and keeps points newest first."""
    store = await _store_with_history(tmp_path, _history_entry("old", 1))

    await store.append_history(_history_entry("new", 2))

    assert [point.uuid for point in store.all_history_data_points()] == ["new", "old"]
    assert (tmp_path / "history.jsonl").read_text().count("\n") == 2


async def test_append_history_without_log_is_noop() -> None:
    """append_history does nothing without a history log."""
    store = ResultsStore()

    await store.append_history(_history_entry("new", 2))

    assert store.all_history_data_points() == []


# dump and restore


async def _shard(*results: RawTestResult) -> ResultsStore:
    store = ResultsStore()
    for raw in results:
        await store.visit_test_result(raw, CONTEXT)
    return store


async def test_dump_state_is_id_keyed() -> None:
    """dump_state serializes indices as ids."""
    store = await _shard(
        _raw("a", start=1, steps=[RawTestAttachment(original_file_name="a.txt")]),
        _raw("b", start=2),
    )

    dump = store.dump_state()

    history_id = store.test_result_by_id("a").history_id
    assert dump.index_test_result_by_history_id == {history_id: ["a", "b"]}
    assert dump.index_latest_env_test_result_by_history_id == {
        "default": {history_id: "b"}
    }
    assert dump.index_attachment_by_test_result == {"a": [md5("a.txt")]}
    assert dump.test_results["a"].hidden is True


async def test_dump_state_is_detached() -> None:
    """Changing a dump doesn't change the store."""
    store = await _shard(_raw("a"))

    dump = store.dump_state()
    dump.test_results["a"].name = "changed"

    assert store.test_result_by_id("a").name == "a"


@pytest.mark.parametrize("reverse", [False, True])
async def test_restore_is_order_independent(reverse: bool) -> None:
    """Restoring shard dumps in any order keeps the latest attempt visible."""
    shard_a = await _shard(
        _raw("a-t", test_id="t", start=1000),
        _raw("a-u", test_id="u", start=5),
    )
    shard_b = await _shard(
        _raw("b-t", test_id="t", start=0),
        _raw("b-u", test_id="u", start=50),
        _raw("b-v", test_id="v", start=1),
    )
    dumps = [shard_a.dump_state(), shard_b.dump_state()]
    if reverse:
        dumps.reverse()

    merged = ResultsStore()
    for dump in dumps:
        merged.restore_state(dump)

    assert _visible_ids(merged) == {"a-t", "b-u", "b-v"}
    assert [result.id for result in merged.retries_by_tr_id("a-t")] == ["b-t"]


async def test_restore_appends_to_existing_indices() -> None:
    """Restoring into a non-empty store appends index entries."""
    store = await _shard(_raw("local", start=1))
    shard = await _shard(_raw("remote", start=2))

    store.restore_state(shard.dump_state())

    [test_case] = store.all_test_cases()
    assert [result.id for result in store.test_results_by_tc_id(test_case.id)] == [
        "local",
        "remote",
    ]
    assert _visible_ids(store) == {"remote"}


async def test_restore_state_merges_everything_else() -> None:
    """Restore merges attachments, fixtures, globals, variables and known failures."""
    shard = ResultsStore(
        environment="ci",
        report_variables={"team": "qa"},
        known=[KnownTestFailure(history_id="h")],
    )
    await shard.visit_test_result(
        _raw("tr", steps=[RawTestAttachment(original_file_name="a.txt")]), CONTEXT
    )
    await shard.visit_attachment_file(BufferResultFile(b"abc", "a.txt"))
    await shard.visit_test_fixture_result(
        RawFixtureResult(uuid="fx", name="setup", test_result_ids=["tr"]), CONTEXT
    )
    await shard.visit_globals(RawGlobals(errors=[RawGlobalError(message="boom")]))
    await shard.visit_metadata({"branch": "main"})

    store = ResultsStore()
    content = BufferResultFile(b"abc", md5("a.txt"))
    store.restore_state(shard.dump_state(), {md5("a.txt"): content})

    assert store.test_result_by_id("tr").environment == "ci"
    assert "ci" in store.all_environments()
    assert [link.id for link in store.attachments_by_tr_id("tr")] == [md5("a.txt")]
    assert store.attachment_content_by_id(md5("a.txt")) is content
    assert [fixture.id for fixture in store.fixtures_by_tr_id("tr")] == ["fx"]
    assert store.all_global_errors() == [TestError(message="boom")]
    assert store.all_variables() == {"team": "qa"}
    assert store.all_metadata() == {"branch": "main"}
    assert [known.history_id for known in store.all_known_issues()] == ["h"]


async def test_restore_same_dump_twice_keeps_one_visible() -> None:
    """Restoring a dump twice neither hides its results nor duplicates indices."""
    shard = await _shard(
        _raw("a", start=1000, steps=[RawTestAttachment(original_file_name="a.txt")]),
        _raw("b", start=0),
    )
    dump = shard.dump_state()
    store = ResultsStore()

    store.restore_state(dump)
    store.restore_state(dump)

    assert _visible_ids(store) == {"a"}
    assert [retry.id for retry in store.retries_by_tr_id("a")] == ["b"]
    assert [link.id for link in store.attachments_by_tr_id("a")] == [md5("a.txt")]
    [test_case] = store.all_test_cases()
    assert [r.id for r in store.test_results_by_tc_id(test_case.id)] == ["a", "b"]


async def test_restore_same_dump_twice_keeps_known_failures_once() -> None:
    """Known failures from a dump restored twice are listed once."""
    shard = ResultsStore(known=[KnownTestFailure(history_id="h", comment="tracked")])
    dump = shard.dump_state()
    store = ResultsStore()

    store.restore_state(dump)
    store.restore_state(dump)

    assert [known.comment for known in store.all_known_issues()] == ["tracked"]
