"""Tests for configuration loading."""

from pathlib import Path

import pytest

from boostsec.results_store.config import find_config, load_config, load_known_issues
from boostsec.results_store.models.store_config import LabelMatcher
from boostsec.results_store.models.test_result import TestLabel, TestResult


async def test_load_config_valid(tmp_path: Path) -> None:
    """load_config parses a complete YAML file."""
    config_file = tmp_path / "results-store.yaml"
    config_file.write_text(
        """
name: "Nightly"
history_path: "out/history.jsonl"
history_limit: 20
default_labels:
  owner: "qa"
  tag: ["smoke", "nightly"]
environments:
  chrome:
    matcher:
      labels:
        browser: "chrome"
    variables:
      browser: "Chrome"
variables:
  team: "platform"
"""
    )

    config = await load_config(config_file)

    assert config.name == "Nightly"
    assert config.history_path == tmp_path / "out" / "history.jsonl"
    assert config.history_limit == 20
    assert config.default_labels == {"owner": "qa", "tag": ["smoke", "nightly"]}
    assert config.variables == {"team": "platform"}
    chrome = config.environments["chrome"]
    assert isinstance(chrome.matcher, LabelMatcher)
    assert chrome.variables == {"browser": "Chrome"}
    assert chrome.matcher(
        TestResult(id="1", name="t", labels=[TestLabel(name="browser", value="chrome")])
    )


async def test_load_config_keeps_absolute_paths(tmp_path: Path) -> None:
    """Absolute paths are kept, relative ones resolved against the config."""
    absolute = tmp_path / "elsewhere" / "history.jsonl"
    config_file = tmp_path / "conf" / "results-store.yaml"
    config_file.parent.mkdir()
    config_file.write_text(
        f"""
history_path: "{absolute}"
known_issues_path: "known.json"
dump: "dumps/shard-1"
"""
    )

    config = await load_config(config_file)

    assert config.history_path == absolute
    assert config.known_issues_path == tmp_path / "conf" / "known.json"
    assert config.dump == tmp_path / "conf" / "dumps" / "shard-1"


async def test_load_config_defaults(tmp_path: Path) -> None:
    """Unset fields keep their defaults."""
    config_file = tmp_path / "results-store.yaml"
    config_file.write_text("name: Report\n")

    config = await load_config(config_file)

    assert config.history_path is None
    assert config.history_limit is None
    assert config.environments == {}
    assert config.dump is None


async def test_load_config_file_not_found(tmp_path: Path) -> None:
    """load_config raises FileNotFoundError for a missing file."""
    with pytest.raises(FileNotFoundError, match="Config file not found"):
        await load_config(tmp_path / "missing.yaml")


async def test_load_config_invalid_yaml(tmp_path: Path) -> None:
    """load_config raises ValueError for invalid YAML."""
    config_file = tmp_path / "results-store.yaml"
    config_file.write_text("name: [unclosed\n")

    with pytest.raises(ValueError, match="Invalid YAML"):
        await load_config(config_file)


async def test_load_config_empty_file(tmp_path: Path) -> None:
    """load_config raises ValueError for an empty file."""
    config_file = tmp_path / "results-store.yaml"
    config_file.write_text("")

    with pytest.raises(ValueError, match="Empty config file"):
        await load_config(config_file)


async def test_load_config_negative_limit(tmp_path: Path) -> None:
    """load_config rejects a negative history limit."""
    config_file = tmp_path / "results-store.yaml"
    config_file.write_text("history_limit: -1\n")

    with pytest.raises(ValueError, match="Invalid config schema"):
        await load_config(config_file)


async def test_load_known_issues(tmp_path: Path) -> None:
    """load_known_issues parses a JSON list of known failures."""
    known_file = tmp_path / "known.json"
    known_file.write_text(
        '[{"historyId": "abc.def", "comment": "flaky on CI",'
        ' "issues": [{"url": "https://example.com/1"}]}]'
    )

    [known] = await load_known_issues(known_file)

    assert known.history_id == "abc.def"
    assert known.comment == "flaky on CI"
    assert known.issues[0].url == "https://example.com/1"


async def test_load_known_issues_missing_file(tmp_path: Path) -> None:
    """A missing known issues file means no known failures."""
    assert await load_known_issues(tmp_path / "known.json") == []


async def test_load_known_issues_invalid(tmp_path: Path) -> None:
    """load_known_issues raises ValueError for malformed content."""
    known_file = tmp_path / "known.json"
    known_file.write_text('{"historyId": "not a list"}')

    with pytest.raises(ValueError, match="Invalid known issues file"):
        await load_known_issues(known_file)


async def test_find_config(tmp_path: Path) -> None:
    """find_config returns the first known config file name present."""
    assert find_config(tmp_path) is None

    (tmp_path / "results-store.yml").write_text("name: yml\n")
    assert find_config(tmp_path) == tmp_path / "results-store.yml"

    (tmp_path / "results-store.yaml").write_text("name: yaml\n")
    assert find_config(tmp_path) == tmp_path / "results-store.yaml"
