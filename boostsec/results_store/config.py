"""Load store configuration and known issues from disk."""

import json
from pathlib import Path

import yaml
from pydantic import TypeAdapter

from boostsec.results_store.models.known import KnownTestFailure
from boostsec.results_store.models.store_config import StoreConfig

CONFIG_FILE_NAMES = ("results-store.yaml", "results-store.yml")

_known_failures_adapter = TypeAdapter(list[KnownTestFailure])


def find_config(directory: Path) -> Path | None:
    """Return the first configuration file found in a directory."""
    for name in CONFIG_FILE_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


async def load_config(config_file: Path) -> StoreConfig:
    """Load store configuration from a YAML file.

    Args:
        config_file: Path to the configuration file

    Returns:
        Parsed configuration

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If YAML is invalid or doesn't match schema

    """
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file}")

    try:
        with config_file.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_file}: {e}") from e

    if data is None:
        raise ValueError(f"Empty config file: {config_file}")

    try:
        config = StoreConfig.model_validate(data)
    except Exception as e:
        raise ValueError(f"Invalid config schema in {config_file}: {e}") from e

    # Relative paths are resolved against the config file's directory.
    base = config_file.parent
    updates = {
        field: base / value
        for field, value in (
            ("history_path", config.history_path),
            ("known_issues_path", config.known_issues_path),
            ("dump", config.dump),
        )
        if value is not None and not value.is_absolute()
    }
    return config.model_copy(update=updates)


async def load_known_issues(known_issues_file: Path) -> list[KnownTestFailure]:
    """Load known failures from a JSON file.

    A missing file means there are no known failures.

    Raises:
        ValueError: If the file isn't a valid list of known failures

    """
    if not known_issues_file.exists():
        return []

    try:
        data = json.loads(known_issues_file.read_text())
        return _known_failures_adapter.validate_python(data)
    except Exception as e:
        raise ValueError(f"Invalid known issues file {known_issues_file}: {e}") from e
