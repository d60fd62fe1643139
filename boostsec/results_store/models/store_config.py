"""Configuration models for the results store and the history log."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from boostsec.results_store.models.test_result import TestLabel


class LabelMatcher(BaseModel):
    """Declarative environment matcher.

    A result matches when, for every configured label name, it carries a label
    with one of the accepted values.
    """

    labels: dict[str, str | list[str]] = Field(
        ..., description="Label name to accepted value(s)"
    )

    def __call__(self, result: Any) -> bool:
        """Check whether the result's labels satisfy the matcher."""
        labels: list[TestLabel] = getattr(result, "labels", None) or []
        for name, accepted in self.labels.items():
            values = [accepted] if isinstance(accepted, str) else accepted
            if not any(
                label.name == name and label.value in values for label in labels
            ):
                return False
        return True


class EnvironmentConfig(BaseModel):
    """Configuration of a single named environment."""

    matcher: LabelMatcher | Callable[[Any], bool] = Field(
        ..., description="Predicate selecting results of the environment"
    )
    variables: dict[str, str] = Field(
        default_factory=dict, description="Environment-specific report variables"
    )


class StoreConfig(BaseModel):
    """Configuration consumed by the store and the report session."""

    name: str = Field(default="Allure Report", description="Report name")
    history_path: Path | None = Field(
        default=None, description="Path to the history log file"
    )
    history_limit: int | None = Field(
        default=None, ge=0, description="Number of history entries to keep"
    )
    default_labels: dict[str, str | list[str]] = Field(
        default_factory=dict, description="Labels added when absent from a result"
    )
    environment: str | None = Field(
        default=None, description="Force every result into this environment"
    )
    environments: dict[str, EnvironmentConfig] = Field(
        default_factory=dict, description="Named environments, matched in order"
    )
    variables: dict[str, str] = Field(
        default_factory=dict, description="Report-wide variables"
    )
    known_issues_path: Path | None = Field(
        default=None, description="Path to the known issues JSON file"
    )
    dump: Path | None = Field(
        default=None, description="Write a state dump here instead of history"
    )


def match_environment(
    environments: dict[str, EnvironmentConfig], result: Any
) -> str | None:
    """Return the first environment whose matcher accepts the result."""
    for name, config in environments.items():
        if config.matcher(result):
            return name
    return None
