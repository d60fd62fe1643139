"""Models shared with the quality gate."""

from typing import Any

from pydantic import Field

from boostsec.results_store.models.base import WireModel


class QualityGateValidationResult(WireModel):
    """Outcome of one quality gate rule."""

    success: bool
    rule: str = Field(..., description="Rule id, optionally prefixed by ruleset")
    message: str = ""
    expected: Any = None
    actual: Any = None
    environment: str | None = None


class ExitCode(WireModel):
    """Exit code of the test process and the code reported after gating."""

    original: int
    actual: int | None = None


class QualityGateState:
    """Per-rule state kept between quality gate validations."""

    def __init__(self) -> None:
        """Initialize empty state."""
        self._state: dict[str, Any] = {}

    def set_result(self, rule: str, value: Any) -> None:
        """Store the value for a rule."""
        self._state[rule] = value

    def get_result(self, rule: str) -> Any:
        """Return the stored value for a rule, or None."""
        return self._state.get(rule)
