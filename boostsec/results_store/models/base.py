"""Shared pydantic configuration for wire-format models."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base model serialized with camelCase keys.

    Fields are populated by either their Python name or their camelCase alias,
    so models can be built in code and parsed from JSON produced by other tools.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        """Serialize to compact JSON with camelCase keys."""
        return self.model_dump_json(by_alias=True, exclude_none=True)
