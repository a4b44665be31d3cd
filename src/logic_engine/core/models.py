"""Shared pydantic base for JSON-shaped definitions and records."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class DslModel(BaseModel):
    """Accepts camelCase keys (``onError``) as well as snake_case (``on_error``).

    ``to_json`` dumps with camelCase aliases, the shape external layers store.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
