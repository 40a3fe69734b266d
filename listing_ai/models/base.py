# listing_ai/models/base.py

"""Shared pydantic configuration for models exchanged with the Inference Service."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Immutable model that reads and writes camelCase JSON keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        str_strip_whitespace=True,
    )

    def to_wire(self) -> dict[str, object]:
        """Dump to a JSON-compatible dict using the camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)
