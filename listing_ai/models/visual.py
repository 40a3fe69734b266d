# listing_ai/models/visual.py

"""Models produced by the consistency verification stage."""

from typing import Any

from pydantic import Field, field_validator, model_validator

from listing_ai.models.base import WireModel


class VisualAttributes(WireModel):
    """Merged description of the visible product across all images."""

    garment_type: str = Field(min_length=1)
    fabric_texture: str = ""
    colors: tuple[str, ...] = Field(min_length=1)
    pattern: str = ""
    neckline: str = ""
    sleeve_style: str = ""
    brand_clues: str = ""
    suggested_name: str = Field(min_length=1)
    visual_signature: str = Field(min_length=1)

    @field_validator("colors", mode="before")
    @classmethod
    def _drop_blank_colors(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple)):
            return tuple(
                str(c).strip() for c in value if str(c).strip()
            )
        return value

    @property
    def search_phrase(self) -> str:
        """Text used to drive marketplace searches."""
        return f"{self.suggested_name} ({self.visual_signature})"


class MatchVerdict(WireModel):
    """Outcome of one same-item verification call."""

    is_match: bool
    confidence: float = Field(ge=0, le=100)
    reason: str = ""
    mismatched_indices: tuple[int, ...] = ()
    merged_metadata: VisualAttributes | None = None

    @model_validator(mode="before")
    @classmethod
    def _discard_metadata_on_mismatch(cls, data: Any) -> Any:
        """Metadata of a rejected image set is never usable."""
        if not isinstance(data, dict):
            return data
        matched = data.get("isMatch", data.get("is_match"))
        if matched is False:
            data = {
                k: v
                for k, v in data.items()
                if k not in ("mergedMetadata", "merged_metadata")
            }
        else:
            data = {
                k: v
                for k, v in data.items()
                if k not in ("mismatchedIndices", "mismatched_indices")
            }
        return data

    @model_validator(mode="after")
    def _require_metadata_on_match(self) -> "MatchVerdict":
        if self.is_match and self.merged_metadata is None:
            raise ValueError("matched verdict is missing mergedMetadata")
        return self
