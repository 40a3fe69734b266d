# listing_ai/models/listing.py

"""Editable listing attributes and the synthesized multi-tone listing."""

import statistics
from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from listing_ai.config.settings import Settings
from listing_ai.models.base import WireModel
from listing_ai.models.research import AggregationRound
from listing_ai.models.visual import VisualAttributes


class Tone(str, Enum):
    """Stylistic variants produced by one synthesis call."""

    CASUAL = "casual"
    PROFESSIONAL = "professional"
    LUXURIOUS = "luxurious"


FIELD_LABELS: dict[str, str] = {
    "name": "Name",
    "brand": "Brand",
    "category": "Category",
    "fabric": "Fabric",
    "colors": "Colors",
    "price": "Price",
    "dimensions": "Dimensions",
    "items_included": "Items Included",
    "style_code": "Style Code",
    "top_type": "Top Type",
    "bottom_type": "Bottom Type",
    "pattern": "Pattern",
    "occasion": "Occasion",
    "size": "Size",
    "sleeve_length": "Sleeve Length",
    "neck": "Neck",
    "fabric_care": "Fabric Care",
    "shipping_days": "Shipping Days",
}


@dataclass
class ListingAttributes:
    """User-facing product record reviewed before synthesis."""

    name: str = ""
    brand: str = ""
    category: str = ""
    fabric: str = ""
    colors: str = ""
    price: str = ""
    dimensions: str = ""
    items_included: str = ""
    style_code: str = ""
    top_type: str = ""
    bottom_type: str = ""
    pattern: str = ""
    occasion: str = ""
    size: str = ""
    sleeve_length: str = ""
    neck: str = ""
    fabric_care: str = ""
    shipping_days: str = Settings.DEFAULT_SHIPPING_DAYS

    @classmethod
    def field_names(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def seed(
        cls,
        visual: VisualAttributes,
        research: AggregationRound | None,
    ) -> "ListingAttributes":
        """Pre-fill the record from the verified visuals and accepted research."""
        attrs = cls(
            name=visual.suggested_name,
            category=visual.garment_type,
            fabric=visual.fabric_texture,
            colors=", ".join(visual.colors),
            pattern=visual.pattern,
            neck=visual.neckline,
            sleeve_length=visual.sleeve_style,
        )
        if research is not None:
            attrs.dimensions = research.confirmed_dimensions
            attrs.price = _median_price(research)
        return attrs

    def update(self, **changes: str) -> None:
        """Apply user edits; unknown field names are rejected."""
        unknown = set(changes) - set(self.field_names())
        if unknown:
            raise KeyError(
                f"Unknown listing field(s): {', '.join(sorted(unknown))}"
            )
        for key, value in changes.items():
            setattr(self, key, str(value).strip())

    def frozen_copy(self) -> "ListingAttributes":
        """Snapshot handed to the synthesizer for one generation."""
        return replace(self)

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    def to_display_map(self) -> dict[str, str]:
        """Human-readable label → value map, skipping empty fields."""
        return {
            FIELD_LABELS[key]: value
            for key, value in asdict(self).items()
            if value
        }


def _median_price(research: AggregationRound) -> str:
    """Display price of the median-priced listing, or empty."""
    priced = sorted(
        (item for item in research.listings if item.numeric_price > 0),
        key=lambda item: item.numeric_price,
    )
    if not priced:
        return ""
    median = statistics.median_low(item.numeric_price for item in priced)
    for listing in priced:
        if listing.numeric_price == median:
            return listing.price or f"{median:g}"
    return ""


class ListingDocument(WireModel):
    """One tone's output document."""

    description: str = Field(min_length=1)
    fabric_care: str = Field(min_length=1)
    shipping: str = Field(min_length=1)
    more_info: dict[str, str] = {}

    @field_validator("more_info", mode="before")
    @classmethod
    def _stringify_values(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, list):
            # [{"key": ..., "value": ...}] pairs
            value = {
                str(item.get("key", "")): item.get("value", "")
                for item in value
                if isinstance(item, dict)
            }
        if isinstance(value, dict):
            return {
                str(k).strip(): (
                    ", ".join(map(str, v))
                    if isinstance(v, list)
                    else str(v)
                ).strip()
                for k, v in value.items()
                if str(k).strip()
            }
        return value


class FullListing(WireModel):
    """The three tone documents produced together."""

    casual: ListingDocument
    professional: ListingDocument
    luxurious: ListingDocument

    def for_tone(self, tone: Tone | str) -> ListingDocument:
        doc: ListingDocument = getattr(self, Tone(tone).value)
        return doc

    def items(self) -> list[tuple[Tone, ListingDocument]]:
        return [(tone, self.for_tone(tone)) for tone in Tone]
