# listing_ai/models/research.py

"""Marketplace research models: listings, rounds, and consensus state."""

import re
from dataclasses import dataclass
from typing import Any

from pydantic import Field, model_validator

from listing_ai.models.base import WireModel


class GroundingSource(WireModel):
    """A provenance reference returned alongside search-grounded text."""

    uri: str
    title: str = ""


class SourceListing(WireModel):
    """One marketplace's reported data for the product."""

    platform: str = ""
    title: str = ""
    description: str = ""
    price: str = ""
    numeric_price: float = 0.0
    url: str | None = None
    dimensions: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _fill_numeric_price(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        price = data.get("price")
        if price is not None and not isinstance(price, str):
            data["price"] = str(price)
        key = "numericPrice" if "numericPrice" in data else "numeric_price"
        current = data.get(key)
        if not isinstance(current, (int, float)) or current <= 0:
            data[key] = cls.extract_price(data.get("price"))
        return data

    @staticmethod
    def extract_price(text: str | None) -> float:
        """Extract a numeric price from a string like 'Rs. 1,299.00'."""
        if not text:
            return 0.0
        cleaned = text.replace(",", "")
        numbers = re.findall(r"\d+\.?\d*", cleaned)
        return float(numbers[0]) if numbers else 0.0


class AggregationRound(WireModel):
    """One complete attempt at gathering and structuring marketplace data."""

    round_number: int = 1
    listings: tuple[SourceListing, ...] = ()
    common_keywords: tuple[str, ...] = ()
    merged_master: str = ""
    confirmed_dimensions: str = ""
    dimension_source_count: int = Field(default=0, ge=0)
    grounding_sources: tuple[GroundingSource, ...] = ()


@dataclass
class ConsensusState:
    """Progress of the bounded research loop for one resolution."""

    iteration: int = 1
    max_iterations: int = 3
    min_sources: int = 3
    best: AggregationRound | None = None
    consensus_reached: bool = False

    def record(self, research: AggregationRound) -> bool:
        """Keep *research* as the best round and report whether it settles consensus.

        The most recent round always replaces the previous one, even when
        it is weaker.
        """
        self.best = research
        self.consensus_reached = (
            research.dimension_source_count >= self.min_sources
        )
        return self.consensus_reached

    @property
    def exhausted(self) -> bool:
        return self.iteration >= self.max_iterations

    @property
    def shortfall_warning(self) -> str | None:
        """Data-quality warning when the loop ended without consensus."""
        if self.consensus_reached or self.best is None:
            return None
        count = self.best.dimension_source_count
        return (
            f"Dimensions corroborated by {count} of "
            f"{self.min_sources} required sources after "
            f"{self.iteration} research attempt(s); "
            "verify dimensions before publishing."
        )
