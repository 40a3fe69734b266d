# listing_ai/services/source_aggregator.py

"""Search-grounded marketplace research, structured into one round."""

import logging

from listing_ai.config.settings import Settings
from listing_ai.errors import InferenceFailure
from listing_ai.filters.deduplicator import ListingDeduplicator
from listing_ai.filters.dimension_consensus import DimensionConsensus
from listing_ai.filters.listing_validator import ListingValidator
from listing_ai.inference.gemini_client import (
    InferenceRequest,
    InferenceService,
    parse_structured,
)
from listing_ai.models.research import AggregationRound
from listing_ai.models.visual import VisualAttributes

logger = logging.getLogger("listing_ai.aggregator")

ROUND_SCHEMA: dict[str, object] = {
    "type": "OBJECT",
    "properties": {
        "listings": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "platform": {"type": "STRING"},
                    "title": {"type": "STRING"},
                    "description": {"type": "STRING"},
                    "price": {"type": "STRING"},
                    "numericPrice": {"type": "NUMBER"},
                    "url": {"type": "STRING"},
                    "dimensions": {"type": "STRING"},
                },
                "required": ["platform", "title", "description"],
            },
        },
        "commonKeywords": {"type": "ARRAY", "items": {"type": "STRING"}},
        "mergedMaster": {"type": "STRING"},
        "confirmedDimensions": {"type": "STRING"},
    },
    "required": ["listings", "commonKeywords", "mergedMaster"],
}

_SEARCH_INSTRUCTION = """\
Act as an e-commerce researcher. Search the web for marketplace listings of
this product: "{phrase}".
Look on {platforms}.
Visible attributes: {details}.

For every listing you actually find, report the platform, the listing title,
its description, the displayed price, the URL and the physical dimensions or
measurements exactly as the listing states them. Only report listings you
found; do not invent listings.
"""

_AGGRESSIVE_SUFFIX = """
This is research attempt {attempt}; earlier attempts did not find enough
independent sources agreeing on the physical dimensions. Search more
aggressively: also try {extended}, size charts and product specification
tables, and prefer listings that state explicit measurements.
"""

_REFORMAT_INSTRUCTION = """\
Convert the marketplace research notes below into JSON with:
- listings: one object per marketplace listing in the notes, with platform,
  title, description, price (as displayed), numericPrice (number, 0 if
  unknown), url and dimensions (as stated, empty if not stated).
- commonKeywords: 5-8 trending SEO keywords shared by the listings.
- mergedMaster: one merged description combining the best parts of all
  listings, optimised for cross-platform sales.
- confirmedDimensions: the dimension value most listings agree on, or an empty
  string if they do not agree.

Research notes:
{notes}
"""


class SourceAggregator:
    """Gather marketplace listings for a verified product in two phases."""

    def __init__(self, inference: InferenceService) -> None:
        self.inference = inference
        self.settings = Settings()

    def _search_instruction(
        self, attrs: VisualAttributes, round_hint: int
    ) -> str:
        details = ", ".join(
            part
            for part in (
                attrs.garment_type,
                attrs.fabric_texture,
                "/".join(attrs.colors),
                attrs.pattern,
                attrs.neckline,
                attrs.sleeve_style,
                attrs.brand_clues,
            )
            if part
        )
        instruction = _SEARCH_INSTRUCTION.format(
            phrase=attrs.search_phrase,
            platforms=", ".join(self.settings.MARKETPLACE_PLATFORMS),
            details=details,
        )
        if round_hint > 1:
            instruction += _AGGRESSIVE_SUFFIX.format(
                attempt=round_hint,
                extended=", ".join(self.settings.EXTENDED_PLATFORMS),
            )
        return instruction

    async def aggregate(
        self, attrs: VisualAttributes, round_hint: int = 1
    ) -> AggregationRound:
        """Run one research round and return it structured.

        Phase 1 is search-grounded free text; phase 2 reformats that text
        into the round schema. A failure in either phase fails the round.
        """
        logger.info(
            "Research round %d for '%s'", round_hint, attrs.suggested_name
        )
        try:
            notes = await self.inference.generate(
                InferenceRequest(
                    instruction=self._search_instruction(attrs, round_hint),
                    web_search=True,
                )
            )
            structured = await self.inference.generate(
                InferenceRequest(
                    instruction=_REFORMAT_INSTRUCTION.format(
                        notes=notes.text
                    ),
                    response_schema=ROUND_SCHEMA,
                )
            )
            raw = parse_structured(structured, AggregationRound)
        except InferenceFailure as exc:
            exc.stage = "research"
            raise

        listings, _ = ListingValidator.validate(list(raw.listings))
        listings, _ = ListingDeduplicator.deduplicate(listings)
        confirmed, count = DimensionConsensus.resolve(
            listings,
            raw.confirmed_dimensions,
            self.settings.DIMENSION_TOLERANCE,
        )

        research = raw.model_copy(
            update={
                "round_number": round_hint,
                "listings": tuple(listings),
                "confirmed_dimensions": confirmed,
                "dimension_source_count": count,
                "grounding_sources": notes.grounding_sources,
            }
        )
        logger.info(
            "Round %d: %d listing(s), dimensions '%s' from %d source(s)",
            round_hint,
            len(research.listings),
            research.confirmed_dimensions,
            research.dimension_source_count,
        )
        return research
