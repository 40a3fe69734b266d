# listing_ai/services/content_synthesizer.py

"""Three-tone listing synthesis in a single inference call."""

import json
import logging

from listing_ai.config.settings import Settings
from listing_ai.errors import InferenceFailure
from listing_ai.inference.gemini_client import (
    InferenceRequest,
    InferenceService,
    parse_structured,
)
from listing_ai.models.listing import (
    FullListing,
    ListingAttributes,
    ListingDocument,
)

logger = logging.getLogger("listing_ai.synthesizer")

_INSTRUCTION = """\
Generate 3 distinct product listings (casual, professional, luxurious) for the
same product. All three must state the same facts; only the voice differs.

Product details:
{details}

Base them on this merged marketplace draft if provided:
{master}

Return JSON with exactly this structure:
{{
  "casual": {{"description": "...", "fabricCare": "...", "shipping": "...", "moreInfo": {{"Label": "value"}}}},
  "professional": {{"description": "...", "fabricCare": "...", "shipping": "...", "moreInfo": {{"Label": "value"}}}},
  "luxurious": {{"description": "...", "fabricCare": "...", "shipping": "...", "moreInfo": {{"Label": "value"}}}}
}}
moreInfo is a flat table of product attributes as label/value strings.
"""


class ContentSynthesizer:
    """Turn reviewed attributes into a casual / professional / luxurious listing."""

    def __init__(self, inference: InferenceService) -> None:
        self.inference = inference
        self.settings = Settings()

    async def synthesize(
        self,
        attrs: ListingAttributes,
        master_text: str | None = None,
    ) -> FullListing:
        """Generate all three tones, or fail without a partial result."""
        display = attrs.to_display_map()
        request = InferenceRequest(
            instruction=_INSTRUCTION.format(
                details=json.dumps(display, ensure_ascii=False, indent=2),
                master=master_text or "N/A",
            ),
            expect_json=True,
            thinking_budget=self.settings.SYNTHESIS_THINKING_BUDGET,
        )
        logger.info("Synthesizing listing for '%s'", attrs.name)
        try:
            response = await self.inference.generate(request)
            listing = parse_structured(response, FullListing)
        except InferenceFailure as exc:
            exc.stage = "generation"
            raise

        return FullListing(
            casual=_with_attributes(listing.casual, display),
            professional=_with_attributes(listing.professional, display),
            luxurious=_with_attributes(listing.luxurious, display),
        )


def _with_attributes(
    doc: ListingDocument, display: dict[str, str]
) -> ListingDocument:
    """Put the reviewed attributes first; extra synthesized fields follow."""
    merged = dict(display)
    for key, value in doc.more_info.items():
        if value:
            merged.setdefault(key, value)
    return doc.model_copy(update={"more_info": merged})
