# listing_ai/services/consistency_verifier.py

"""Same-item verification across the submitted photographs."""

import logging
from collections.abc import Sequence

from listing_ai.errors import InferenceFailure
from listing_ai.inference.gemini_client import (
    InferenceRequest,
    InferenceService,
    parse_structured,
)
from listing_ai.models.image_asset import ImageAsset
from listing_ai.models.visual import MatchVerdict

logger = logging.getLogger("listing_ai.verifier")

_VISUAL_SCHEMA: dict[str, object] = {
    "type": "OBJECT",
    "properties": {
        "garmentType": {"type": "STRING"},
        "fabricTexture": {"type": "STRING"},
        "colors": {"type": "ARRAY", "items": {"type": "STRING"}},
        "pattern": {"type": "STRING"},
        "neckline": {"type": "STRING"},
        "sleeveStyle": {"type": "STRING"},
        "brandClues": {"type": "STRING"},
        "suggestedName": {"type": "STRING"},
        "visualSignature": {"type": "STRING"},
    },
    "required": [
        "garmentType",
        "colors",
        "suggestedName",
        "visualSignature",
    ],
}

VERDICT_SCHEMA: dict[str, object] = {
    "type": "OBJECT",
    "properties": {
        "isMatch": {"type": "BOOLEAN"},
        "confidence": {"type": "NUMBER"},
        "reason": {"type": "STRING"},
        "mismatchedIndices": {
            "type": "ARRAY",
            "items": {"type": "INTEGER"},
        },
        "mergedMetadata": _VISUAL_SCHEMA,
    },
    "required": ["isMatch", "confidence", "reason", "mismatchedIndices"],
}

_INSTRUCTION = """\
You are given {count} photograph(s), numbered 0 to {last} in the order attached.
Decide whether they all show the exact same physical product (same item, not
just a similar one). Minor differences in lighting, angle, background or colour
shade caused by the camera are acceptable; a different design, print, cut,
colour or product is not.

Return JSON with:
- isMatch: true only if every photograph shows the same item.
- confidence: 0-100.
- reason: one or two sentences justifying the decision.
- mismatchedIndices: indices of the photographs that do not show the same item
  as the majority (empty when isMatch is true).
- mergedMetadata (required when isMatch is true): attributes visible across the
  photographs for an e-commerce listing: garmentType, fabricTexture, colors
  (array), pattern, neckline, sleeveStyle, brandClues, suggestedName (an SEO
  title) and visualSignature (a compact fingerprint of the distinguishing
  visible features, suitable as a marketplace search query).
"""


class ConsistencyVerifier:
    """Ask the Inference Service whether a set of images shows one product."""

    def __init__(self, inference: InferenceService) -> None:
        self.inference = inference

    async def verify(
        self, images: Sequence[ImageAsset]
    ) -> MatchVerdict:
        """Judge same-item consistency and extract merged attributes.

        The service's ``isMatch`` is authoritative. Out-of-range outlier
        indices are discarded.
        """
        request = InferenceRequest(
            instruction=_INSTRUCTION.format(
                count=len(images), last=len(images) - 1
            ),
            images=tuple(images),
            response_schema=VERDICT_SCHEMA,
        )
        logger.info("Verifying %d image(s)", len(images))
        try:
            response = await self.inference.generate(request)
            verdict = parse_structured(response, MatchVerdict)
        except InferenceFailure as exc:
            exc.stage = "verification"
            raise

        in_range = tuple(
            sorted(
                {i for i in verdict.mismatched_indices if 0 <= i < len(images)}
            )
        )
        if in_range != verdict.mismatched_indices:
            logger.warning(
                "Discarded out-of-range mismatch indices %s",
                verdict.mismatched_indices,
            )
            verdict = verdict.model_copy(
                update={"mismatched_indices": in_range}
            )

        logger.info(
            "Verification result: match=%s confidence=%.0f flagged=%s",
            verdict.is_match,
            verdict.confidence,
            list(verdict.mismatched_indices),
        )
        return verdict
