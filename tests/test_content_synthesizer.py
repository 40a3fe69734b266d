# tests/test_content_synthesizer.py

"""Tests for ContentSynthesizer."""

import json
import unittest
from unittest.mock import AsyncMock

from listing_ai.errors import InferenceFailure
from listing_ai.inference.gemini_client import InferenceResponse
from listing_ai.models.listing import ListingAttributes, Tone
from listing_ai.services.content_synthesizer import ContentSynthesizer


def _doc(description: str, more_info: dict[str, str] | None = None) -> dict[str, object]:
    return {
        "description": description,
        "fabricCare": "Dry clean only.",
        "shipping": "Ships in 3-5 days.",
        "moreInfo": more_info or {},
    }


def _service(payload: object) -> AsyncMock:
    service = AsyncMock()
    service.generate.return_value = InferenceResponse(json.dumps(payload))
    return service


ATTRS = ListingAttributes(
    name="Red Silk Saree",
    fabric="Silk",
    dimensions="550 x 110 cm",
    price="₹4,999",
)


class TestContentSynthesizer(unittest.IsolatedAsyncioTestCase):
    """ContentSynthesizer.synthesize behaviour."""

    async def test_three_tones_returned(self) -> None:
        service = _service(
            {
                "casual": _doc("Twirl-ready!"),
                "professional": _doc("A pure silk saree."),
                "luxurious": _doc("An heirloom drape."),
            }
        )
        listing = await ContentSynthesizer(service).synthesize(ATTRS)
        self.assertEqual(listing.for_tone(Tone.CASUAL).description, "Twirl-ready!")
        self.assertEqual(listing.luxurious.fabric_care, "Dry clean only.")

    async def test_single_request_with_attributes(self) -> None:
        service = _service(
            {"casual": _doc("a"), "professional": _doc("b"), "luxurious": _doc("c")}
        )
        await ContentSynthesizer(service).synthesize(ATTRS, "merged master draft")
        self.assertEqual(service.generate.await_count, 1)
        request = service.generate.await_args.args[0]
        self.assertIn("550 x 110 cm", request.instruction)
        self.assertIn("merged master draft", request.instruction)
        self.assertTrue(request.expect_json)
        self.assertIsNotNone(request.thinking_budget)
        self.assertEqual(request.images, ())

    async def test_reviewed_attributes_override_more_info(self) -> None:
        service = _service(
            {
                "casual": _doc("a", {"Dimensions": "500 x 100 cm", "Occasion": "Wedding"}),
                "professional": _doc("b"),
                "luxurious": _doc("c"),
            }
        )
        listing = await ContentSynthesizer(service).synthesize(ATTRS)
        info = listing.casual.more_info
        self.assertEqual(info["Dimensions"], "550 x 110 cm")
        self.assertEqual(info["Occasion"], "Wedding")
        self.assertEqual(listing.professional.more_info["Price"], "₹4,999")

    async def test_missing_tone_fails_whole_generation(self) -> None:
        service = _service({"casual": _doc("a"), "professional": _doc("b")})
        with self.assertRaises(InferenceFailure) as ctx:
            await ContentSynthesizer(service).synthesize(ATTRS)
        self.assertEqual(ctx.exception.stage, "generation")

    async def test_transport_failure_is_generation_failure(self) -> None:
        service = AsyncMock()
        service.generate.side_effect = InferenceFailure("timed out")
        with self.assertRaises(InferenceFailure) as ctx:
            await ContentSynthesizer(service).synthesize(ATTRS)
        self.assertEqual(str(ctx.exception), "[generation] timed out")


if __name__ == "__main__":
    unittest.main()
