# tests/test_consistency_verifier.py

"""Tests for ConsistencyVerifier."""

import json
import unittest
from unittest.mock import AsyncMock

from listing_ai.errors import InferenceFailure
from listing_ai.inference.gemini_client import InferenceResponse
from listing_ai.models.image_asset import ImageAsset
from listing_ai.services.consistency_verifier import (
    VERDICT_SCHEMA,
    ConsistencyVerifier,
)

METADATA = {
    "garmentType": "Kurta",
    "colors": ["Navy"],
    "suggestedName": "Navy Kurta",
    "visualSignature": "navy kurta floral",
}


def _images(count: int) -> list[ImageAsset]:
    return [
        ImageAsset(data=b"img%d" % i, media_type="image/jpeg", filename=f"{i}.jpg")
        for i in range(count)
    ]


def _inference(payload: object) -> AsyncMock:
    service = AsyncMock()
    service.generate.return_value = InferenceResponse(json.dumps(payload))
    return service


class TestConsistencyVerifier(unittest.IsolatedAsyncioTestCase):
    """ConsistencyVerifier.verify behaviour."""

    async def test_match_returns_metadata(self) -> None:
        service = _inference(
            {
                "isMatch": True,
                "confidence": 93,
                "reason": "Same print and cut",
                "mismatchedIndices": [],
                "mergedMetadata": METADATA,
            }
        )
        verdict = await ConsistencyVerifier(service).verify(_images(3))
        self.assertTrue(verdict.is_match)
        assert verdict.merged_metadata is not None
        self.assertEqual(verdict.merged_metadata.suggested_name, "Navy Kurta")

    async def test_request_carries_images_and_schema(self) -> None:
        service = _inference(
            {"isMatch": True, "confidence": 90, "reason": "", "mergedMetadata": METADATA}
        )
        images = _images(2)
        await ConsistencyVerifier(service).verify(images)
        request = service.generate.await_args.args[0]
        self.assertEqual(request.images, tuple(images))
        self.assertIs(request.response_schema, VERDICT_SCHEMA)
        self.assertFalse(request.web_search)
        self.assertIn("numbered 0 to 1", request.instruction)

    async def test_mismatch_flags_indices(self) -> None:
        service = _inference(
            {
                "isMatch": False,
                "confidence": 88,
                "reason": "Image 2 shows a different kurta",
                "mismatchedIndices": [2],
            }
        )
        verdict = await ConsistencyVerifier(service).verify(_images(3))
        self.assertFalse(verdict.is_match)
        self.assertEqual(verdict.mismatched_indices, (2,))
        self.assertIsNone(verdict.merged_metadata)

    async def test_out_of_range_indices_discarded(self) -> None:
        service = _inference(
            {
                "isMatch": False,
                "confidence": 70,
                "reason": "mixed",
                "mismatchedIndices": [1, 7, -1, 1],
            }
        )
        verdict = await ConsistencyVerifier(service).verify(_images(2))
        self.assertEqual(verdict.mismatched_indices, (1,))

    async def test_invalid_output_is_verification_failure(self) -> None:
        service = AsyncMock()
        service.generate.return_value = InferenceResponse("not json")
        with self.assertRaises(InferenceFailure) as ctx:
            await ConsistencyVerifier(service).verify(_images(1))
        self.assertEqual(ctx.exception.stage, "verification")

    async def test_transport_failure_is_tagged(self) -> None:
        service = AsyncMock()
        service.generate.side_effect = InferenceFailure("HTTP 500")
        with self.assertRaises(InferenceFailure) as ctx:
            await ConsistencyVerifier(service).verify(_images(1))
        self.assertEqual(ctx.exception.stage, "verification")


if __name__ == "__main__":
    unittest.main()
