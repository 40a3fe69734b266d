# tests/test_cli_runner.py

"""Tests for the headless CLI runner."""

import io
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

from listing_ai.cli.runner import cli_generate, load_images, parse_overrides
from listing_ai.config.settings import Settings
from listing_ai.errors import InputViolation
from listing_ai.models.listing import FullListing
from listing_ai.models.research import AggregationRound, SourceListing
from listing_ai.models.visual import MatchVerdict, VisualAttributes
from listing_ai.services.consensus_resolver import ConsensusResolver
from listing_ai.services.pipeline_orchestrator import PipelineOrchestrator

VISUAL = VisualAttributes(
    garment_type="Dupatta",
    colors=("Mustard",),
    suggested_name="Mustard Bandhani Dupatta",
    visual_signature="mustard bandhani dupatta",
)


def _orchestrator(verdict: MatchVerdict) -> tuple[PipelineOrchestrator, MagicMock]:
    doc = {
        "description": "Bright bandhani dupatta.",
        "fabricCare": "Dry clean.",
        "shipping": "3-5 days.",
        "moreInfo": {},
    }
    verifier = MagicMock()
    verifier.verify = AsyncMock(return_value=verdict)
    aggregator = MagicMock()
    aggregator.aggregate = AsyncMock(
        return_value=AggregationRound(
            listings=(SourceListing(platform="Meesho", title="Dupatta", price="₹399"),),
            confirmed_dimensions="225 x 110 cm",
            dimension_source_count=3,
        )
    )
    synthesizer = MagicMock()
    synthesizer.synthesize = AsyncMock(
        return_value=FullListing.model_validate(
            {"casual": doc, "professional": doc, "luxurious": doc}
        )
    )
    inference = MagicMock()
    inference.close = AsyncMock()
    orch = PipelineOrchestrator(
        inference=inference,
        verifier=verifier,
        resolver=ConsensusResolver(aggregator),
        synthesizer=synthesizer,
    )
    return orch, synthesizer


class _ImageDirMixin(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = Path(tempfile.mkdtemp())

    def _write(self, name: str, data: bytes = b"\xff\xd8\xff") -> str:
        path = self.tmp / name
        path.write_bytes(data)
        return str(path)


class TestLoadImages(_ImageDirMixin):
    """load_images file checks."""

    def test_loads_supported_images(self) -> None:
        assets = load_images([self._write("a.jpg"), self._write("b.png")])
        self.assertEqual([a.media_type for a in assets], ["image/jpeg", "image/png"])
        self.assertEqual(assets[0].filename, "a.jpg")

    def test_missing_file(self) -> None:
        with self.assertRaises(InputViolation):
            load_images([str(self.tmp / "nope.jpg")])

    def test_unsupported_type(self) -> None:
        with self.assertRaises(InputViolation):
            load_images([self._write("notes.txt", b"hi")])

    def test_oversized_image(self) -> None:
        with patch.object(Settings, "MAX_IMAGE_BYTES", 2):
            with self.assertRaises(InputViolation):
                load_images([self._write("big.jpg", b"1234")])


class TestParseOverrides(unittest.TestCase):
    """parse_overrides field mapping."""

    def test_valid_pairs(self) -> None:
        self.assertEqual(
            parse_overrides(["brand=Fabindia", "items-included = Dupatta only"]),
            {"brand": "Fabindia", "items_included": "Dupatta only"},
        )

    def test_none(self) -> None:
        self.assertEqual(parse_overrides(None), {})

    def test_unknown_field_exits(self) -> None:
        with self.assertRaises(SystemExit):
            parse_overrides(["weight=2kg"])

    def test_missing_equals_exits(self) -> None:
        with self.assertRaises(SystemExit):
            parse_overrides(["brand"])


class TestCliGenerate(_ImageDirMixin, unittest.IsolatedAsyncioTestCase):
    """cli_generate end-to-end with scripted pipeline components."""

    def setUp(self) -> None:
        super().setUp()
        self.match = MatchVerdict(
            is_match=True, confidence=90, reason="same", merged_metadata=VISUAL
        )

    @patch("sys.stdout", new_callable=io.StringIO)
    async def test_json_output_and_saved_files(self, stdout: io.StringIO) -> None:
        orch, synthesizer = _orchestrator(self.match)
        out_dir = self.tmp / "out"
        code = await cli_generate(
            [self._write("a.jpg")],
            overrides={"brand": "Jaipur Prints"},
            output_dir=str(out_dir),
            orchestrator=orch,
        )

        self.assertEqual(code, 0)
        data = json.loads(stdout.getvalue())
        self.assertEqual(data["stage"], "ready")
        self.assertEqual(data["attributes"]["brand"], "Jaipur Prints")
        self.assertEqual(data["attributes"]["dimensions"], "225 x 110 cm")
        self.assertEqual(synthesizer.synthesize.await_args.args[0].brand, "Jaipur Prints")
        self.assertEqual(len(list(out_dir.glob("*.json"))), 1)
        self.assertEqual(len(list(out_dir.glob("*_professional.md"))), 1)

    @patch("sys.stdout", new_callable=io.StringIO)
    async def test_markdown_output(self, stdout: io.StringIO) -> None:
        orch, _ = _orchestrator(self.match)
        code = await cli_generate(
            [self._write("a.jpg")],
            output_format="markdown",
            tone="casual",
            orchestrator=orch,
        )
        self.assertEqual(code, 0)
        self.assertIn("## Description", stdout.getvalue())
        self.assertIn("_Tone: casual_", stdout.getvalue())

    async def test_mismatch_exit_code(self) -> None:
        verdict = MatchVerdict(
            is_match=False, confidence=80, reason="different", mismatched_indices=(1,)
        )
        orch, synthesizer = _orchestrator(verdict)
        code = await cli_generate(
            [self._write("a.jpg"), self._write("b.jpg")], orchestrator=orch
        )
        self.assertEqual(code, 1)
        synthesizer.synthesize.assert_not_awaited()

    async def test_too_many_images(self) -> None:
        orch, _ = _orchestrator(self.match)
        paths = [self._write(f"{i}.jpg") for i in range(6)]
        code = await cli_generate(paths, orchestrator=orch)
        self.assertEqual(code, 1)

    async def test_missing_file(self) -> None:
        code = await cli_generate([str(self.tmp / "missing.jpg")])
        self.assertEqual(code, 1)


if __name__ == "__main__":
    unittest.main()
