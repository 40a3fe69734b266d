# tests/test_app.py

"""Smoke tests for the TUI application using Textual's Pilot."""

import asyncio
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

from textual.widgets import Button, DataTable, Input, Static, TabbedContent

from listing_ai.models.listing import FullListing, ListingAttributes
from listing_ai.models.research import AggregationRound, SourceListing
from listing_ai.models.visual import MatchVerdict, VisualAttributes
from listing_ai.services.consensus_resolver import ConsensusResolver
from listing_ai.services.pipeline_orchestrator import (
    PipelineOrchestrator,
    PipelineStage,
)
from listing_ai.ui.app import ListingApp

VISUAL = VisualAttributes(
    garment_type="Lehenga",
    fabric_texture="Georgette",
    colors=("Maroon", "Gold"),
    suggested_name="Maroon Georgette Lehenga",
    visual_signature="maroon lehenga gold zari",
)


def _orchestrator(verdict: MatchVerdict | None = None) -> PipelineOrchestrator:
    doc = {
        "description": "A festive lehenga.",
        "fabricCare": "Dry clean.",
        "shipping": "3-5 days.",
        "moreInfo": {"Fabric": "Georgette"},
    }
    verifier = MagicMock()
    verifier.verify = AsyncMock(
        return_value=verdict
        or MatchVerdict(
            is_match=True, confidence=95, reason="same", merged_metadata=VISUAL
        )
    )
    aggregator = MagicMock()
    aggregator.aggregate = AsyncMock(
        return_value=AggregationRound(
            listings=(
                SourceListing(platform="Ajio.com", title="Lehenga", price="₹5,999", dimensions="100 x 40 cm"),
                SourceListing(platform="Myntra.com", title="Lehenga", price="₹6,499", dimensions="102 x 41 cm"),
            ),
            confirmed_dimensions="100 x 40 cm",
            dimension_source_count=2,
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
    return PipelineOrchestrator(
        inference=inference,
        verifier=verifier,
        resolver=ConsensusResolver(aggregator),
        synthesizer=synthesizer,
    )


class TestListingApp(unittest.IsolatedAsyncioTestCase):
    """Smoke tests for the Textual TUI."""

    def setUp(self) -> None:
        self.tmp = Path(tempfile.mkdtemp())

    def _image(self, name: str = "front.jpg") -> str:
        path = self.tmp / name
        path.write_bytes(b"\xff\xd8\xff")
        return str(path)

    async def test_app_composes_without_crash(self) -> None:
        """Verify the app starts and renders all widgets."""
        app = ListingApp(_orchestrator())
        async with app.run_test() as pilot:
            app.query_one("#images_input", Input)
            app.query_one("#listings_table", DataTable)
            app.query_one("#status", Static)
            app.query_one("#tabs", TabbedContent)
            for tone in ("casual", "professional", "luxurious"):
                app.query_one(f"#listing_{tone}", Static)
            self.assertTrue(app.query_one("#generate_btn", Button).disabled)
            self.assertTrue(app.query_one("#prune_btn", Button).disabled)
            await pilot.pause()

    async def test_form_has_input_per_attribute(self) -> None:
        """Every listing attribute gets an editable input."""
        app = ListingApp(_orchestrator())
        async with app.run_test() as pilot:
            for name in ListingAttributes.field_names():
                app.query_one(f"#attr_{name}", Input)
            await pilot.pause()

    async def test_empty_paths_shows_warning(self) -> None:
        """Submitting without paths does not start a run."""
        app = ListingApp(_orchestrator())
        async with app.run_test(notifications=True) as pilot:
            await app.perform_submit()
            await pilot.pause()
            self.assertEqual(app.orchestrator.state.stage, PipelineStage.IDLE)

    async def test_submit_populates_research_and_form(self) -> None:
        """A successful run fills the listings table and attribute form."""
        app = ListingApp(_orchestrator())
        async with app.run_test(notifications=True) as pilot:
            app.query_one("#images_input", Input).value = (
                f"{self._image('a.jpg')}, {self._image('b.jpg')}"
            )
            await app.perform_submit()
            await pilot.pause()

            state = app.orchestrator.state
            self.assertEqual(state.stage, PipelineStage.AWAITING_USER_REVIEW)
            self.assertEqual(app.query_one("#listings_table", DataTable).row_count, 2)
            self.assertEqual(
                app.query_one("#attr_name", Input).value,
                "Maroon Georgette Lehenga",
            )
            self.assertEqual(
                app.query_one("#attr_dimensions", Input).value, "100 x 40 cm"
            )
            self.assertFalse(app.query_one("#generate_btn", Button).disabled)

    async def test_generate_uses_form_edits(self) -> None:
        """Form values are pushed into the run before generation."""
        orch = _orchestrator()
        app = ListingApp(orch)
        async with app.run_test(notifications=True) as pilot:
            app.query_one("#images_input", Input).value = self._image()
            await app.perform_submit()
            app.query_one("#attr_brand", Input).value = "Sabyasachi"
            await app.perform_generate()
            await pilot.pause()

            state = orch.state
            self.assertEqual(state.stage, PipelineStage.READY)
            assert state.generated_from is not None
            self.assertEqual(state.generated_from.brand, "Sabyasachi")
            self.assertEqual(
                app.query_one("#tabs", TabbedContent).active, "listing_tab"
            )

    async def test_generate_ignored_before_review(self) -> None:
        """The generate action does nothing while no attributes exist."""
        orch = _orchestrator()
        app = ListingApp(orch)
        async with app.run_test(notifications=True) as pilot:
            app.action_generate()
            await pilot.pause()
            self.assertEqual(orch.state.stage, PipelineStage.IDLE)
            orch.synthesizer.synthesize.assert_not_awaited()

    async def test_generate_during_research_keeps_run_alive(self) -> None:
        """Pressing generate mid-research must not cancel the running step."""
        orch = _orchestrator()
        gate = asyncio.Event()

        async def verify(_images: object) -> MatchVerdict:
            await gate.wait()
            return MatchVerdict(
                is_match=True, confidence=95, reason="same", merged_metadata=VISUAL
            )

        orch.verifier.verify = verify
        app = ListingApp(orch)
        async with app.run_test(notifications=True) as pilot:
            app.query_one("#images_input", Input).value = self._image()
            app.run_worker(app.perform_submit(), exclusive=True, group="pipeline")
            for _ in range(500):
                if orch.state.stage is PipelineStage.VERIFYING:
                    break
                await asyncio.sleep(0.01)
            self.assertEqual(orch.state.stage, PipelineStage.VERIFYING)

            app.action_generate()
            gate.set()
            await app.workers.wait_for_complete()
            await pilot.pause()

            self.assertEqual(orch.state.stage, PipelineStage.AWAITING_USER_REVIEW)
            self.assertFalse(app.query_one("#submit_btn", Button).disabled)
            orch.synthesizer.synthesize.assert_not_awaited()

    async def test_mismatch_enables_prune(self) -> None:
        """Mismatched photos enable the prune-and-retry action."""
        verdict = MatchVerdict(
            is_match=False, confidence=80, reason="two items", mismatched_indices=(1,)
        )
        app = ListingApp(_orchestrator(verdict))
        async with app.run_test(notifications=True) as pilot:
            app.query_one("#images_input", Input).value = (
                f"{self._image('a.jpg')},{self._image('b.jpg')}"
            )
            await app.perform_submit()
            await pilot.pause()
            self.assertEqual(app.orchestrator.state.stage, PipelineStage.MISMATCHED)
            self.assertFalse(app.query_one("#prune_btn", Button).disabled)

    async def test_save_without_listing_is_noop(self) -> None:
        """Saving before generation only notifies."""
        app = ListingApp(_orchestrator())
        async with app.run_test(notifications=True) as pilot:
            app.action_save()
            await pilot.pause()
            self.assertEqual(list(app.file_manager.results_dir.glob("*.json")), [])


if __name__ == "__main__":
    unittest.main()
