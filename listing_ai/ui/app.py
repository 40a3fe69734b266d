# listing_ai/ui/app.py

"""Terminal UI for the listing_ai pipeline."""

import logging
from typing import cast

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, VerticalScroll
from textual.widgets import (
    Button,
    DataTable,
    Footer,
    Header,
    Input,
    Label,
    Static,
    TabbedContent,
    TabPane,
)

from listing_ai.cli.runner import load_images
from listing_ai.errors import InputViolation, PipelineStateError
from listing_ai.models.listing import FIELD_LABELS, ListingAttributes, Tone
from listing_ai.services.pipeline_orchestrator import (
    PipelineOrchestrator,
    PipelineStage,
    RunState,
)
from listing_ai.storage.file_manager import FileManager

logger = logging.getLogger("listing_ai.ui")

_BUSY_STAGES = (
    PipelineStage.VERIFYING,
    PipelineStage.AGGREGATING,
    PipelineStage.RESOLVING,
    PipelineStage.SYNTHESIZING,
)

_REVIEW_STAGES = (
    PipelineStage.AWAITING_USER_REVIEW,
    PipelineStage.READY,
)


class ListingApp(App[object]):
    """Terminal UI: photos in, three-tone listing out."""

    CSS = """
    #search_bar { height: auto; }
    #images_input { width: 1fr; }
    #actions { height: auto; }
    #status { padding: 0 1; color: $accent; }
    .attr_row { height: auto; }
    .attr_row Label { width: 18; padding: 1 1 0 0; }
    .attr_row Input { width: 1fr; }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("g", "generate", "Generate"),
        Binding("s", "save", "Save"),
        Binding("x", "reset", "Start Over"),
    ]

    def __init__(
        self, orchestrator: PipelineOrchestrator | None = None
    ) -> None:
        super().__init__()
        self.orchestrator = orchestrator or PipelineOrchestrator()
        self.file_manager = FileManager()
        self.selected_tone: Tone = Tone.PROFESSIONAL
        self._unsubscribe = self.orchestrator.subscribe(self._on_state)

    def compose(self) -> ComposeResult:
        """Build the widget tree for the TUI."""
        attr_rows = [
            Horizontal(
                Label(FIELD_LABELS[name]),
                Input(id=f"attr_{name}"),
                classes="attr_row",
            )
            for name in ListingAttributes.field_names()
        ]
        tone_panes = [
            TabPane(
                tone.value.capitalize(),
                VerticalScroll(Static("", id=f"listing_{tone.value}")),
                id=f"tone_{tone.value}",
            )
            for tone in Tone
        ]

        yield Header()
        yield Container(
            Static("🛍  Photo → Listing", id="title"),
            Horizontal(
                Input(
                    placeholder="Image paths, comma-separated (1-5)",
                    id="images_input",
                ),
                Button("Analyse", variant="primary", id="submit_btn"),
                id="search_bar",
            ),
            Static("Ready", id="status"),
            Horizontal(
                Button("Remove flagged & retry", id="prune_btn", disabled=True),
                Button("Generate", variant="success", id="generate_btn", disabled=True),
                Button("Start over", id="reset_btn"),
                id="actions",
            ),
            TabbedContent(
                TabPane(
                    "Research",
                    DataTable(
                        id="listings_table",
                        zebra_stripes=True,
                        cursor_type="row",
                    ),
                    Static("", id="research_summary"),
                    id="research_tab",
                ),
                TabPane(
                    "Details",
                    VerticalScroll(*attr_rows, id="attributes_form"),
                    id="details_tab",
                ),
                TabPane(
                    "Listing",
                    TabbedContent(
                        *tone_panes,
                        id="tone_tabs",
                        initial=f"tone_{Tone.PROFESSIONAL.value}",
                    ),
                    id="listing_tab",
                ),
                id="tabs",
            ),
            id="main_container",
        )
        yield Footer()

    def on_mount(self) -> None:
        """Configure the listings table columns on startup."""
        table = cast(
            DataTable[str | Text],
            self.query_one("#listings_table", DataTable),
        )
        table.add_columns("Platform", "Title", "Price", "Dimensions")

    async def action_quit(self) -> None:
        """Cancel any running step and release the HTTP session before exit."""
        self._unsubscribe()
        await self.orchestrator.close()
        self.exit()

    # ── Event handlers ───────────────────────────────────

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        """Handle button click events."""
        button_id = event.button.id or ""
        if button_id == "submit_btn":
            self.run_worker(
                self.perform_submit(), exclusive=True, group="pipeline"
            )
        elif button_id == "prune_btn":
            self.run_worker(
                self.perform_prune(), exclusive=True, group="pipeline"
            )
        elif button_id == "generate_btn":
            self.action_generate()
        elif button_id == "reset_btn":
            self.action_reset()

    def on_tabbed_content_tab_activated(
        self, event: TabbedContent.TabActivated
    ) -> None:
        """Track the tone tab in view; it is the tone that gets saved."""
        pane_id = event.pane.id or ""
        if pane_id.startswith("tone_"):
            self.selected_tone = Tone(pane_id.removeprefix("tone_"))

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        """Handle Enter key in the image path input."""
        if event.input.id == "images_input":
            self.run_worker(
                self.perform_submit(), exclusive=True, group="pipeline"
            )

    # ── Pipeline actions ─────────────────────────────────

    async def perform_submit(self) -> None:
        """Load the entered image paths and start a fresh run."""
        raw = self.query_one("#images_input", Input).value
        paths = [p.strip() for p in raw.split(",") if p.strip()]
        if not paths:
            self.notify("Enter at least one image path", severity="warning")
            return
        try:
            images = load_images(paths)
            await self.orchestrator.submit_images(images)
        except InputViolation as exc:
            self.notify(str(exc), severity="error")
            return
        self.render_state()

    async def perform_prune(self) -> None:
        """Drop the images flagged as inconsistent and resubmit."""
        try:
            await self.orchestrator.resubmit_without()
        except (InputViolation, PipelineStateError) as exc:
            self.notify(str(exc), severity="error")
            return
        self.render_state()

    async def perform_generate(self) -> None:
        """Push form edits into the run and synthesize the listing."""
        try:
            self.orchestrator.update_attributes(**self._form_values())
            await self.orchestrator.generate()
        except PipelineStateError as exc:
            self.notify(str(exc), severity="warning")
            return
        self.render_state()
        if self.orchestrator.state.stage is PipelineStage.READY:
            self.query_one("#tabs", TabbedContent).active = "listing_tab"

    def action_generate(self) -> None:
        # Only from review; an exclusive worker would cancel a running step
        if (
            self.orchestrator.busy
            or self.orchestrator.state.stage not in _REVIEW_STAGES
        ):
            self.notify("Nothing to generate yet", severity="warning")
            return
        self.run_worker(
            self.perform_generate(), exclusive=True, group="pipeline"
        )

    def action_reset(self) -> None:
        self.run_worker(self._reset(), exclusive=True, group="pipeline")

    async def _reset(self) -> None:
        await self.orchestrator.reset()
        self.render_state()

    def action_save(self) -> None:
        """Save the finished run as JSON and Markdown."""
        state = self.orchestrator.state
        if state.listing is None:
            self.notify("No listing to save", severity="warning")
            return
        try:
            path, _ = self.file_manager.save_run(state, self.selected_tone)
            self.notify(f"Saved to {path}")
        except OSError as e:
            logger.error("Failed to save listing", exc_info=True)
            self.notify(f"Save failed: {e}", severity="error")

    # ── Rendering ────────────────────────────────────────

    def _form_values(self) -> dict[str, str]:
        return {
            name: self.query_one(f"#attr_{name}", Input).value
            for name in ListingAttributes.field_names()
        }

    def _on_state(self, state: RunState) -> None:
        """Orchestrator listener: keep status and buttons in sync."""
        if not self.is_running:
            return
        self.query_one("#status", Static).update(state.progress)
        self.query_one("#prune_btn", Button).disabled = (
            state.stage is not PipelineStage.MISMATCHED
        )
        self.query_one("#generate_btn", Button).disabled = (
            state.stage not in _REVIEW_STAGES
        )
        self.query_one("#submit_btn", Button).disabled = (
            state.stage in _BUSY_STAGES
        )

    def render_state(self) -> None:
        """Redraw everything derived from the current run."""
        state = self.orchestrator.state
        self._on_state(state)
        self.populate_listings(state)
        self.populate_form(state)
        self.render_listing()
        if state.stage is PipelineStage.MISMATCHED:
            flagged = ", ".join(
                f"#{i} {state.images[i].filename}"
                for i in state.flagged_indices
            )
            self.notify(
                f"Images do not match. Flagged: {flagged or 'none'}",
                severity="warning",
            )
        elif state.stage is PipelineStage.FAILED and state.failure:
            self.notify(state.failure.describe(), severity="error")
        for warning in state.warnings:
            self.notify(warning, severity="warning")

    def populate_listings(self, state: RunState) -> None:
        table = cast(
            DataTable[str | Text],
            self.query_one("#listings_table", DataTable),
        )
        table.clear()
        summary = self.query_one("#research_summary", Static)
        research = state.research
        if research is None:
            summary.update("")
            return
        for listing in research.listings:
            table.add_row(
                listing.platform,
                listing.title[:60],
                listing.price or "N/A",
                listing.dimensions or "",
            )
        style = "green" if state.consensus_reached else "yellow"
        lines = Text()
        lines.append(
            f"Dimensions: {research.confirmed_dimensions or 'not confirmed'} "
            f"({research.dimension_source_count} sources)\n",
            style=style,
        )
        if research.common_keywords:
            lines.append(
                "Keywords: " + ", ".join(research.common_keywords) + "\n"
            )
        for source in research.grounding_sources:
            lines.append(f"↗ {source.title or source.uri}\n", style="dim")
        summary.update(lines)

    def populate_form(self, state: RunState) -> None:
        if state.attributes is None:
            return
        for name, value in state.attributes.to_dict().items():
            self.query_one(f"#attr_{name}", Input).value = value

    def render_listing(self) -> None:
        """Fill one tab per tone; all three share the same facts."""
        listing = self.orchestrator.state.listing
        for tone in Tone:
            view = self.query_one(f"#listing_{tone.value}", Static)
            if listing is None:
                view.update("")
                continue
            doc = listing.for_tone(tone)
            body = Text()
            body.append(doc.description + "\n\n")
            body.append("Fabric care\n", style="bold")
            body.append(doc.fabric_care + "\n\n")
            body.append("Shipping\n", style="bold")
            body.append(doc.shipping + "\n\n")
            for key, value in doc.more_info.items():
                body.append(f"{key}: ", style="bold")
                body.append(value + "\n")
            view.update(body)
