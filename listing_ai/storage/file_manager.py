# listing_ai/storage/file_manager.py

"""Renders finished listings and saves them to disk."""

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any

from listing_ai.config.settings import Settings
from listing_ai.models.listing import FullListing, Tone
from listing_ai.services.pipeline_orchestrator import RunState

logger = logging.getLogger("listing_ai.storage")


def _slug(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")
    return slug[:60] or "listing"


class FileManager:
    """Handles rendering and saving listing runs."""

    def __init__(self) -> None:
        self.results_dir: Path = Settings.RESULTS_DIR
        self.results_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(
            "FileManager initialised, results_dir=%s", self.results_dir
        )

    @staticmethod
    def run_to_dict(state: RunState) -> dict[str, Any]:
        """Serialise a run to plain JSON-compatible data."""
        research = state.research
        attrs = state.generated_from or state.attributes
        return {
            "stage": state.stage.value,
            "attributes": attrs.to_dict() if attrs else None,
            "visual": state.visual.to_wire() if state.visual else None,
            "research": research.to_wire() if research else None,
            "consensusReached": state.consensus_reached,
            "warnings": list(state.warnings),
            "listing": state.listing.to_wire() if state.listing else None,
        }

    @staticmethod
    def format_markdown(
        listing: FullListing, tone: Tone | str, title: str = ""
    ) -> str:
        """Render one tone of a listing as Markdown."""
        doc = listing.for_tone(tone)
        lines: list[str] = []
        if title:
            lines += [f"# {title}", ""]
        lines += [
            f"_Tone: {Tone(tone).value}_",
            "",
            "## Description",
            "",
            doc.description,
            "",
            "## Fabric Care",
            "",
            doc.fabric_care,
            "",
            "## Shipping",
            "",
            doc.shipping,
        ]
        if doc.more_info:
            lines += ["", "## More Information", "", "| Attribute | Value |", "|---|---|"]
            lines += [
                f"| {key} | {value} |"
                for key, value in doc.more_info.items()
            ]
        return "\n".join(lines) + "\n"

    def save_run(
        self, state: RunState, tone: Tone | str = Tone.PROFESSIONAL
    ) -> tuple[Path, Path | None]:
        """Save the run as JSON and the chosen tone as Markdown."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        attrs = state.generated_from or state.attributes
        name = attrs.name if attrs else ""
        stem = f"{_slug(name)}_{timestamp}"

        json_path = self.results_dir / f"{stem}.json"
        with open(json_path, "w", encoding="utf-8") as f:
            json.dump(
                self.run_to_dict(state), f, ensure_ascii=False, indent=2
            )

        md_path: Path | None = None
        if state.listing is not None:
            md_path = self.results_dir / f"{stem}_{Tone(tone).value}.md"
            md_path.write_text(
                self.format_markdown(state.listing, tone, name),
                encoding="utf-8",
            )

        logger.info("Saved run %d to %s", state.run_id, json_path)
        return json_path, md_path
