# listing_ai/cli/runner.py

"""Headless CLI runner, driving the same orchestrator as the TUI."""

import json
import logging
import mimetypes
import re
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from listing_ai.config.settings import Settings
from listing_ai.errors import InputViolation
from listing_ai.models.image_asset import ImageAsset
from listing_ai.models.listing import FullListing, ListingAttributes, Tone
from listing_ai.services.pipeline_orchestrator import (
    PipelineOrchestrator,
    PipelineStage,
    RunState,
)
from listing_ai.storage.file_manager import FileManager

logger = logging.getLogger("listing_ai.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def load_images(paths: list[str]) -> list[ImageAsset]:
    """Read image files from disk, enforcing media type and size limits."""
    settings = Settings()
    assets: list[ImageAsset] = []
    for raw in paths:
        path = Path(raw)
        if not path.is_file():
            raise InputViolation(f"Image not found: {raw}")
        media_type, _ = mimetypes.guess_type(path.name)
        if media_type not in settings.ALLOWED_MEDIA_TYPES:
            raise InputViolation(
                f"Unsupported image type for {path.name}: {media_type}"
            )
        data = path.read_bytes()
        if len(data) > settings.MAX_IMAGE_BYTES:
            raise InputViolation(
                f"{path.name} exceeds "
                f"{settings.MAX_IMAGE_BYTES // (1024 * 1024)} MB"
            )
        assets.append(
            ImageAsset(data=data, media_type=media_type, filename=path.name)
        )
    return assets


def parse_overrides(pairs: list[str] | None) -> dict[str, str]:
    """Map ``field=value`` strings to ListingAttributes edits.

    Field names accept dashes or spaces (``items-included``).
    Raises ``SystemExit`` on malformed pairs or unknown fields.
    """
    if not pairs:
        return {}
    valid = set(ListingAttributes.field_names())
    overrides: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        field_name = re.sub(r"[\s-]+", "_", key.strip().lower())
        if not sep or field_name not in valid:
            _err.print(f"[red]Invalid --set value: {pair}[/red]")
            _err.print(f"[dim]Fields: {', '.join(sorted(valid))}[/dim]")
            raise SystemExit(1)
        overrides[field_name] = value.strip()
    return overrides


def _print_research(state: RunState) -> None:
    """Render the accepted marketplace round to stderr."""
    research = state.research
    if research is None:
        return
    table = Table(
        title=f"Marketplace Listings (round {research.round_number})",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Platform", style="magenta")
    table.add_column("Title", max_width=50)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Dimensions")
    table.add_column("URL", overflow="fold", style="dim")
    for idx, listing in enumerate(research.listings, 1):
        table.add_row(
            str(idx),
            listing.platform,
            listing.title[:50],
            listing.price or "N/A",
            listing.dimensions or "—",
            listing.url or "",
        )
    _err.print(table)

    dims = research.confirmed_dimensions or "not confirmed"
    _err.print(
        f"[bold]Dimensions:[/bold] {dims} "
        f"[dim]({research.dimension_source_count} source(s))[/dim]"
    )
    for source in research.grounding_sources:
        _err.print(f"[dim]Source: {source.title or source.uri} {source.uri}[/dim]")
    for warning in state.warnings:
        _err.print(f"[yellow]⚠ {warning}[/yellow]")


def _print_listing_table(listing: FullListing, tone: Tone) -> None:
    """Render one tone of the listing as a Rich table on stdout."""
    doc = listing.for_tone(tone)
    table = Table(
        title=f"Listing ({tone.value})",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Section", style="bold")
    table.add_column("Content", overflow="fold")
    table.add_row("Description", doc.description)
    table.add_row("Fabric Care", doc.fabric_care)
    table.add_row("Shipping", doc.shipping)
    for key, value in doc.more_info.items():
        table.add_row(key, value)
    Console().print(table)


def _report_mismatch(state: RunState) -> None:
    verdict = state.verdict
    if verdict is None:
        return
    _err.print(
        f"[yellow]Photos do not show the same item "
        f"(confidence {verdict.confidence:.0f}%): {verdict.reason}[/yellow]"
    )
    for idx in state.flagged_indices:
        name = state.images[idx].filename or f"image {idx}"
        _err.print(f"[yellow]  remove #{idx}: {name}[/yellow]")


async def cli_generate(
    image_paths: list[str],
    overrides: dict[str, str] | None = None,
    output_format: str = "json",
    tone: str = Tone.PROFESSIONAL.value,
    output_dir: str | None = None,
    orchestrator: PipelineOrchestrator | None = None,
) -> int:
    """Run the full pipeline headlessly and return an exit code (0=ok, 1=fail)."""
    try:
        images = load_images(image_paths)
    except InputViolation as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1

    if output_dir is not None:
        Settings.RESULTS_DIR = Path(output_dir)

    selected_tone = Tone(tone)
    orch = orchestrator or PipelineOrchestrator()
    _err.print(f"[bold]Analysing {len(images)} image(s)...[/bold]")
    try:
        state = await orch.submit_images(images)
        if state.stage is PipelineStage.MISMATCHED:
            _report_mismatch(state)
            return 1
        if state.stage is not PipelineStage.AWAITING_USER_REVIEW:
            message = (
                state.failure.describe() if state.failure else state.progress
            )
            _err.print(f"[red]{message}[/red]")
            return 1

        _print_research(state)
        if overrides:
            orch.update_attributes(**overrides)

        _err.print("[bold]Generating listing...[/bold]")
        state = await orch.generate()
        if state.stage is not PipelineStage.READY or state.listing is None:
            message = (
                state.failure.describe() if state.failure else state.progress
            )
            _err.print(f"[red]{message}[/red]")
            return 1
    except InputViolation as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    finally:
        await orch.close()

    try:
        json_path, md_path = FileManager().save_run(state, selected_tone)
        _err.print(f"[dim]Saved run → {json_path}[/dim]")
        if md_path is not None:
            _err.print(f"[dim]Saved {selected_tone.value} → {md_path}[/dim]")
    except OSError as exc:
        logger.error("Save failed: %s", exc, exc_info=True)
        _err.print(f"[red]Save failed: {exc}[/red]")

    if output_format == "table":
        _print_listing_table(state.listing, selected_tone)
    elif output_format == "markdown":
        title = state.generated_from.name if state.generated_from else ""
        sys.stdout.write(
            FileManager.format_markdown(state.listing, selected_tone, title)
        )
    else:
        json.dump(
            FileManager.run_to_dict(state),
            sys.stdout,
            ensure_ascii=False,
            indent=2,
        )
        sys.stdout.write("\n")

    return 0


async def run_health_check() -> int:
    """Run a connectivity health check on the Inference Service."""
    from listing_ai.services.health_checker import HealthChecker

    _err.print("[bold]Running Inference Service health check...[/bold]")
    checker = HealthChecker()
    results = await checker.check_all()

    table = Table(
        title="Inference Service Health Check",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Target", style="bold")
    table.add_column("Status", justify="center")
    table.add_column("Latency", justify="right")
    table.add_column("Notes", style="dim")

    any_down = False
    for r in results:
        if r.status == "ok":
            status = "[green]✅ OK[/green]"
        elif r.status == "slow":
            status = "[yellow]⚠️  SLOW[/yellow]"
        else:
            status = "[red]❌ DOWN[/red]"
            any_down = True

        latency = f"{r.latency_ms:.0f}ms" if r.latency_ms > 0 else "—"
        table.add_row(r.target, status, latency, r.message)

    Console().print(table)
    return 1 if any_down else 0
