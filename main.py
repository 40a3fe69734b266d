# main.py

"""Entry point for the listing_ai application (TUI or headless CLI)."""

import argparse
import asyncio
import logging
import sys

from listing_ai.config.logging_config import setup_logging
from listing_ai.models.listing import ListingAttributes, Tone

logger = logging.getLogger("listing_ai.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    fields = ", ".join(ListingAttributes.field_names())

    parser = argparse.ArgumentParser(
        prog="listing_ai",
        description="Turn product photos into marketplace-ready listings.",
        epilog=f"Editable fields for --set: {fields}",
    )
    parser.add_argument(
        "images",
        nargs="*",
        help="1-5 photos of the same item. Omit to launch the interactive TUI.",
    )
    parser.add_argument(
        "--set",
        action="append",
        default=None,
        dest="overrides",
        metavar="FIELD=VALUE",
        help="Override a listing attribute before generation (repeatable).",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table", "markdown"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )
    parser.add_argument(
        "-t",
        "--tone",
        choices=[t.value for t in Tone],
        default=Tone.PROFESSIONAL.value,
        help="Tone for table/markdown output (default: professional).",
    )
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        dest="output_dir",
        help="Custom output directory (default: results/).",
    )
    parser.add_argument(
        "--health",
        action="store_true",
        default=False,
        help="Run a connectivity health check on the Inference Service.",
    )
    return parser


def _run_tui() -> None:
    """Launch the interactive Textual TUI."""
    from listing_ai.ui.app import ListingApp

    try:
        app = ListingApp()
        app.run()
    except Exception:
        logger.critical("Fatal error during TUI run", exc_info=True)
        raise
    finally:
        logger.info("listing_ai TUI shutting down")


def _run_cli(args: argparse.Namespace) -> None:
    """Run the headless pipeline and exit."""
    from listing_ai.cli.runner import cli_generate, parse_overrides

    exit_code = asyncio.run(
        cli_generate(
            image_paths=args.images,
            overrides=parse_overrides(args.overrides),
            output_format=args.output_format,
            tone=args.tone,
            output_dir=args.output_dir,
        )
    )
    sys.exit(exit_code)


def _run_health_check() -> None:
    """Run the Inference Service health check."""
    from listing_ai.cli.runner import run_health_check

    exit_code = asyncio.run(run_health_check())
    sys.exit(exit_code)


def main() -> None:
    """Route to TUI (no images) or headless CLI (images provided)."""
    log_file = setup_logging()
    logger.info("listing_ai starting, log file: %s", log_file)

    parser = _build_parser()
    args = parser.parse_args()

    if args.health:
        _run_health_check()
    elif not args.images:
        _run_tui()
    else:
        _run_cli(args)


if __name__ == "__main__":
    main()
