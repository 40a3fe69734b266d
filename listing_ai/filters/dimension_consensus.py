# listing_ai/filters/dimension_consensus.py

"""Cross-source agreement on physical dimensions."""

import logging
import re
from collections.abc import Sequence

from listing_ai.config.settings import Settings
from listing_ai.models.research import SourceListing

logger = logging.getLogger("listing_ai.filters")

_MEASURE_RE = re.compile(
    r"(\d+(?:\.\d+)?)\s*(?:(mm|cm|inches|inch|in|ft|feet|m)\b|(\"|''))?",
    re.IGNORECASE,
)

# Conversion to centimetres
_UNIT_FACTORS: dict[str, float] = {
    "mm": 0.1,
    "cm": 1.0,
    "m": 100.0,
    "in": 2.54,
    "inch": 2.54,
    "inches": 2.54,
    '"': 2.54,
    "''": 2.54,
    "ft": 30.48,
    "feet": 30.48,
}


def normalise_platform(platform: str) -> str:
    """Reduce a platform name or host to a comparable key.

    ``Amazon.in``, ``www.amazon.in`` and ``amazon`` all map to ``amazon``.
    """
    key = platform.strip().lower()
    key = re.sub(r"^https?://", "", key)
    key = re.sub(r"^www\.", "", key)
    key = key.split("/")[0].split(".")[0]
    return re.sub(r"[^a-z0-9]", "", key)


def parse_dimensions(text: str | None) -> tuple[float, ...]:
    """Parse a free-text dimension string into centimetre measurements.

    Unit-less numbers inherit the last explicit unit in the string
    (``"30 x 20 x 10 cm"``). Measurements are sorted largest first so
    that ``L x W`` and ``W x L`` compare equal.
    """
    if not text:
        return ()
    found: list[tuple[float, str | None]] = []
    for match in _MEASURE_RE.finditer(text):
        unit = match.group(2) or match.group(3)
        found.append(
            (float(match.group(1)), unit.lower() if unit else None)
        )
    if not found:
        return ()
    default_unit = next(
        (u for _, u in reversed(found) if u is not None), "cm"
    )
    values = [
        value * _UNIT_FACTORS[unit or default_unit]
        for value, unit in found
    ]
    return tuple(sorted((v for v in values if v > 0), reverse=True))


def dimensions_agree(
    reference: Sequence[float],
    candidate: Sequence[float],
    tolerance: float,
) -> bool:
    """True when every measurement of *candidate* is within tolerance of *reference*."""
    if not reference or len(reference) != len(candidate):
        return False
    return all(
        abs(c - r) <= tolerance * r
        for r, c in zip(reference, candidate)
    )


class DimensionConsensus:
    """Count distinct platforms corroborating a dimension value."""

    @staticmethod
    def corroboration(
        reference: Sequence[float],
        listings: Sequence[SourceListing],
        tolerance: float = Settings.DIMENSION_TOLERANCE,
    ) -> int:
        """Number of distinct platforms whose dimensions agree with *reference*."""
        platforms = {
            normalise_platform(listing.platform)
            for listing in listings
            if dimensions_agree(
                reference,
                parse_dimensions(listing.dimensions),
                tolerance,
            )
        }
        platforms.discard("")
        return len(platforms)

    @staticmethod
    def resolve(
        listings: Sequence[SourceListing],
        proposed: str | None = None,
        tolerance: float = Settings.DIMENSION_TOLERANCE,
    ) -> tuple[str, int]:
        """Pick the best-corroborated dimension string.

        The *proposed* value (from the Inference Service) wins ties;
        otherwise the raw string of the listing with the widest agreement
        is used. Returns ``("", 0)`` when no listing carries parseable
        dimensions.
        """
        best_text = ""
        best_count = 0

        proposed_parsed = parse_dimensions(proposed)
        if proposed and proposed_parsed:
            best_count = DimensionConsensus.corroboration(
                proposed_parsed, listings, tolerance
            )
            if best_count:
                best_text = proposed.strip()

        for listing in listings:
            parsed = parse_dimensions(listing.dimensions)
            if not parsed or not listing.dimensions:
                continue
            count = DimensionConsensus.corroboration(
                parsed, listings, tolerance
            )
            if count > best_count:
                best_text = listing.dimensions.strip()
                best_count = count

        logger.debug(
            "Dimension consensus: '%s' corroborated by %d source(s)",
            best_text,
            best_count,
        )
        return best_text, best_count
