# listing_ai/filters/deduplicator.py

"""Listing deduplication so one page is never counted twice."""

import logging
import re

from listing_ai.filters.dimension_consensus import normalise_platform
from listing_ai.models.research import SourceListing

logger = logging.getLogger("listing_ai.filters")


class ListingDeduplicator:
    """Remove duplicate listings using URL normalisation and title matching."""

    _STRIP_PARAMS_RE = re.compile(r"[?#].*$")

    @staticmethod
    def _normalise_url(url: str | None) -> str:
        """Strip query string, fragment, scheme, ``www.`` and trailing slash."""
        if not url:
            return ""
        cleaned = ListingDeduplicator._STRIP_PARAMS_RE.sub("", url)
        cleaned = re.sub(r"^https?://(www\.)?", "", cleaned.lower())
        return cleaned.rstrip("/")

    @staticmethod
    def _normalise_title(title: str) -> str:
        lowered = title.lower()
        alpha_only = re.sub(r"[^a-z0-9\s]", "", lowered)
        return " ".join(alpha_only.split())

    @staticmethod
    def deduplicate(
        listings: list[SourceListing],
    ) -> tuple[list[SourceListing], int]:
        """Remove duplicates, keeping the first-discovered listing.

        Dedup strategy:
        1. Exact URL match (after normalisation).
        2. Same-platform title match (normalised titles).

        When a duplicate carries dimensions the kept listing lacks, the
        duplicate replaces it so that no dimension evidence is lost.

        Returns the deduplicated list and the count of removed dupes.
        """
        if not listings:
            return [], 0

        seen_urls: dict[str, int] = {}
        seen_titles: dict[str, int] = {}
        kept: list[SourceListing] = []
        removed = 0

        for listing in listings:
            norm_url = ListingDeduplicator._normalise_url(listing.url)
            norm_title = ListingDeduplicator._normalise_title(
                listing.title
            )
            title_key = (
                f"{normalise_platform(listing.platform)}:{norm_title}"
                if norm_title
                else ""
            )

            existing_idx: int | None = None
            if norm_url and norm_url in seen_urls:
                existing_idx = seen_urls[norm_url]
            elif title_key and title_key in seen_titles:
                existing_idx = seen_titles[title_key]

            if existing_idx is not None:
                if listing.dimensions and not kept[existing_idx].dimensions:
                    kept[existing_idx] = listing
                removed += 1
                continue

            idx = len(kept)
            if norm_url:
                seen_urls[norm_url] = idx
            if title_key:
                seen_titles[title_key] = idx
            kept.append(listing)

        if removed:
            logger.info(
                "Deduplication removed %d duplicate listings", removed
            )

        return kept, removed
