# listing_ai/filters/listing_validator.py

"""Listing validation: drop unusable marketplace listings before consensus."""

import logging

from listing_ai.filters.dimension_consensus import normalise_platform
from listing_ai.models.research import SourceListing

logger = logging.getLogger("listing_ai.filters")


class ListingValidator:
    """Validate listings and drop those with missing essential fields."""

    @staticmethod
    def validate(
        listings: list[SourceListing],
    ) -> tuple[list[SourceListing], int]:
        """Drop listings with no recognisable platform or no content.

        A listing needs a platform key and at least a title or a
        description. A missing price is allowed (numeric price stays 0).

        Returns the valid listings and the count of dropped items.
        """
        valid: list[SourceListing] = []
        dropped = 0

        for listing in listings:
            if not normalise_platform(listing.platform):
                logger.debug(
                    "Dropped listing with unrecognisable platform "
                    "'%s' (title=%s)",
                    listing.platform,
                    listing.title,
                )
                dropped += 1
                continue
            if not listing.title and not listing.description:
                logger.debug(
                    "Dropped empty listing (platform=%s, url=%s)",
                    listing.platform,
                    listing.url,
                )
                dropped += 1
                continue
            valid.append(listing)

        if dropped:
            logger.info(
                "Validation dropped %d invalid listings", dropped
            )

        return valid, dropped
