# listing_ai/models/image_asset.py

"""Image payload handed from the caller to the verifier."""

import base64
from dataclasses import dataclass


@dataclass(frozen=True)
class ImageAsset:
    """One uploaded product photograph."""

    data: bytes
    media_type: str
    filename: str = ""

    @property
    def size(self) -> int:
        return len(self.data)

    def to_base64(self) -> str:
        """Encode the payload for an inline-data request part."""
        return base64.b64encode(self.data).decode("ascii")
