# listing_ai/errors.py

"""Error taxonomy for the listing pipeline.

Mismatched images and missing dimension consensus are ordinary
outcomes carried on the run state, not exceptions.
"""


class ListingAIError(Exception):
    """Base class for all listing_ai errors."""


class InferenceFailure(ListingAIError):
    """The Inference Service errored, timed out, or returned invalid output."""

    def __init__(self, message: str, stage: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.message}"
        return self.message


class InputViolation(ListingAIError):
    """The caller submitted an image set outside the accepted bounds."""


class PipelineStateError(ListingAIError):
    """An action was dispatched in a pipeline state that does not allow it."""
