# listing_ai/services/pipeline_orchestrator.py

"""Orchestrates one listing run: verify, research, review, synthesize."""

import asyncio
import logging
from collections.abc import Callable, Coroutine, Sequence
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any

from listing_ai.config.logging_config import bind_run
from listing_ai.config.settings import Settings
from listing_ai.errors import (
    InferenceFailure,
    InputViolation,
    PipelineStateError,
)
from listing_ai.inference.gemini_client import GeminiClient, InferenceService
from listing_ai.models.image_asset import ImageAsset
from listing_ai.models.listing import FullListing, ListingAttributes
from listing_ai.models.research import AggregationRound, ConsensusState
from listing_ai.models.visual import MatchVerdict, VisualAttributes
from listing_ai.services.consensus_resolver import ConsensusResolver
from listing_ai.services.consistency_verifier import ConsistencyVerifier
from listing_ai.services.content_synthesizer import ContentSynthesizer
from listing_ai.services.source_aggregator import SourceAggregator

logger = logging.getLogger("listing_ai.orchestrator")


class PipelineStage(str, Enum):
    """States of the listing pipeline."""

    IDLE = "idle"
    VERIFYING = "verifying"
    MISMATCHED = "mismatched"
    AGGREGATING = "aggregating"
    RESOLVING = "resolving"
    AWAITING_USER_REVIEW = "awaiting_user_review"
    SYNTHESIZING = "synthesizing"
    READY = "ready"
    FAILED = "failed"


# User-facing name of the step a failure happened in
_STAGE_AREAS: dict[PipelineStage, str] = {
    PipelineStage.VERIFYING: "verification",
    PipelineStage.AGGREGATING: "research",
    PipelineStage.RESOLVING: "research",
    PipelineStage.SYNTHESIZING: "generation",
}

_REVIEW_STAGES = (
    PipelineStage.AWAITING_USER_REVIEW,
    PipelineStage.READY,
)


@dataclass
class PipelineFailure:
    """Where a run failed and why."""

    stage: PipelineStage
    area: str
    message: str

    def describe(self) -> str:
        return f"{self.area.capitalize()} failed: {self.message}"


@dataclass
class RunState:
    """Canonical state of one pipeline run, shared with presentation layers."""

    run_id: int = 0
    stage: PipelineStage = PipelineStage.IDLE
    progress: str = "Ready"
    images: tuple[ImageAsset, ...] = ()
    verdict: MatchVerdict | None = None
    visual: VisualAttributes | None = None
    research: AggregationRound | None = None
    consensus: ConsensusState | None = None
    attributes: ListingAttributes | None = None
    generated_from: ListingAttributes | None = None
    listing: FullListing | None = None
    warnings: list[str] = field(default_factory=lambda: list[str]())
    failure: PipelineFailure | None = None
    history: list[PipelineStage] = field(
        default_factory=lambda: [PipelineStage.IDLE]
    )

    @property
    def flagged_indices(self) -> tuple[int, ...]:
        """Indices of images to remove before resubmitting."""
        if self.stage is not PipelineStage.MISMATCHED or self.verdict is None:
            return ()
        return self.verdict.mismatched_indices

    @property
    def consensus_reached(self) -> bool:
        return bool(self.consensus and self.consensus.consensus_reached)


Listener = Callable[[RunState], None]


class PipelineOrchestrator:
    """Owns the pipeline state machine and the single active run.

    Only one run is active at a time: submitting new images cancels and
    replaces any run in flight, and results of a replaced run are
    discarded. A cancelled stage moves its run back to ``IDLE``, including
    when the caller awaiting it is cancelled. Inference failures move the
    run to ``FAILED``; the only way out of ``FAILED`` is a new submission
    or :meth:`reset`.
    """

    def __init__(
        self,
        inference: InferenceService | None = None,
        verifier: ConsistencyVerifier | None = None,
        resolver: ConsensusResolver | None = None,
        synthesizer: ContentSynthesizer | None = None,
    ) -> None:
        self.settings = Settings()
        self.inference: InferenceService = inference or GeminiClient()
        self.verifier = verifier or ConsistencyVerifier(self.inference)
        self.resolver = resolver or ConsensusResolver(
            SourceAggregator(self.inference)
        )
        self.synthesizer = synthesizer or ContentSynthesizer(
            self.inference
        )
        self._state = RunState()
        self._listeners: list[Listener] = []
        self._task: asyncio.Task[None] | None = None
        self._run_counter = 0

    # ── Observation ──────────────────────────────────────

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* for every state change; returns an unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.error("Pipeline listener failed", exc_info=True)

    def _is_current(self, run: RunState) -> bool:
        return run is self._state

    def _transition(
        self, run: RunState, stage: PipelineStage, progress: str
    ) -> None:
        if not self._is_current(run):
            logger.debug(
                "Discarding %s transition of superseded run %d",
                stage.value,
                run.run_id,
            )
            return
        logger.info(
            "Run %d: %s → %s (%s)",
            run.run_id,
            run.stage.value,
            stage.value,
            progress,
        )
        run.stage = stage
        run.progress = progress
        run.history.append(stage)
        self._notify()

    def _fail(self, run: RunState, exc: Exception) -> None:
        if not self._is_current(run):
            return
        if isinstance(exc, InferenceFailure):
            area = exc.stage or _STAGE_AREAS.get(run.stage, "pipeline")
            message = exc.message
        else:
            area = _STAGE_AREAS.get(run.stage, "pipeline")
            message = f"Unexpected error: {exc}"
        run.failure = PipelineFailure(
            stage=run.stage, area=area, message=message
        )
        logger.error(
            "Run %d failed during %s: %s",
            run.run_id,
            area,
            message,
            exc_info=exc,
        )
        self._transition(
            run, PipelineStage.FAILED, run.failure.describe()
        )

    def _abandon(self, run: RunState) -> None:
        """Move a cancelled run back to ``IDLE``."""
        self._transition(run, PipelineStage.IDLE, "Cancelled")

    # ── Task ownership ───────────────────────────────────

    async def _run_exclusive(
        self, coro: Coroutine[Any, Any, None]
    ) -> RunState:
        """Run *coro* as the single owned task and wait for it.

        If the task is replaced or reset by another caller, the waiting
        caller simply receives the current state. If the caller itself is
        cancelled, the task is cancelled with it and the error propagates.
        """
        task = asyncio.create_task(coro)
        self._task = task
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                task.cancel()
                raise
            logger.info("Run superseded before completion")
        finally:
            if self._task is task:
                self._task = None
        return self._state

    async def _cancel_inflight(self) -> None:
        # Another caller may start a task while this one waits
        task = self._task
        while task is not None and not task.done():
            logger.info("Cancelling in-flight run %d", self._state.run_id)
            task.cancel()
            await asyncio.wait([task])
            task = self._task

    # ── User actions ─────────────────────────────────────

    def validate_images(self, images: Sequence[ImageAsset]) -> None:
        """Reject image sets outside the accepted bounds before any call."""
        count = len(images)
        if count < self.settings.MIN_IMAGES:
            raise InputViolation("Submit at least one image")
        if count > self.settings.MAX_IMAGES:
            raise InputViolation(
                f"Submit at most {self.settings.MAX_IMAGES} images "
                f"(got {count})"
            )

    async def submit_images(
        self, images: Sequence[ImageAsset]
    ) -> RunState:
        """Start a fresh run and drive it to review, mismatch or failure."""
        assets = tuple(images)
        self.validate_images(assets)
        await self._cancel_inflight()

        self._run_counter += 1
        run = RunState(run_id=self._run_counter, images=assets)
        self._state = run
        logger.info(
            "Run %d started with %d image(s)", run.run_id, len(assets)
        )
        self._notify()
        return await self._run_exclusive(self._research(run))

    async def resubmit_without(
        self, indices: Sequence[int] | None = None
    ) -> RunState:
        """Drop flagged (or the given) images and start a fresh run."""
        run = self._state
        if run.stage is not PipelineStage.MISMATCHED:
            raise PipelineStateError(
                "Images can only be pruned after a mismatch"
            )
        drop = set(run.flagged_indices if indices is None else indices)
        remaining = [
            image for i, image in enumerate(run.images) if i not in drop
        ]
        logger.info(
            "Pruning image(s) %s from run %d", sorted(drop), run.run_id
        )
        return await self.submit_images(remaining)

    def update_attributes(self, **changes: str) -> ListingAttributes:
        """Apply user edits to the listing attributes under review."""
        run = self._state
        if run.stage not in _REVIEW_STAGES or run.attributes is None:
            raise PipelineStateError(
                "Listing attributes are not open for review"
            )
        run.attributes.update(**changes)
        self._notify()
        return run.attributes

    async def generate(self) -> RunState:
        """Freeze the reviewed attributes and synthesize the full listing."""
        run = self._state
        if run.stage not in _REVIEW_STAGES or run.attributes is None:
            raise PipelineStateError(
                "Generation requires reviewed listing attributes"
            )
        if self.busy:
            raise PipelineStateError("A pipeline step is already running")
        frozen = run.attributes.frozen_copy()
        return await self._run_exclusive(self._synthesize(run, frozen))

    async def reset(self) -> RunState:
        """Cancel any in-flight run and return to ``IDLE``."""
        await self._cancel_inflight()
        self._run_counter += 1
        self._state = RunState(run_id=self._run_counter)
        self._notify()
        return self._state

    async def close(self) -> None:
        await self._cancel_inflight()
        closer = getattr(self.inference, "close", None)
        if closer is not None:
            await closer()

    # ── Stages ───────────────────────────────────────────

    def _on_round(
        self,
        run: RunState,
        state: ConsensusState,
        research: AggregationRound | None,
    ) -> None:
        if research is None:
            self._transition(
                run,
                PipelineStage.AGGREGATING,
                "Searching marketplaces "
                f"(attempt {state.iteration}/{state.max_iterations})...",
            )
        else:
            self._transition(
                run,
                PipelineStage.RESOLVING,
                "Checking dimension consensus: "
                f"{research.dimension_source_count}/{state.min_sources} "
                "sources agree",
            )

    async def _research(self, run: RunState) -> None:
        bind_run(run.run_id)
        try:
            self._transition(
                run,
                PipelineStage.VERIFYING,
                "Verifying that all photos show the same item...",
            )
            verdict = await self.verifier.verify(run.images)
            if not self._is_current(run):
                return
            run.verdict = verdict
            if not verdict.is_match or verdict.merged_metadata is None:
                self._transition(
                    run,
                    PipelineStage.MISMATCHED,
                    f"Photos do not show the same item: {verdict.reason}",
                )
                return

            run.visual = verdict.merged_metadata
            run.consensus = self.resolver.new_state()
            research = await self.resolver.resolve(
                run.visual,
                run.consensus,
                observer=partial(self._on_round, run),
            )
            if not self._is_current(run):
                return
            run.research = research

            warning = run.consensus.shortfall_warning
            if warning:
                logger.warning("Run %d: %s", run.run_id, warning)
                run.warnings.append(warning)

            run.attributes = ListingAttributes.seed(run.visual, research)
            self._transition(
                run,
                PipelineStage.AWAITING_USER_REVIEW,
                "Review the listing details, then generate",
            )
        except asyncio.CancelledError:
            self._abandon(run)
            raise
        except Exception as exc:
            self._fail(run, exc)

    async def _synthesize(
        self, run: RunState, frozen: ListingAttributes
    ) -> None:
        bind_run(run.run_id)
        if self._is_current(run):
            run.listing = None
            run.generated_from = None
        try:
            self._transition(
                run,
                PipelineStage.SYNTHESIZING,
                "Synthesizing master draft & tones...",
            )
            master = run.research.merged_master if run.research else None
            listing = await self.synthesizer.synthesize(frozen, master)
            if not self._is_current(run):
                return
            run.listing = listing
            run.generated_from = frozen
            self._transition(run, PipelineStage.READY, "Listing ready")
        except asyncio.CancelledError:
            self._abandon(run)
            raise
        except Exception as exc:
            self._fail(run, exc)
