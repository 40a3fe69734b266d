# listing_ai/services/consensus_resolver.py

"""Bounded research loop that settles on a dimension consensus."""

import logging
from collections.abc import Callable

from listing_ai.config.settings import Settings
from listing_ai.models.research import AggregationRound, ConsensusState
from listing_ai.models.visual import VisualAttributes
from listing_ai.services.source_aggregator import SourceAggregator

logger = logging.getLogger("listing_ai.consensus")

# Called before each aggregator call and after each returned round
RoundObserver = Callable[[ConsensusState, AggregationRound | None], None]


class ConsensusResolver:
    """Re-query the aggregator until enough sources agree, or give up gracefully.

    The loop runs at most ``CONSENSUS_MAX_ITERATIONS`` times. Every
    returned round replaces the previous best, and when the cap is hit
    without consensus the last round is accepted anyway.
    """

    def __init__(
        self,
        aggregator: SourceAggregator,
        max_iterations: int = Settings.CONSENSUS_MAX_ITERATIONS,
        min_sources: int = Settings.CONSENSUS_MIN_SOURCES,
    ) -> None:
        self.aggregator = aggregator
        self.max_iterations = max_iterations
        self.min_sources = min_sources

    def new_state(self) -> ConsensusState:
        return ConsensusState(
            max_iterations=self.max_iterations,
            min_sources=self.min_sources,
        )

    async def resolve(
        self,
        attrs: VisualAttributes,
        state: ConsensusState | None = None,
        observer: RoundObserver | None = None,
    ) -> AggregationRound:
        """Return the accepted round for *attrs*.

        *state* is updated in place when given, so the caller can inspect
        the iteration count and consensus flag afterwards. Aggregator
        failures propagate unchanged.
        """
        state = state or self.new_state()
        state.iteration = 1
        state.best = None
        state.consensus_reached = False

        while True:
            if observer is not None:
                observer(state, None)
            research = await self.aggregator.aggregate(
                attrs, state.iteration
            )
            reached = state.record(research)
            if observer is not None:
                observer(state, research)
            if reached:
                logger.info(
                    "Consensus reached on attempt %d (%d sources)",
                    state.iteration,
                    research.dimension_source_count,
                )
                break
            if state.exhausted:
                logger.warning(
                    "No dimension consensus after %d attempts; "
                    "accepting last round (%d sources)",
                    state.iteration,
                    research.dimension_source_count,
                )
                break
            logger.info(
                "Attempt %d found %d corroborating source(s); retrying",
                state.iteration,
                research.dimension_source_count,
            )
            state.iteration += 1

        return research

