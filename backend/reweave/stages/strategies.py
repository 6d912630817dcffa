"""Strategy generation stage: candidate reuse actions with metrics attached.

Candidates come back from the reasoning collaborator as raw dicts. Each one is
validated on its own: a bad candidate is logged and dropped, and only an empty
result fails the stage. Profit recovery is never read from the response; it is
derived on ``ReuseStrategy`` itself. Sustainability metrics use the conversion
factors committed with the market analysis.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError

from reweave.adapters.base import ReasoningAdapter
from reweave.models.contracts import (
    GarmentAttributes,
    ItemInput,
    MarketAnalysis,
    ReuseStrategy,
    StrategyCandidate,
    StrategyRequest,
)
from reweave.pipeline import calculator
from reweave.pipeline.errors import EmptyCandidateSetError, MalformedResponseError
from reweave.pipeline.retry import RetryExecutor

log = structlog.get_logger("stages.strategies")

STAGE = "strategy_generation"


def validate_candidates(raw: Any) -> list[StrategyCandidate]:
    if not isinstance(raw, list):
        raise MalformedResponseError(
            f"expected a list of strategy candidates, got {type(raw).__name__}", stage=STAGE
        )
    valid: list[StrategyCandidate] = []
    for index, entry in enumerate(raw):
        try:
            valid.append(StrategyCandidate.model_validate(entry))
        except ValidationError as exc:
            log.warning(
                "strategy_candidate_dropped",
                index=index,
                errors=[".".join(str(p) for p in err["loc"]) or err["type"] for err in exc.errors()],
                data=repr(entry)[:200],
            )
    if not valid:
        raise EmptyCandidateSetError(len(raw))
    return valid


def to_strategy(candidate: StrategyCandidate, input: ItemInput, market: MarketAnalysis) -> ReuseStrategy:
    units = input.quantity if candidate.units is None else min(candidate.units, input.quantity)
    return ReuseStrategy(
        type=candidate.type,
        description=candidate.description,
        effort_level=candidate.effort_level,
        cost_estimate=candidate.cost_estimate,
        expected_resale_value=candidate.expected_resale_value,
        units=units,
        sustainability=calculator.compute(units, market.conversion_factors),
    )


class StrategyStage:
    name = STAGE

    def __init__(self, reasoning: ReasoningAdapter, retry: RetryExecutor) -> None:
        self.reasoning = reasoning
        self.retry = retry

    async def generate_strategies(
        self,
        attributes: GarmentAttributes,
        market_analysis: MarketAnalysis,
        input: ItemInput,
    ) -> list[ReuseStrategy]:
        """Return strategies in generation order; ranking is the caller's job."""
        request = StrategyRequest(attributes=attributes, market_analysis=market_analysis, input=input)
        raw = await self.retry.execute(
            lambda: self.reasoning.propose(request),
            name="reasoning.propose",
        )
        candidates = validate_candidates(raw)
        strategies = [to_strategy(c, input, market_analysis) for c in candidates]
        log.info(
            "strategies_generated",
            proposed=len(raw),
            accepted=len(strategies),
            types=[s.type for s in strategies],
        )
        return strategies
