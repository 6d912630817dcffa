"""Market analysis stage: why the item is not selling.

Trend data from the knowledge collaborator is an enrichment, not a hard
dependency: when it cannot be fetched the stage falls back to the last good
snapshot for the same (category, region, season), or to a fixed default, and
marks the analysis ``trends_degraded``. The reasoning response, on the other
hand, must parse into a complete ``MarketReasoning`` or the stage fails.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime
from zoneinfo import ZoneInfo

import structlog
from pydantic import ValidationError

from reweave.adapters.base import KnowledgeAdapter, ReasoningAdapter
from reweave.models.contracts import (
    GarmentAttributes,
    ItemInput,
    KnowledgeSnapshot,
    MarketAnalysis,
    MarketReasoning,
    MarketRequest,
    Season,
    utcnow,
)
from reweave.pipeline.calculator import DEFAULT_CONVERSION_FACTORS
from reweave.pipeline.errors import (
    MalformedResponseError,
    RetryExhaustedError,
    ServiceRejectedError,
)
from reweave.pipeline.retry import RetryExecutor
from reweave.utils.json_text import extract_json_object

log = structlog.get_logger("stages.market")

STAGE = "market_analysis"

# Seasons as experienced in the reference region (western India), on its local date.
DEFAULT_SEASON_TIMEZONE = "Asia/Kolkata"

_SEASON_BY_MONTH: dict[int, Season] = {
    12: "winter",
    1: "winter",
    2: "winter",
    3: "summer",
    4: "summer",
    5: "summer",
    6: "monsoon",
    7: "monsoon",
    8: "monsoon",
    9: "monsoon",
    10: "autumn",
    11: "autumn",
}

DEFAULT_SNAPSHOT = KnowledgeSnapshot(
    trends=["steady demand for everyday basics", "growing interest in upcycled fashion"],
    conversion_factors=DEFAULT_CONVERSION_FACTORS,
)


def season_for(day: date) -> Season:
    return _SEASON_BY_MONTH[day.month]


class SnapshotCache:
    """Last successful knowledge snapshot per (category, region, season)."""

    def __init__(self) -> None:
        self._snapshots: dict[tuple[str, str, str], KnowledgeSnapshot] = {}

    @staticmethod
    def _key(category: str, region: str, season: str) -> tuple[str, str, str]:
        return (category.strip().lower(), region.strip().lower(), season)

    def get(self, category: str, region: str, season: str) -> KnowledgeSnapshot | None:
        return self._snapshots.get(self._key(category, region, season))

    def put(self, category: str, region: str, season: str, snapshot: KnowledgeSnapshot) -> None:
        self._snapshots[self._key(category, region, season)] = snapshot


def parse_market_reasoning(raw: str) -> MarketReasoning:
    data = extract_json_object(raw)
    if data is None:
        raise MalformedResponseError("reasoning returned no JSON market explanation", stage=STAGE)
    try:
        reasoning = MarketReasoning.model_validate(data)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise MalformedResponseError(
            f"market explanation failed validation ({fields})", stage=STAGE
        ) from exc
    return reasoning


class MarketStage:
    name = STAGE

    def __init__(
        self,
        knowledge: KnowledgeAdapter,
        reasoning: ReasoningAdapter,
        retry: RetryExecutor,
        *,
        cache: SnapshotCache | None = None,
        clock: Callable[[], datetime] = utcnow,
        season_timezone: str = DEFAULT_SEASON_TIMEZONE,
    ) -> None:
        self.knowledge = knowledge
        self.reasoning = reasoning
        self.retry = retry
        self.cache = cache if cache is not None else SnapshotCache()
        self.clock = clock
        self.season_zone = ZoneInfo(season_timezone)

    async def fetch_snapshot(
        self, category: str, region: str, season: Season
    ) -> tuple[KnowledgeSnapshot, bool]:
        """Return (snapshot, degraded)."""
        try:
            snapshot = await self.retry.execute(
                lambda: self.knowledge.retrieve_trends(category, region, season),
                name="knowledge.retrieve_trends",
            )
        except (RetryExhaustedError, MalformedResponseError, ServiceRejectedError) as exc:
            cached = self.cache.get(category, region, season)
            log.warning(
                "knowledge_degraded",
                category=category,
                region=region,
                season=season,
                fallback="cached" if cached else "default",
                error=str(exc),
            )
            return (cached or DEFAULT_SNAPSHOT), True
        self.cache.put(category, region, season, snapshot)
        return snapshot, False

    async def analyze_market(self, attributes: GarmentAttributes, input: ItemInput) -> MarketAnalysis:
        season = season_for(self.clock().astimezone(self.season_zone).date())
        snapshot, degraded = await self.fetch_snapshot(input.category, input.region, season)

        request = MarketRequest(
            attributes=attributes,
            input=input,
            season=season,
            trends=snapshot.trends,
            trends_degraded=degraded,
        )
        raw = await self.retry.execute(
            lambda: self.reasoning.explain(request),
            name="reasoning.explain",
        )
        reasoning = parse_market_reasoning(raw)

        log.info(
            "market_analyzed",
            season=season,
            trends_degraded=degraded,
            trend_alignment=reasoning.trend_alignment,
            seasonal_mismatch=reasoning.seasonal_mismatch,
            regional_demand=reasoning.regional_demand,
        )
        return MarketAnalysis(
            explanation=reasoning.explanation.strip(),
            trend_alignment=reasoning.trend_alignment,
            seasonal_mismatch=reasoning.seasonal_mismatch,
            regional_demand=reasoning.regional_demand,
            season=season,
            trends=snapshot.trends,
            trends_degraded=degraded,
            conversion_factors=snapshot.conversion_factors,
        )
