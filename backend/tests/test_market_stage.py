"""Tests for the market analysis stage."""

import json
from datetime import UTC, date, datetime
from unittest.mock import AsyncMock

import pytest

from reweave.adapters.mock_stubs import MockKnowledgeAdapter, MockReasoningAdapter
from reweave.models.contracts import ConversionFactors, KnowledgeSnapshot
from reweave.pipeline.errors import (
    MalformedResponseError,
    RetryExhaustedError,
    ServiceRejectedError,
    TransientServiceError,
)
from reweave.pipeline.retry import RetryExecutor
from reweave.stages.market import (
    DEFAULT_SNAPSHOT,
    MarketStage,
    SnapshotCache,
    parse_market_reasoning,
    season_for,
)

_JULY = datetime(2026, 7, 15, 12, 0, tzinfo=UTC)

_SNAPSHOT = KnowledgeSnapshot(
    trends=["oversized fits"],
    conversion_factors=ConversionFactors(
        garment_weight=0.25,
        reuse_percentage=0.6,
        carbon_per_kg=2.0,
        water_per_kg=9.0,
        landfill_percentage=0.8,
    ),
)


def _stage(knowledge=None, reasoning=None, cache=None) -> MarketStage:
    return MarketStage(
        knowledge or MockKnowledgeAdapter(_SNAPSHOT),
        reasoning or MockReasoningAdapter(),
        RetryExecutor(sleep=AsyncMock()),
        cache=cache,
        clock=lambda: _JULY,
    )


class TestSeasonFor:
    @pytest.mark.parametrize(
        ("month", "season"),
        [(1, "winter"), (4, "summer"), (7, "monsoon"), (9, "monsoon"), (10, "autumn"), (12, "winter")],
    )
    def test_months(self, month, season):
        assert season_for(date(2026, month, 1)) == season

    @pytest.mark.asyncio
    async def test_uses_region_local_date(self, attributes, item_input):
        """20:00 UTC on 31 May is already 1 June in Mumbai."""
        knowledge = MockKnowledgeAdapter(_SNAPSHOT)
        stage = MarketStage(
            knowledge,
            MockReasoningAdapter(),
            RetryExecutor(sleep=AsyncMock()),
            clock=lambda: datetime(2026, 5, 31, 20, 0, tzinfo=UTC),
        )
        analysis = await stage.analyze_market(attributes, item_input)
        assert analysis.season == "monsoon"
        assert knowledge.calls == [("shirt", "Mumbai", "monsoon")]

    @pytest.mark.asyncio
    async def test_timezone_is_configurable(self, attributes, item_input):
        stage = MarketStage(
            MockKnowledgeAdapter(_SNAPSHOT),
            MockReasoningAdapter(),
            RetryExecutor(sleep=AsyncMock()),
            clock=lambda: datetime(2026, 5, 31, 20, 0, tzinfo=UTC),
            season_timezone="UTC",
        )
        analysis = await stage.analyze_market(attributes, item_input)
        assert analysis.season == "summer"


class TestParseMarketReasoning:
    """The explanation document must be complete."""

    def test_fenced_json(self):
        raw = '```json\n{"explanation": "Too heavy.", "trend_alignment": "low", ' \
            '"seasonal_mismatch": "high", "regional_demand": "low"}\n```'
        assert parse_market_reasoning(raw).explanation == "Too heavy."

    def test_prose_around_json(self):
        raw = 'Here you go: {"explanation": "x", "trend_alignment": "medium", ' \
            '"seasonal_mismatch": "low", "regional_demand": "high"} Thanks.'
        assert parse_market_reasoning(raw).regional_demand == "high"

    def test_no_json(self):
        with pytest.raises(MalformedResponseError, match="no JSON"):
            parse_market_reasoning("It is not selling because of the weather.")

    def test_missing_field(self):
        with pytest.raises(MalformedResponseError, match="regional_demand"):
            parse_market_reasoning(json.dumps({"explanation": "x", "trend_alignment": "low", "seasonal_mismatch": "low"}))

    def test_unknown_level(self):
        with pytest.raises(MalformedResponseError):
            parse_market_reasoning(
                json.dumps(
                    {
                        "explanation": "x",
                        "trend_alignment": "extreme",
                        "seasonal_mismatch": "low",
                        "regional_demand": "low",
                    }
                )
            )

    def test_blank_explanation(self):
        with pytest.raises(MalformedResponseError, match=r"validation \(explanation\)"):
            parse_market_reasoning(
                json.dumps(
                    {
                        "explanation": "   ",
                        "trend_alignment": "low",
                        "seasonal_mismatch": "low",
                        "regional_demand": "low",
                    }
                )
            )


class TestAnalyzeMarket:
    """Happy path and the degraded knowledge fallback."""

    @pytest.mark.asyncio
    async def test_happy_path(self, attributes, item_input):
        knowledge = MockKnowledgeAdapter(_SNAPSHOT)
        analysis = await _stage(knowledge=knowledge).analyze_market(attributes, item_input)

        assert analysis.season == "monsoon"
        assert analysis.trends == ["oversized fits"]
        assert analysis.trends_degraded is False
        assert analysis.conversion_factors == _SNAPSHOT.conversion_factors
        assert analysis.trend_alignment == "low"
        assert knowledge.calls == [("shirt", "Mumbai", "monsoon")]

    @pytest.mark.asyncio
    async def test_reasoning_sees_trends_and_season(self, attributes, item_input):
        reasoning = MockReasoningAdapter()
        reasoning.explain = AsyncMock(wraps=reasoning.explain)
        await _stage(reasoning=reasoning).analyze_market(attributes, item_input)
        request = reasoning.explain.await_args.args[0]
        assert request.season == "monsoon"
        assert request.trends == ["oversized fits"]
        assert request.trends_degraded is False

    @pytest.mark.asyncio
    async def test_knowledge_outage_falls_back_to_default(self, attributes, item_input):
        knowledge = AsyncMock()
        knowledge.retrieve_trends.side_effect = TransientServiceError("knowledge", "503")

        analysis = await _stage(knowledge=knowledge).analyze_market(attributes, item_input)

        assert analysis.trends_degraded is True
        assert analysis.trends == DEFAULT_SNAPSHOT.trends
        assert analysis.conversion_factors == DEFAULT_SNAPSHOT.conversion_factors
        assert knowledge.retrieve_trends.await_count == 3

    @pytest.mark.asyncio
    async def test_knowledge_outage_prefers_cached_snapshot(self, attributes, item_input):
        cache = SnapshotCache()
        cache.put("SHIRT", "mumbai ", "monsoon", _SNAPSHOT)
        knowledge = AsyncMock()
        knowledge.retrieve_trends.side_effect = ServiceRejectedError("knowledge", "HTTP 404")

        analysis = await _stage(knowledge=knowledge, cache=cache).analyze_market(attributes, item_input)

        assert analysis.trends_degraded is True
        assert analysis.trends == _SNAPSHOT.trends
        knowledge.retrieve_trends.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_successful_fetch_populates_cache(self, attributes, item_input):
        cache = SnapshotCache()
        await _stage(cache=cache).analyze_market(attributes, item_input)
        assert cache.get("shirt", "Mumbai", "monsoon") == _SNAPSHOT

    @pytest.mark.asyncio
    async def test_malformed_reasoning_fails_stage(self, attributes, item_input):
        reasoning = MockReasoningAdapter(explanation={"explanation": "missing grades"})
        with pytest.raises(MalformedResponseError):
            await _stage(reasoning=reasoning).analyze_market(attributes, item_input)

    @pytest.mark.asyncio
    async def test_reasoning_outage_fails_stage(self, attributes, item_input):
        reasoning = AsyncMock()
        reasoning.explain.side_effect = TransientServiceError("reasoning", "529")
        with pytest.raises(RetryExhaustedError):
            await _stage(reasoning=reasoning).analyze_market(attributes, item_input)
        assert reasoning.explain.await_count == 3
