"""Orchestrator: drives one item through the fixed analysis pipeline.

    pending --vision--> attributes_extracted --market--> market_analyzed
        --strategies + calculation + ranking--> completed
    any non-terminal status --non-retryable error / retries exhausted--> failed

Every pass reloads the item and picks the stage from its *stored* status, so a
crashed or duplicated run resumes where the committed state says it should and
never trusts memory from an earlier invocation. Each transition is a single
conditional write keyed on the status the stage started from; losing that race
means another runner advanced the item, so we reload and re-evaluate.

Retryable errors never reach this module: the ``RetryExecutor`` either
resolves them or turns them into ``RetryExhaustedError``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime

import structlog
from pydantic import ValidationError

from reweave.adapters.base import KnowledgeAdapter, ReasoningAdapter, VisionAdapter
from reweave.models.contracts import InventoryItem, ItemPatch, utcnow
from reweave.persistence.gateway import PersistenceGateway
from reweave.pipeline import calculator, ranker
from reweave.pipeline.errors import (
    ConcurrencyConflictError,
    MalformedResponseError,
    PipelineError,
    PipelineTimeoutError,
)
from reweave.pipeline.retry import RetryExecutor
from reweave.stages.market import DEFAULT_SEASON_TIMEZONE, MarketStage, SnapshotCache
from reweave.stages.strategies import StrategyStage
from reweave.stages.vision import DEFAULT_CONFIDENCE_THRESHOLD, VisionStage

log = structlog.get_logger("pipeline.orchestrator")

STAGE_FOR_STATUS: dict[str, str] = {
    "pending": VisionStage.name,
    "attributes_extracted": MarketStage.name,
    "market_analyzed": StrategyStage.name,
}

DEFAULT_DEADLINE_SECONDS = 120.0
DEFAULT_MAX_CONFLICT_RELOADS = 3


class Orchestrator:
    def __init__(
        self,
        store: PersistenceGateway,
        vision: VisionAdapter,
        knowledge: KnowledgeAdapter,
        reasoning: ReasoningAdapter,
        *,
        retry: RetryExecutor | None = None,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        snapshot_cache: SnapshotCache | None = None,
        clock: Callable[[], datetime] = utcnow,
        season_timezone: str = DEFAULT_SEASON_TIMEZONE,
        deadline_seconds: float = DEFAULT_DEADLINE_SECONDS,
        max_conflict_reloads: int = DEFAULT_MAX_CONFLICT_RELOADS,
    ) -> None:
        self.store = store
        self.retry = retry or RetryExecutor()
        self.vision = VisionStage(vision, self.retry, confidence_threshold=confidence_threshold)
        self.market = MarketStage(
            knowledge, reasoning, self.retry, cache=snapshot_cache, clock=clock, season_timezone=season_timezone
        )
        self.strategies = StrategyStage(reasoning, self.retry)
        self.deadline_seconds = deadline_seconds
        self.max_conflict_reloads = max_conflict_reloads

    async def run(self, item_id: str) -> InventoryItem:
        """Run the pipeline to a terminal status and return the stored record.

        A terminal item is returned untouched. Raises ItemNotFoundError for an
        unknown id and ConcurrencyConflictError if other writers keep winning
        past ``max_conflict_reloads``.
        """
        with structlog.contextvars.bound_contextvars(item_id=item_id):
            log.info("pipeline_start", deadline_seconds=self.deadline_seconds)
            try:
                item = await asyncio.wait_for(self._drive(item_id), timeout=self.deadline_seconds)
            except TimeoutError:
                log.error("pipeline_deadline_exceeded", deadline_seconds=self.deadline_seconds)
                item = await self._fail_after_timeout(item_id)
            log.info("pipeline_finished", status=item.status, error_message=item.error_message)
            return item

    async def _drive(self, item_id: str) -> InventoryItem:
        reloads = 0
        while True:
            item = await self._load(item_id)
            if item.is_terminal:
                return item
            stage = STAGE_FOR_STATUS[item.status]
            try:
                try:
                    await self._advance(item, stage)
                except ConcurrencyConflictError:
                    raise
                except PipelineError as exc:
                    return await self._fail(item, stage, exc)
            except ConcurrencyConflictError as exc:
                reloads += 1
                if reloads > self.max_conflict_reloads:
                    log.error("conflict_reloads_exhausted", reloads=reloads - 1, error=str(exc))
                    raise
                log.warning("conflict_reload", stage=stage, reload=reloads, error=str(exc))

    async def _advance(self, item: InventoryItem, stage: str) -> InventoryItem:
        log.info("stage_start", stage=stage, status=item.status)
        try:
            patch = await self._run_stage(item)
        except ValidationError as exc:
            # a collaborator payload that slipped past stage validation
            raise MalformedResponseError(
                f"stage output failed validation: {exc.error_count()} errors", stage=stage
            ) from exc
        updated = await self._commit(item, patch)
        log.info("stage_complete", stage=stage, status=updated.status)
        return updated

    async def _run_stage(self, item: InventoryItem) -> ItemPatch:
        if item.status == "pending":
            attributes = await self.vision.analyze_attributes(item.input.image_key)
            return ItemPatch(status="attributes_extracted", attributes=attributes)
        if item.status == "attributes_extracted":
            assert item.attributes is not None  # written with this status
            market = await self.market.analyze_market(item.attributes, item.input)
            return ItemPatch(status="market_analyzed", market_analysis=market)
        assert item.attributes is not None and item.market_analysis is not None
        generated = await self.strategies.generate_strategies(
            item.attributes, item.market_analysis, item.input
        )
        ranked = ranker.rank(generated)
        return ItemPatch(
            status="completed",
            strategies=ranked,
            total_sustainability_impact=calculator.aggregate(s.sustainability for s in ranked),
        )

    async def _fail(self, item: InventoryItem, stage: str, exc: PipelineError) -> InventoryItem:
        message = f"{stage} stage failed: {exc}"
        log.error(
            "item_failed",
            stage=stage,
            status=item.status,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return await self._commit(item, ItemPatch(status="failed", error_message=message))

    async def _fail_after_timeout(self, item_id: str) -> InventoryItem:
        last_conflict: ConcurrencyConflictError | None = None
        for _ in range(self.max_conflict_reloads + 1):
            item = await self._load(item_id)
            if item.is_terminal:
                return item
            stage = STAGE_FOR_STATUS[item.status]
            try:
                return await self._fail(
                    item, stage, PipelineTimeoutError(self.deadline_seconds, stage=stage)
                )
            except ConcurrencyConflictError as exc:
                last_conflict = exc
                log.warning("conflict_reload", stage=stage, error=str(exc))
        assert last_conflict is not None
        raise last_conflict

    async def _load(self, item_id: str) -> InventoryItem:
        return await self.retry.execute(lambda: self.store.get(item_id), name="store.get")

    async def _commit(self, item: InventoryItem, patch: ItemPatch) -> InventoryItem:
        return await self.retry.execute(
            lambda: self.store.conditional_update(item.id, item.status, patch),
            name="store.conditional_update",
        )
