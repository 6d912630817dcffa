"""Temporal activity: runs the analysis pipeline for one item.

The orchestrator does its own per-call retries and writes ``failed`` for
domain errors, so a normal return covers both ``completed`` and ``failed``.
Only infrastructure problems escape: an unknown item is non-retryable, while a
store outage or a lost write race is left to the workflow's retry policy.
Re-running is safe because every run resumes from the stored status.
"""

from __future__ import annotations

import structlog
from temporalio import activity
from temporalio.exceptions import ApplicationError

from reweave.config import settings
from reweave.models.contracts import AnalyzeItemInput, AnalyzeItemOutput
from reweave.pipeline.errors import ItemNotFoundError
from reweave.pipeline.factory import build_orchestrator

logger = structlog.get_logger()


@activity.defn
async def analyze_item(input: AnalyzeItemInput) -> AnalyzeItemOutput:
    logger.info("analyze_item_start", item_id=input.item_id, attempt=activity.info().attempt)
    orchestrator = build_orchestrator(settings)
    try:
        item = await orchestrator.run(input.item_id)
    except ItemNotFoundError as exc:
        raise ApplicationError(str(exc), type="ItemNotFoundError", non_retryable=True) from exc
    return AnalyzeItemOutput(item_id=item.id, status=item.status, error_message=item.error_message)
