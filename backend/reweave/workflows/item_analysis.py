"""ItemAnalysisWorkflow: one instance per analysis request.

Workflow ID = ``item-analysis-{item_id}``, so a second trigger for an item that
is still being analysed is rejected by Temporal instead of racing the first.
The item record, not workflow state, is the source of truth; callers poll it.
"""

from __future__ import annotations

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from reweave.activities.analyze_item import analyze_item
    from reweave.models.contracts import AnalyzeItemInput, AnalyzeItemOutput

# Covers the pipeline deadline plus store round-trips.
_ANALYSIS_TIMEOUT = timedelta(minutes=3)
_ANALYSIS_RETRY = RetryPolicy(
    maximum_attempts=3,
    initial_interval=timedelta(seconds=5),
    non_retryable_error_types=["ItemNotFoundError"],
)


def workflow_id_for(item_id: str) -> str:
    return f"item-analysis-{item_id}"


@workflow.defn
class ItemAnalysisWorkflow:
    @workflow.run
    async def run(self, item_id: str) -> AnalyzeItemOutput:
        workflow.logger.info("Analysing item %s", item_id)
        result = await workflow.execute_activity(
            analyze_item,
            AnalyzeItemInput(item_id=item_id),
            start_to_close_timeout=_ANALYSIS_TIMEOUT,
            retry_policy=_ANALYSIS_RETRY,
        )
        workflow.logger.info("Item %s finished with status %s", item_id, result.status)
        return result
