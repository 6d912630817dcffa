"""Temporal worker: registers the analysis workflow and activity.

Run locally with:
    python -m reweave.worker

Requires a running Temporal server and ``STORE_BACKEND=postgres`` (the
in-memory store is not shared with the API process).
"""

from __future__ import annotations

import asyncio
import sys

import structlog
from temporalio.client import Client
from temporalio.contrib.pydantic import pydantic_data_converter
from temporalio.worker import Worker

from reweave.activities.analyze_item import analyze_item
from reweave.config import settings
from reweave.logging import configure_logging
from reweave.workflows.item_analysis import ItemAnalysisWorkflow

logger = structlog.get_logger()

ACTIVITIES = [analyze_item]

WORKFLOWS = [ItemAnalysisWorkflow]


async def create_temporal_client() -> Client:
    """Local Temporal over plain TCP, or Temporal Cloud with TLS + API key."""
    cloud: dict[str, object] = {}
    if settings.temporal_api_key:
        cloud = {"tls": True, "api_key": settings.temporal_api_key}
    return await Client.connect(
        target_host=settings.temporal_address,
        namespace=settings.temporal_namespace,
        data_converter=pydantic_data_converter,
        **cloud,  # type: ignore[arg-type]
    )


async def run_worker() -> None:
    """Connect to Temporal and run the worker until interrupted."""
    logger.info(
        "worker_connecting",
        address=settings.temporal_address,
        namespace=settings.temporal_namespace,
        task_queue=settings.temporal_task_queue,
    )

    try:
        client = await create_temporal_client()
    except Exception:
        logger.exception("worker_connection_failed", address=settings.temporal_address)
        raise

    worker = Worker(
        client,
        task_queue=settings.temporal_task_queue,
        workflows=WORKFLOWS,
        activities=ACTIVITIES,
    )

    if settings.store_backend == "memory":
        logger.warning(
            "worker_using_memory_store",
            hint="Items created through the API are invisible here; set STORE_BACKEND=postgres",
        )
    if settings.use_mock_adapters and settings.environment != "development":
        logger.warning(
            "worker_using_mock_adapters",
            environment=settings.environment,
            hint="Set USE_MOCK_ADAPTERS=false for real collaborators",
        )

    logger.info(
        "worker_started",
        task_queue=settings.temporal_task_queue,
        workflow_count=len(WORKFLOWS),
        activity_count=len(ACTIVITIES),
    )

    await worker.run()
    logger.info("worker_stopped")


def main() -> None:
    """Entrypoint for `python -m reweave.worker`."""
    configure_logging()
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info("worker_interrupted")
    except Exception:
        logger.exception("worker_fatal_error")
        sys.exit(1)


if __name__ == "__main__":
    main()
