"""Explicit wiring of the pipeline's collaborators.

Nothing in the core reaches for a global client: entrypoints (API, activity,
tests) call these builders with a ``Settings`` instance and pass the results
down. The item store is process-wide because the in-memory backend is only
useful if the API and the in-process runner share it.
"""

from __future__ import annotations

from reweave.adapters.base import KnowledgeAdapter, ReasoningAdapter, VisionAdapter
from reweave.config import Settings
from reweave.persistence.gateway import InMemoryItemStore, PersistenceGateway
from reweave.pipeline.orchestrator import Orchestrator
from reweave.pipeline.retry import RetryExecutor, RetryPolicy
from reweave.stages.market import SnapshotCache

_store: PersistenceGateway | None = None
_snapshot_cache = SnapshotCache()


def build_store(settings: Settings) -> PersistenceGateway:
    if settings.store_backend == "postgres":
        from reweave.persistence.postgres import PostgresItemStore

        return PostgresItemStore(settings.database_url)
    if settings.store_backend == "memory":
        return InMemoryItemStore()
    raise ValueError(f"unknown store_backend: {settings.store_backend!r}")


def get_store(settings: Settings) -> PersistenceGateway:
    """Lazy-init process-wide item store."""
    global _store  # noqa: PLW0603
    if _store is None:
        _store = build_store(settings)
    return _store


def reset_store() -> None:
    global _store  # noqa: PLW0603
    _store = None


def build_adapters(settings: Settings) -> tuple[VisionAdapter, KnowledgeAdapter, ReasoningAdapter]:
    """Mock stubs or real clients, based on ``settings.use_mock_adapters``."""
    if settings.use_mock_adapters:
        from reweave.adapters.mock_stubs import (
            MockKnowledgeAdapter,
            MockReasoningAdapter,
            MockVisionAdapter,
        )

        return MockVisionAdapter(), MockKnowledgeAdapter(), MockReasoningAdapter()

    from reweave.adapters.claude import build_client
    from reweave.adapters.knowledge import HttpKnowledgeAdapter
    from reweave.adapters.reasoning import ClaudeReasoningAdapter
    from reweave.adapters.vision import ClaudeVisionAdapter

    client = build_client(settings.anthropic_api_key)
    return (
        ClaudeVisionAdapter(client, settings.vision_model),
        HttpKnowledgeAdapter.from_settings(
            settings.knowledge_base_url,
            settings.knowledge_api_key,
            settings.knowledge_timeout_seconds,
        ),
        ClaudeReasoningAdapter(client, settings.reasoning_model),
    )


def build_retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        maximum_attempts=settings.retry_maximum_attempts,
        initial_interval=settings.retry_initial_interval_seconds,
        backoff_coefficient=settings.retry_backoff_coefficient,
    )


def build_orchestrator(settings: Settings, *, store: PersistenceGateway | None = None) -> Orchestrator:
    vision, knowledge, reasoning = build_adapters(settings)
    return Orchestrator(
        store if store is not None else get_store(settings),
        vision,
        knowledge,
        reasoning,
        retry=RetryExecutor(build_retry_policy(settings)),
        confidence_threshold=settings.confidence_threshold,
        snapshot_cache=_snapshot_cache,
        season_timezone=settings.season_timezone,
        deadline_seconds=settings.pipeline_deadline_seconds,
        max_conflict_reloads=settings.max_conflict_reloads,
    )
