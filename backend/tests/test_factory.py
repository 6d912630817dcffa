"""Tests for dependency wiring."""

import pytest

from reweave.adapters.knowledge import HttpKnowledgeAdapter
from reweave.adapters.mock_stubs import MockKnowledgeAdapter, MockReasoningAdapter, MockVisionAdapter
from reweave.adapters.reasoning import ClaudeReasoningAdapter
from reweave.adapters.vision import ClaudeVisionAdapter
from reweave.config import Settings
from reweave.persistence.gateway import InMemoryItemStore
from reweave.persistence.postgres import PostgresItemStore
from reweave.pipeline.factory import (
    build_adapters,
    build_orchestrator,
    build_retry_policy,
    build_store,
    get_store,
)


class TestBuildStore:
    def test_memory(self):
        assert isinstance(build_store(Settings(store_backend="memory")), InMemoryItemStore)

    def test_postgres(self):
        assert isinstance(build_store(Settings(store_backend="postgres")), PostgresItemStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="store_backend"):
            build_store(Settings(store_backend="sqlite"))

    def test_get_store_is_shared(self):
        settings = Settings()
        assert get_store(settings) is get_store(settings)


class TestBuildAdapters:
    def test_mock_adapters(self):
        vision, knowledge, reasoning = build_adapters(Settings(use_mock_adapters=True))
        assert isinstance(vision, MockVisionAdapter)
        assert isinstance(knowledge, MockKnowledgeAdapter)
        assert isinstance(reasoning, MockReasoningAdapter)

    def test_real_adapters(self):
        vision, knowledge, reasoning = build_adapters(
            Settings(use_mock_adapters=False, anthropic_api_key="test-key", knowledge_base_url="https://kb")
        )
        assert isinstance(vision, ClaudeVisionAdapter)
        assert isinstance(knowledge, HttpKnowledgeAdapter)
        assert isinstance(reasoning, ClaudeReasoningAdapter)
        assert vision.client is reasoning.client


class TestBuildOrchestrator:
    def test_retry_policy_from_settings(self):
        policy = build_retry_policy(Settings(retry_maximum_attempts=5, retry_initial_interval_seconds=0.5))
        assert policy.maximum_attempts == 5
        assert policy.schedule(2) == [0.5, 1.0]

    def test_settings_flow_through(self):
        store = InMemoryItemStore()
        orchestrator = build_orchestrator(
            Settings(confidence_threshold=80.0, pipeline_deadline_seconds=30.0, max_conflict_reloads=1),
            store=store,
        )
        assert orchestrator.store is store
        assert orchestrator.vision.confidence_threshold == 80.0
        assert orchestrator.deadline_seconds == 30.0
        assert orchestrator.max_conflict_reloads == 1
