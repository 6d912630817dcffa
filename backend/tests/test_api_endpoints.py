"""Integration tests for the FastAPI endpoints.

Runs against the in-memory store and mock collaborators: create an item,
start analysis, poll until terminal. Temporal mode is exercised with a mock
client on app.state.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from temporalio.exceptions import WorkflowAlreadyStartedError

from reweave.config import settings
from reweave.main import app
from reweave.pipeline.errors import TransientServiceError

_BODY = {
    "category": "shirt",
    "quantity": 100,
    "region": "Mumbai",
    "days_unsold": 90,
    "image_key": "garments/shirt-001.jpg",
}


async def _create(client) -> str:
    resp = await client.post("/api/v1/items", json=_BODY)
    assert resp.status_code == 201
    return resp.json()["item_id"]


async def _poll_until_terminal(client, item_id: str) -> dict:
    for _ in range(200):
        body = (await client.get(f"/api/v1/items/{item_id}")).json()
        if body["status"] in ("completed", "failed"):
            return body
        await asyncio.sleep(0.01)
    raise AssertionError(f"item {item_id} never reached a terminal status")


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_ok(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["store"] == "memory"
        assert body["postgres"] == "disabled"
        assert body["temporal"] == "disabled"

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client):
        resp = await client.get("/health", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"


class TestCreateItem:
    @pytest.mark.asyncio
    async def test_create_returns_pending(self, client):
        resp = await client.post("/api/v1/items", json=_BODY)
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "pending"
        assert body["item_id"]

    @pytest.mark.asyncio
    async def test_invalid_input_is_422_error_response(self, client):
        resp = await client.post("/api/v1/items", json=dict(_BODY, quantity=-5))
        assert resp.status_code == 422
        body = resp.json()
        assert body["error"] == "validation_error"
        assert body["retryable"] is False
        assert "quantity" in body["message"]

    @pytest.mark.asyncio
    async def test_store_outage_is_503(self, client):
        store = MagicMock()
        store.create = AsyncMock(side_effect=TransientServiceError("item_store", "down"))
        with patch("reweave.api.routes.items.get_store", return_value=store):
            resp = await client.post("/api/v1/items", json=_BODY)
        assert resp.status_code == 503
        assert resp.json()["retryable"] is True


class TestGetItem:
    @pytest.mark.asyncio
    async def test_unknown_item_404(self, client):
        resp = await client.get("/api/v1/items/nope")
        assert resp.status_code == 404
        assert resp.json()["error"] == "item_not_found"

    @pytest.mark.asyncio
    async def test_new_item_not_final(self, client):
        item_id = await _create(client)
        body = (await client.get(f"/api/v1/items/{item_id}")).json()
        assert body["status"] == "pending"
        assert body["input"]["region"] == "Mumbai"
        assert body["strategies"] is None
        assert body["best_strategy_index"] is None


class TestAnalysisInProcess:
    """use_temporal=False: analysis runs as a background task."""

    @pytest.mark.asyncio
    async def test_full_flow(self, client):
        item_id = await _create(client)

        resp = await client.post(f"/api/v1/items/{item_id}/analysis")
        assert resp.status_code == 202
        assert resp.json()["workflow_id"] is None

        body = await _poll_until_terminal(client, item_id)
        assert body["status"] == "completed"
        assert body["best_strategy_index"] == 0
        profits = [s["profit_recovery"] for s in body["strategies"]]
        assert profits == sorted(profits, reverse=True)
        assert body["strategies"][0]["sustainability"]["waste_reduction"] == pytest.approx(15.0)
        assert body["total_sustainability_impact"]["waste_reduction"] == pytest.approx(60.0)

    @pytest.mark.asyncio
    async def test_unknown_item_404(self, client):
        resp = await client.post("/api/v1/items/nope/analysis")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_finished_item_409(self, client):
        item_id = await _create(client)
        await client.post(f"/api/v1/items/{item_id}/analysis")
        await _poll_until_terminal(client, item_id)

        resp = await client.post(f"/api/v1/items/{item_id}/analysis")
        assert resp.status_code == 409
        assert resp.json()["error"] == "analysis_finished"


class TestAnalysisTemporal:
    """use_temporal=True: analysis starts an ItemAnalysisWorkflow."""

    @pytest.fixture
    def temporal_client(self):
        mock_client = MagicMock()
        mock_client.start_workflow = AsyncMock()
        app.state.temporal_client = mock_client
        with patch.object(settings, "use_temporal", True):
            yield mock_client
        del app.state.temporal_client

    @pytest.mark.asyncio
    async def test_starts_workflow(self, client, temporal_client):
        from reweave.workflows.item_analysis import ItemAnalysisWorkflow

        item_id = await _create(client)
        resp = await client.post(f"/api/v1/items/{item_id}/analysis")

        assert resp.status_code == 202
        assert resp.json()["workflow_id"] == f"item-analysis-{item_id}"
        temporal_client.start_workflow.assert_awaited_once_with(
            ItemAnalysisWorkflow.run,
            item_id,
            id=f"item-analysis-{item_id}",
            task_queue=settings.temporal_task_queue,
        )

    @pytest.mark.asyncio
    async def test_already_running_is_accepted(self, client, temporal_client):
        item_id = await _create(client)
        temporal_client.start_workflow.side_effect = WorkflowAlreadyStartedError(
            f"item-analysis-{item_id}", "ItemAnalysisWorkflow"
        )
        resp = await client.post(f"/api/v1/items/{item_id}/analysis")
        assert resp.status_code == 202


class TestLifespan:
    """Temporal client connection on startup."""

    @pytest.mark.asyncio
    async def test_connects_when_enabled(self):
        from reweave.main import lifespan

        mock_client = MagicMock()
        with (
            patch("reweave.main.settings") as mock_settings,
            patch("reweave.worker.create_temporal_client", new_callable=AsyncMock, return_value=mock_client),
        ):
            mock_settings.use_temporal = True
            async with lifespan(app):
                assert app.state.temporal_client is mock_client
        del app.state.temporal_client

    @pytest.mark.asyncio
    async def test_skips_when_disabled(self):
        from reweave.main import lifespan

        with (
            patch("reweave.main.settings") as mock_settings,
            patch("reweave.worker.create_temporal_client", new_callable=AsyncMock) as mock_create,
        ):
            mock_settings.use_temporal = False
            async with lifespan(app):
                mock_create.assert_not_called()


class TestUnhandledErrors:
    @pytest.mark.asyncio
    async def test_unexpected_exception_is_500_error_response(self, client):
        store = MagicMock()
        store.get = AsyncMock(side_effect=RuntimeError("boom"))
        with patch("reweave.api.routes.items.get_store", return_value=store):
            resp = await client.get("/api/v1/items/x")
        assert resp.status_code == 500
        assert resp.json() == {
            "error": "internal_error",
            "message": "An unexpected error occurred",
            "retryable": True,
        }


class TestInputValidation:
    """Input that passes the request schema but not ingestion rules."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("image_key", ["../secrets/a.jpg", "/etc/passwd", "s3://bucket/a.jpg"])
    async def test_bad_image_key_rejected(self, client, image_key):
        resp = await client.post("/api/v1/items", json=dict(_BODY, image_key=image_key))
        assert resp.status_code == 422
        body = resp.json()
        assert body["error"] == "invalid_input"
        assert "image_key" in body["message"]
        assert body["retryable"] is False

    @pytest.mark.asyncio
    async def test_url_image_accepted(self, client):
        resp = await client.post("/api/v1/items", json=dict(_BODY, image_key="https://cdn.example.com/a.jpg"))
        assert resp.status_code == 201
