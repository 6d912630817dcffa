"""Shared fixtures: API client, item store and sample records."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from reweave.models.contracts import (
    ConversionFactors,
    GarmentAttributes,
    InventoryItem,
    ItemInput,
    MarketAnalysis,
)
from reweave.persistence.gateway import InMemoryItemStore
from reweave.pipeline import factory
from reweave.pipeline.calculator import DEFAULT_CONVERSION_FACTORS


@pytest.fixture
async def client():
    """Async HTTP client wired to the FastAPI app through ASGI."""
    from reweave.main import app

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture(autouse=True)
def _reset_store():
    """Every test starts with a fresh process-wide item store."""
    factory.reset_store()
    yield
    factory.reset_store()


@pytest.fixture
def store() -> InMemoryItemStore:
    return InMemoryItemStore()


@pytest.fixture
def item_input() -> ItemInput:
    return ItemInput(
        category="shirt",
        quantity=100,
        region="Mumbai",
        days_unsold=90,
        image_key="garments/shirt-001.jpg",
    )


@pytest.fixture
def attributes() -> GarmentAttributes:
    return GarmentAttributes(
        garment_type="shirt",
        colors=["blue", "white"],
        patterns=["striped"],
        confidence=82.0,
    )


@pytest.fixture
def factors() -> ConversionFactors:
    return DEFAULT_CONVERSION_FACTORS


@pytest.fixture
def market_analysis(factors: ConversionFactors) -> MarketAnalysis:
    return MarketAnalysis(
        explanation="Formal stripes are out of season.",
        trend_alignment="low",
        seasonal_mismatch="high",
        regional_demand="medium",
        season="monsoon",
        trends=["relaxed linen"],
        conversion_factors=factors,
    )


@pytest.fixture
async def pending_item(store: InMemoryItemStore, item_input: ItemInput) -> InventoryItem:
    return await store.create(InventoryItem(id="item-1", input=item_input))
