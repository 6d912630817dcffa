"""Tests for the vision stage: taxonomy mapping and the confidence gate."""

from unittest.mock import AsyncMock

import pytest

from reweave.adapters.mock_stubs import MockVisionAdapter
from reweave.models.contracts import VisionDetection, VisionLabel
from reweave.pipeline.errors import LowConfidenceError, RetryExhaustedError, TransientServiceError
from reweave.pipeline.retry import RetryExecutor
from reweave.stages.vision import VisionStage, map_attributes


def _detection(*labels: tuple[str, float], text: list[str] | None = None) -> VisionDetection:
    return VisionDetection(
        labels=[VisionLabel(name=n, confidence=c) for n, c in labels],
        text=text or [],
    )


class TestMapAttributes:
    """Label normalization and the inclusive 70% threshold."""

    def test_exact_threshold_passes(self):
        attributes = map_attributes(_detection(("shirt", 70.0)), threshold=70.0)
        assert attributes.garment_type == "shirt"
        assert attributes.confidence == 70.0

    def test_just_below_threshold_fails(self):
        with pytest.raises(LowConfidenceError) as exc_info:
            map_attributes(_detection(("shirt", 69.9)), threshold=70.0)
        assert exc_info.value.confidence == 69.9
        assert exc_info.value.label == "shirt"
        assert exc_info.value.stage == "vision"

    def test_no_garment_label_fails(self):
        with pytest.raises(LowConfidenceError, match="no garment type"):
            map_attributes(_detection(("blue", 99.0), ("striped", 95.0)))

    def test_highest_confidence_garment_wins(self):
        attributes = map_attributes(_detection(("jacket", 75.0), ("Dress Shirt", 91.0)))
        assert attributes.garment_type == "shirt"
        assert attributes.confidence == 91.0

    def test_synonyms_and_order(self):
        attributes = map_attributes(
            _detection(
                ("tee", 88.0),
                ("grey", 40.0),
                ("Navy Blue", 80.0),
                ("plaid", 60.0),
                ("cotton", 99.0),
            )
        )
        assert attributes.garment_type == "t-shirt"
        assert attributes.colors == ["navy", "gray"]
        assert attributes.patterns == ["checked"]

    def test_duplicate_buckets_collapse(self):
        attributes = map_attributes(_detection(("shirt", 90.0), ("maroon", 80.0), ("burgundy", 70.0)))
        assert attributes.colors == ["red"]

    def test_detected_text_trimmed(self):
        attributes = map_attributes(_detection(("shirt", 90.0), text=[" ZARA ", "", "  "]))
        assert attributes.detected_text == ["ZARA"]


class TestVisionStage:
    """Stage wiring: retries around the adapter, gate after it."""

    @pytest.mark.asyncio
    async def test_mock_adapter_produces_attributes(self):
        adapter = MockVisionAdapter()
        stage = VisionStage(adapter, RetryExecutor(sleep=AsyncMock()))
        attributes = await stage.analyze_attributes("garments/a.jpg")
        assert attributes.garment_type == "shirt"
        assert attributes.colors == ["blue", "white"]
        assert adapter.calls == ["garments/a.jpg"]

    @pytest.mark.asyncio
    async def test_transient_errors_retried(self):
        adapter = AsyncMock()
        adapter.detect.side_effect = [
            TransientServiceError("vision", "503"),
            _detection(("shirt", 80.0)),
        ]
        stage = VisionStage(adapter, RetryExecutor(sleep=AsyncMock()))
        attributes = await stage.analyze_attributes("k")
        assert attributes.garment_type == "shirt"
        assert adapter.detect.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise(self):
        adapter = AsyncMock()
        adapter.detect.side_effect = TransientServiceError("vision", "503")
        stage = VisionStage(adapter, RetryExecutor(sleep=AsyncMock()))
        with pytest.raises(RetryExhaustedError):
            await stage.analyze_attributes("k")
        assert adapter.detect.await_count == 3

    @pytest.mark.asyncio
    async def test_custom_threshold(self):
        adapter = MockVisionAdapter(_detection(("shirt", 85.0)))
        stage = VisionStage(adapter, RetryExecutor(sleep=AsyncMock()), confidence_threshold=90.0)
        with pytest.raises(LowConfidenceError):
            await stage.analyze_attributes("k")
