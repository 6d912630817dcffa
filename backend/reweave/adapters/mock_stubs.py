"""Mock collaborator adapters for local development and tests.

These return realistic stub data so the pipeline, workflow and API can run
end-to-end without the vision model, knowledge service or reasoning model.
Selected by ``settings.use_mock_adapters``.
"""

import json
import tempfile
from pathlib import Path
from typing import Any

from reweave.models.contracts import (
    KnowledgeSnapshot,
    MarketRequest,
    Season,
    StrategyRequest,
    VisionDetection,
    VisionLabel,
)
from reweave.pipeline.calculator import DEFAULT_CONVERSION_FACTORS
from reweave.pipeline.errors import ServiceRejectedError

# Cross-process one-shot failure injection for E2E testing.
# The test writes this sentinel file; the next vision call checks + deletes it.
FORCE_FAILURE_SENTINEL = Path(tempfile.gettempdir()) / "reweave-force-failure"


class MockVisionAdapter:
    def __init__(self, detection: VisionDetection | None = None) -> None:
        self.detection = detection or VisionDetection(
            labels=[
                VisionLabel(name="shirt", confidence=82.0),
                VisionLabel(name="blue", confidence=77.0),
                VisionLabel(name="white", confidence=64.0),
                VisionLabel(name="striped", confidence=58.0),
            ],
            text=[],
        )
        self.calls: list[str] = []

    async def detect(self, image_ref: str) -> VisionDetection:
        self.calls.append(image_ref)
        if FORCE_FAILURE_SENTINEL.exists():
            FORCE_FAILURE_SENTINEL.unlink(missing_ok=True)
            raise ServiceRejectedError("vision", "Injected failure for E2E testing")
        return self.detection


class MockKnowledgeAdapter:
    def __init__(self, snapshot: KnowledgeSnapshot | None = None) -> None:
        self.snapshot = snapshot or KnowledgeSnapshot(
            trends=[
                "relaxed linen silhouettes",
                "earth-tone palettes",
                "gender-neutral basics",
            ],
            conversion_factors=DEFAULT_CONVERSION_FACTORS,
        )
        self.calls: list[tuple[str, str, Season]] = []

    async def retrieve_trends(self, category: str, region: str, season: Season) -> KnowledgeSnapshot:
        self.calls.append((category, region, season))
        return self.snapshot


class MockReasoningAdapter:
    def __init__(
        self,
        explanation: dict[str, Any] | None = None,
        candidates: list[dict[str, Any]] | None = None,
    ) -> None:
        self.explanation = explanation or {
            "explanation": (
                "Striped formal shirts are out of step with current relaxed trends, "
                "and heavier cotton sells poorly in the current season."
            ),
            "trend_alignment": "low",
            "seasonal_mismatch": "high",
            "regional_demand": "medium",
        }
        self.candidates = candidates if candidates is not None else [
            {
                "type": "resale",
                "description": "List on a secondhand marketplace at 40% of original price",
                "effort_level": "low",
                "cost_estimate": 500.0,
                "expected_resale_value": 6000.0,
            },
            {
                "type": "redesign",
                "description": "Crop and re-cut into relaxed short-sleeve shirts",
                "effort_level": "high",
                "cost_estimate": 4000.0,
                "expected_resale_value": 9000.0,
            },
            {
                "type": "repurpose",
                "description": "Convert fabric into tote bags and pouches",
                "effort_level": "medium",
                "cost_estimate": 2500.0,
                "expected_resale_value": 5500.0,
            },
            {
                "type": "redistribution",
                "description": "Move stock to stores in regions with demand for formal wear",
                "effort_level": "medium",
                "cost_estimate": 1200.0,
                "expected_resale_value": 7000.0,
            },
        ]
        self.explain_calls = 0
        self.propose_calls = 0

    async def explain(self, request: MarketRequest) -> str:
        self.explain_calls += 1
        return json.dumps(self.explanation)

    async def propose(self, request: StrategyRequest) -> list[dict[str, Any]]:
        self.propose_calls += 1
        return [dict(c) for c in self.candidates]
