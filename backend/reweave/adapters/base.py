"""Collaborator interfaces consumed by the pipeline.

Implementations do request/response mapping only: they translate transport
and client-library failures into ``reweave.pipeline.errors`` and validate
payloads against the contract models. Retrying is the caller's job.
"""

from __future__ import annotations

from typing import Any, Protocol

from reweave.models.contracts import (
    KnowledgeSnapshot,
    MarketRequest,
    Season,
    StrategyRequest,
    VisionDetection,
)


class VisionAdapter(Protocol):
    async def detect(self, image_ref: str) -> VisionDetection: ...


class KnowledgeAdapter(Protocol):
    async def retrieve_trends(self, category: str, region: str, season: Season) -> KnowledgeSnapshot: ...


class ReasoningAdapter(Protocol):
    async def explain(self, request: MarketRequest) -> str:
        """Return the raw market explanation document (JSON text)."""
        ...

    async def propose(self, request: StrategyRequest) -> list[dict[str, Any]]:
        """Return raw, unvalidated strategy candidates."""
        ...
