"""Reweave contract models.

Every value that crosses a boundary (item store, collaborator adapters,
Temporal payloads, HTTP API) is one of these models. Collaborator responses are
validated against them before the pipeline trusts a single field.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

# === Shared Types ===

ItemStatus = Literal["pending", "attributes_extracted", "market_analyzed", "completed", "failed"]
StrategyType = Literal["redesign", "repurpose", "resale", "redistribution"]
Level = Literal["low", "medium", "high"]
Season = Literal["winter", "summer", "monsoon", "autumn"]

STRATEGY_TYPES: tuple[str, ...] = ("redesign", "repurpose", "resale", "redistribution")
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})

# completed and failed share a rank: neither may follow the other.
STATUS_RANK: dict[str, int] = {
    "pending": 0,
    "attributes_extracted": 1,
    "market_analyzed": 2,
    "completed": 3,
    "failed": 3,
}


def utcnow() -> datetime:
    return datetime.now(UTC)


class ItemInput(BaseModel):
    """User-supplied fields captured at ingestion. Never modified afterwards."""

    model_config = ConfigDict(frozen=True)

    category: str = Field(min_length=1)
    quantity: int = Field(ge=0)
    region: str = Field(min_length=1)
    days_unsold: int = Field(ge=0)
    image_key: str = Field(min_length=1)  # object-storage key or URL

    @field_validator("image_key")
    @classmethod
    def _check_image_key(cls, value: str) -> str:
        if value.startswith(("http://", "https://")):
            return value
        if "://" in value or value.startswith("/") or ".." in value.split("/"):
            raise ValueError("must be a relative object-storage key or an http(s) URL")
        return value


class GarmentAttributes(BaseModel):
    garment_type: str
    colors: list[str] = []
    patterns: list[str] = []
    detected_text: list[str] = []
    confidence: float = Field(ge=0, le=100)


class ConversionFactors(BaseModel):
    """Per-garment weight and per-kg impact factors used by the calculator."""

    garment_weight: float = Field(ge=0)  # kg per garment
    reuse_percentage: float = Field(ge=0, le=1)
    carbon_per_kg: float = Field(ge=0)  # kg CO2e avoided per kg reused
    water_per_kg: float = Field(ge=0)  # litres saved per kg reused
    landfill_percentage: float = Field(ge=0, le=1)


class SustainabilityMetrics(BaseModel):
    waste_reduction: float = Field(ge=0, default=0.0)  # kg
    carbon_savings: float = Field(ge=0, default=0.0)  # kg CO2e
    water_savings: float = Field(ge=0, default=0.0)  # litres
    landfill_reduction: float = Field(ge=0, default=0.0)  # kg


class MarketAnalysis(BaseModel):
    explanation: str = Field(min_length=1)
    trend_alignment: Level
    seasonal_mismatch: Level
    regional_demand: Level
    season: Season
    trends: list[str] = []
    trends_degraded: bool = False
    conversion_factors: ConversionFactors


class ReuseStrategy(BaseModel):
    type: StrategyType
    description: str = Field(min_length=1)
    effort_level: Level
    cost_estimate: float = Field(ge=0)
    expected_resale_value: float = Field(ge=0)
    units: int = Field(ge=0)
    sustainability: SustainabilityMetrics

    @computed_field  # type: ignore[prop-decorator]
    @property
    def profit_recovery(self) -> float:
        """Derived on every access so it can never drift from its inputs."""
        return self.expected_resale_value - self.cost_estimate


# === Collaborator Responses ===


class VisionLabel(BaseModel):
    model_config = ConfigDict(strict=True)

    name: str = Field(min_length=1)
    confidence: float = Field(ge=0, le=100)


class VisionDetection(BaseModel):
    model_config = ConfigDict(strict=True)

    labels: list[VisionLabel] = []
    text: list[str] = []


class KnowledgeSnapshot(BaseModel):
    model_config = ConfigDict(strict=True)

    trends: list[str] = []
    conversion_factors: ConversionFactors


class MarketReasoning(BaseModel):
    """Shape the reasoning collaborator must return for a market explanation."""

    model_config = ConfigDict(strict=True, str_strip_whitespace=True)

    explanation: str = Field(min_length=1)
    trend_alignment: Level
    seasonal_mismatch: Level
    regional_demand: Level


class StrategyCandidate(BaseModel):
    """One proposed strategy as returned by the reasoning collaborator.

    Any profit figure the collaborator volunteers is ignored (extra fields are
    dropped); profit recovery is always derived locally.
    """

    model_config = ConfigDict(strict=True, str_strip_whitespace=True)

    type: StrategyType
    description: str = Field(min_length=1)
    effort_level: Level
    cost_estimate: float = Field(ge=0)
    expected_resale_value: float = Field(ge=0)
    units: int | None = Field(ge=0, default=None)


# === Reasoning Requests ===


class MarketRequest(BaseModel):
    attributes: GarmentAttributes
    input: ItemInput
    season: Season
    trends: list[str] = []
    trends_degraded: bool = False


class StrategyRequest(BaseModel):
    attributes: GarmentAttributes
    market_analysis: MarketAnalysis
    input: ItemInput
    allowed_types: list[StrategyType] = list(STRATEGY_TYPES)  # type: ignore[arg-type]


# === Item Record ===


class InventoryItem(BaseModel):
    id: str
    status: ItemStatus = "pending"
    input: ItemInput
    attributes: GarmentAttributes | None = None
    market_analysis: MarketAnalysis | None = None
    strategies: list[ReuseStrategy] | None = None
    total_sustainability_impact: SustainabilityMetrics | None = None
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def best_strategy_index(self) -> int | None:
        """Strategies are stored sorted, so the best one is always first."""
        return 0 if self.strategies else None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ItemPatch(BaseModel):
    """Fields a single stage transition writes. Unset fields are left alone."""

    status: ItemStatus
    attributes: GarmentAttributes | None = None
    market_analysis: MarketAnalysis | None = None
    strategies: list[ReuseStrategy] | None = None
    total_sustainability_impact: SustainabilityMetrics | None = None
    error_message: str | None = None


# === Activity Input/Output ===


class AnalyzeItemInput(BaseModel):
    item_id: str


class AnalyzeItemOutput(BaseModel):
    item_id: str
    status: ItemStatus
    error_message: str | None = None


# === API Request/Response Models ===


class CreateItemRequest(BaseModel):
    category: str = Field(min_length=1)
    quantity: int = Field(ge=0)
    region: str = Field(min_length=1)
    days_unsold: int = Field(ge=0)
    image_key: str = Field(min_length=1)


class CreateItemResponse(BaseModel):
    item_id: str
    status: ItemStatus


class AnalysisStartedResponse(BaseModel):
    item_id: str
    status: ItemStatus
    workflow_id: str | None = None


class ErrorResponse(BaseModel):
    error: str
    message: str
    retryable: bool
    detail: str | None = None
