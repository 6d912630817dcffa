"""Sustainability metrics for a quantity of reused garments.

    waste_reduction    = quantity * garment_weight * reuse_percentage
    carbon_savings     = waste_reduction * carbon_per_kg
    water_savings      = waste_reduction * water_per_kg
    landfill_reduction = waste_reduction * landfill_percentage
"""

from __future__ import annotations

from collections.abc import Iterable

from reweave.models.contracts import ConversionFactors, SustainabilityMetrics

# Used whenever the knowledge collaborator cannot supply factors.
DEFAULT_CONVERSION_FACTORS = ConversionFactors(
    garment_weight=0.3,
    reuse_percentage=0.5,
    carbon_per_kg=2.1,
    water_per_kg=10.85,
    landfill_percentage=0.9,
)


def compute(quantity: int, factors: ConversionFactors) -> SustainabilityMetrics:
    if quantity < 0:
        raise ValueError(f"quantity must be non-negative, got {quantity}")
    for name, value in factors.model_dump().items():
        if value < 0:
            raise ValueError(f"conversion factor {name} must be non-negative, got {value}")

    waste = quantity * factors.garment_weight * factors.reuse_percentage
    return SustainabilityMetrics(
        waste_reduction=waste,
        carbon_savings=waste * factors.carbon_per_kg,
        water_savings=waste * factors.water_per_kg,
        landfill_reduction=waste * factors.landfill_percentage,
    )


def aggregate(metrics: Iterable[SustainabilityMetrics]) -> SustainabilityMetrics:
    """Field-by-field sum. An empty input sums to all zeros."""
    metrics = list(metrics)
    return SustainabilityMetrics(
        waste_reduction=sum(m.waste_reduction for m in metrics),
        carbon_savings=sum(m.carbon_savings for m in metrics),
        water_savings=sum(m.water_savings for m in metrics),
        landfill_reduction=sum(m.landfill_reduction for m in metrics),
    )
