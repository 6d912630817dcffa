"""Vision stage: turn image labels into garment attributes.

The vision collaborator returns free-form labels with 0-100 confidences.
Labels are normalized against a fixed taxonomy: the highest-confidence
garment-type label becomes ``garment_type``; colour and pattern labels are
bucketed in descending confidence order; anything else is ignored.

Detection below the confidence threshold is a domain failure, not a transient
one, so it raises ``LowConfidenceError`` and the item fails immediately.
"""

from __future__ import annotations

import structlog

from reweave.adapters.base import VisionAdapter
from reweave.models.contracts import GarmentAttributes, VisionDetection, VisionLabel
from reweave.pipeline.errors import LowConfidenceError
from reweave.pipeline.retry import RetryExecutor

log = structlog.get_logger("stages.vision")

DEFAULT_CONFIDENCE_THRESHOLD = 70.0

GARMENT_TYPES: dict[str, str] = {
    "shirt": "shirt",
    "dress shirt": "shirt",
    "t-shirt": "t-shirt",
    "tshirt": "t-shirt",
    "tee": "t-shirt",
    "blouse": "blouse",
    "top": "top",
    "polo": "polo",
    "sweater": "sweater",
    "jumper": "sweater",
    "hoodie": "hoodie",
    "sweatshirt": "sweatshirt",
    "jacket": "jacket",
    "blazer": "blazer",
    "coat": "coat",
    "jeans": "jeans",
    "trousers": "trousers",
    "pants": "trousers",
    "chinos": "trousers",
    "shorts": "shorts",
    "skirt": "skirt",
    "dress": "dress",
    "jumpsuit": "jumpsuit",
    "saree": "saree",
    "sari": "saree",
    "kurta": "kurta",
    "scarf": "scarf",
}

COLORS: dict[str, str] = {
    "black": "black",
    "white": "white",
    "off white": "white",
    "cream": "beige",
    "beige": "beige",
    "tan": "beige",
    "brown": "brown",
    "gray": "gray",
    "grey": "gray",
    "blue": "blue",
    "light blue": "blue",
    "sky blue": "blue",
    "navy": "navy",
    "navy blue": "navy",
    "green": "green",
    "olive": "green",
    "red": "red",
    "maroon": "red",
    "burgundy": "red",
    "pink": "pink",
    "purple": "purple",
    "yellow": "yellow",
    "orange": "orange",
}

PATTERNS: dict[str, str] = {
    "solid": "solid",
    "plain": "solid",
    "striped": "striped",
    "stripes": "striped",
    "checked": "checked",
    "checkered": "checked",
    "plaid": "checked",
    "tartan": "checked",
    "floral": "floral",
    "polka dot": "polka dot",
    "polka dots": "polka dot",
    "paisley": "paisley",
    "graphic": "graphic",
    "printed": "printed",
    "print": "printed",
    "camouflage": "camouflage",
    "embroidered": "embroidered",
}


def _normalize(name: str) -> str:
    return " ".join(name.strip().lower().replace("_", " ").split())


def _bucket(labels: list[VisionLabel], taxonomy: dict[str, str]) -> list[str]:
    seen: list[str] = []
    for label in labels:
        canonical = taxonomy.get(_normalize(label.name))
        if canonical and canonical not in seen:
            seen.append(canonical)
    return seen


def map_attributes(
    detection: VisionDetection, threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
) -> GarmentAttributes:
    """Map a raw detection onto the taxonomy and apply the confidence gate.

    The gate is inclusive: a top garment label at exactly ``threshold`` passes.
    """
    labels = sorted(detection.labels, key=lambda lbl: lbl.confidence, reverse=True)
    garment = next((lbl for lbl in labels if _normalize(lbl.name) in GARMENT_TYPES), None)
    if garment is None:
        raise LowConfidenceError(0.0, threshold)
    if garment.confidence < threshold:
        raise LowConfidenceError(
            garment.confidence, threshold, label=GARMENT_TYPES[_normalize(garment.name)]
        )

    return GarmentAttributes(
        garment_type=GARMENT_TYPES[_normalize(garment.name)],
        colors=_bucket(labels, COLORS),
        patterns=_bucket(labels, PATTERNS),
        detected_text=[t.strip() for t in detection.text if t.strip()],
        confidence=garment.confidence,
    )


class VisionStage:
    name = "vision"

    def __init__(
        self,
        adapter: VisionAdapter,
        retry: RetryExecutor,
        *,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    ) -> None:
        self.adapter = adapter
        self.retry = retry
        self.confidence_threshold = confidence_threshold

    async def analyze_attributes(self, image_ref: str) -> GarmentAttributes:
        detection = await self.retry.execute(
            lambda: self.adapter.detect(image_ref),
            name="vision.detect",
        )
        attributes = map_attributes(detection, self.confidence_threshold)
        log.info(
            "vision_attributes_mapped",
            garment_type=attributes.garment_type,
            confidence=attributes.confidence,
            colors=attributes.colors,
            patterns=attributes.patterns,
            label_count=len(detection.labels),
        )
        return attributes
