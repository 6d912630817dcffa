"""Claude vision adapter: labels a garment photo.

Forces a ``report_garment_labels`` tool call so the response is structured:
a list of {name, confidence 0-100} labels plus any text visible on the garment
(brand tags, prints). Mapping labels to attributes is the vision stage's job.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import anthropic
import structlog
from pydantic import ValidationError

from reweave.adapters.claude import extract_tool_input, load_prompt, translate_error
from reweave.models.contracts import VisionDetection
from reweave.pipeline.errors import MalformedResponseError
from reweave.utils.storage import resolve_url

log = structlog.get_logger("adapters.vision")

MAX_TOKENS = 1024

REPORT_LABELS_TOOL: dict[str, Any] = {
    "name": "report_garment_labels",
    "description": "Record every label you can see on the garment photo with a confidence score.",
    "input_schema": {
        "type": "object",
        "properties": {
            "labels": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "name": {
                            "type": "string",
                            "description": "Garment type, colour or pattern (e.g. 'shirt', 'navy', 'striped')",
                        },
                        "confidence": {
                            "type": "number",
                            "description": "Confidence in this label, 0-100",
                        },
                    },
                    "required": ["name", "confidence"],
                },
            },
            "text": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Text printed or sewn on the garment, verbatim",
            },
        },
        "required": ["labels"],
    },
}


def build_messages(image_url: str) -> list[dict[str, Any]]:
    return [
        {
            "role": "user",
            "content": [
                {"type": "image", "source": {"type": "url", "url": image_url}},
                {"type": "text", "text": "Label this garment following your labelling protocol."},
            ],
        }
    ]


class ClaudeVisionAdapter:
    def __init__(
        self,
        client: anthropic.AsyncAnthropic,
        model: str,
        *,
        url_resolver: Callable[[str], str] = resolve_url,
    ) -> None:
        self.client = client
        self.model = model
        self.url_resolver = url_resolver

    async def detect(self, image_ref: str) -> VisionDetection:
        image_url = await asyncio.to_thread(self.url_resolver, image_ref)
        log.info("vision_detect_start", model=self.model)
        try:
            response = await self.client.messages.create(  # type: ignore[call-overload]
                model=self.model,
                max_tokens=MAX_TOKENS,
                system=load_prompt("vision_labels"),
                tools=[REPORT_LABELS_TOOL],
                tool_choice={"type": "tool", "name": REPORT_LABELS_TOOL["name"]},
                messages=build_messages(image_url),
            )
        except anthropic.APIError as e:
            log.warning("vision_api_error", error_type=type(e).__name__)
            raise translate_error("vision", e) from e

        data = extract_tool_input(response, REPORT_LABELS_TOOL["name"])
        if data is None:
            raise MalformedResponseError("vision: no report_garment_labels tool call", stage="vision")
        try:
            detection = VisionDetection.model_validate(data)
        except ValidationError as e:
            raise MalformedResponseError(f"vision: invalid label payload: {e.error_count()} errors", stage="vision") from e

        log.info("vision_detect_complete", label_count=len(detection.labels), text_count=len(detection.text))
        return detection
