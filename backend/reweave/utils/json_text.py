"""Pull a JSON object out of free-form model output.

Reasoning responses arrive as text. Models sometimes wrap the JSON in a
markdown fence or add a sentence before or after it, so parsing tries the
whole text first and then the outermost balanced ``{...}`` span.
"""

from __future__ import annotations

import json
from typing import Any


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ``` or ```...```)."""
    text = text.strip()
    if not text.startswith("```"):
        return text
    text = text.removeprefix("```")
    for lang in ("json", "JSON"):
        text = text.removeprefix(lang)
    return text.lstrip("\n").rsplit("```", 1)[0].strip()


def _outermost_object(text: str) -> str | None:
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escape_next = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape_next:
            escape_next = False
        elif in_string:
            if ch == "\\":
                escape_next = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the parsed JSON object, or None if the text holds no object."""
    text = strip_code_fence(text or "")
    if not text:
        return None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        span = _outermost_object(text)
        if span is None:
            return None
        try:
            parsed = json.loads(span)
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None
