"""Shared plumbing for the Claude-backed vision and reasoning adapters.

The SDK's own retries are switched off (``max_retries=0``) so that attempt
counts and backoff are governed by the pipeline's ``RetryExecutor`` alone.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import anthropic

from reweave.pipeline.errors import (
    MalformedResponseError,
    PipelineError,
    ServiceRejectedError,
    TransientServiceError,
)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

_RETRYABLE_STATUS = frozenset({408, 409, 429})

_prompt_cache: dict[str, str] = {}


def build_client(api_key: str) -> anthropic.AsyncAnthropic:
    return anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)


def load_prompt(name: str) -> str:
    """Load ``prompts/<name>.txt`` once per process."""
    if name not in _prompt_cache:
        _prompt_cache[name] = (PROMPTS_DIR / f"{name}.txt").read_text()
    return _prompt_cache[name]


def translate_error(service: str, exc: anthropic.APIError) -> PipelineError:
    """Map an Anthropic SDK exception onto the pipeline taxonomy."""
    if isinstance(exc, anthropic.APIStatusError):
        status = exc.status_code
        if status >= 500 or status in _RETRYABLE_STATUS:
            return TransientServiceError(service, f"Claude API error ({status}): {exc.message}")
        return ServiceRejectedError(service, f"Claude API error ({status}): {exc.message}")
    if isinstance(exc, anthropic.APIConnectionError):
        return TransientServiceError(service, f"Claude connection error: {type(exc).__name__}")
    if isinstance(exc, anthropic.APIResponseValidationError):
        return MalformedResponseError(f"{service}: unexpected Claude response shape")
    return ServiceRejectedError(service, f"Claude API error: {exc}")


def extract_tool_input(response: Any, tool_name: str) -> dict[str, Any] | None:
    """Return the input of the named tool call, or None if the model skipped it."""
    for block in response.content:
        if block.type == "tool_use" and block.name == tool_name:
            data = block.input
            return data if isinstance(data, dict) else None
    return None


def extract_text(response: Any) -> str:
    return "".join(block.text for block in response.content if block.type == "text")
