"""Claude reasoning adapter: market explanations and strategy proposals.

``explain`` returns the model's text verbatim (a JSON document by prompt
contract; the market stage parses and validates it). ``propose`` forces a
``propose_strategies`` tool call and returns the raw candidate list; the
strategy stage validates each candidate on its own.
"""

from __future__ import annotations

from typing import Any

import anthropic
import structlog

from reweave.adapters.claude import extract_text, extract_tool_input, load_prompt, translate_error
from reweave.models.contracts import STRATEGY_TYPES, MarketRequest, StrategyRequest
from reweave.pipeline.errors import MalformedResponseError

log = structlog.get_logger("adapters.reasoning")

MAX_TOKENS = 2048

PROPOSE_STRATEGIES_TOOL: dict[str, Any] = {
    "name": "propose_strategies",
    "description": "Record the reuse strategies you recommend for this unsold stock.",
    "input_schema": {
        "type": "object",
        "properties": {
            "strategies": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "type": {"type": "string", "enum": list(STRATEGY_TYPES)},
                        "description": {
                            "type": "string",
                            "description": "Concrete action the retailer should take",
                        },
                        "effort_level": {"type": "string", "enum": ["low", "medium", "high"]},
                        "cost_estimate": {
                            "type": "number",
                            "description": "Total cost to execute, in the input currency",
                        },
                        "expected_resale_value": {
                            "type": "number",
                            "description": "Total revenue expected after executing the strategy",
                        },
                        "units": {
                            "type": "integer",
                            "description": "Number of garments this strategy applies to",
                        },
                    },
                    "required": [
                        "type",
                        "description",
                        "effort_level",
                        "cost_estimate",
                        "expected_resale_value",
                    ],
                },
            },
        },
        "required": ["strategies"],
    },
}


def market_prompt(request: MarketRequest) -> str:
    return (
        "Explain why this stock is not selling.\n\n"
        f"<item>\n{request.model_dump_json(indent=2)}\n</item>"
    )


def strategy_prompt(request: StrategyRequest) -> str:
    return (
        "Propose reuse strategies for this stock. "
        f"Allowed strategy types: {', '.join(request.allowed_types)}.\n\n"
        f"<item>\n{request.model_dump_json(indent=2)}\n</item>"
    )


class ClaudeReasoningAdapter:
    def __init__(self, client: anthropic.AsyncAnthropic, model: str) -> None:
        self.client = client
        self.model = model

    async def explain(self, request: MarketRequest) -> str:
        log.info("reasoning_explain_start", model=self.model, season=request.season)
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=MAX_TOKENS,
                system=load_prompt("market_explanation"),
                messages=[{"role": "user", "content": market_prompt(request)}],
            )
        except anthropic.APIError as e:
            log.warning("reasoning_api_error", call="explain", error_type=type(e).__name__)
            raise translate_error("reasoning", e) from e
        return extract_text(response)

    async def propose(self, request: StrategyRequest) -> list[dict[str, Any]]:
        log.info("reasoning_propose_start", model=self.model)
        try:
            response = await self.client.messages.create(  # type: ignore[call-overload]
                model=self.model,
                max_tokens=MAX_TOKENS,
                system=load_prompt("strategy_proposal"),
                tools=[PROPOSE_STRATEGIES_TOOL],
                tool_choice={"type": "tool", "name": PROPOSE_STRATEGIES_TOOL["name"]},
                messages=[{"role": "user", "content": strategy_prompt(request)}],
            )
        except anthropic.APIError as e:
            log.warning("reasoning_api_error", call="propose", error_type=type(e).__name__)
            raise translate_error("reasoning", e) from e

        data = extract_tool_input(response, PROPOSE_STRATEGIES_TOOL["name"])
        strategies = data.get("strategies") if data else None
        if not isinstance(strategies, list):
            raise MalformedResponseError(
                "reasoning: no propose_strategies tool call", stage="strategy_generation"
            )
        return strategies
