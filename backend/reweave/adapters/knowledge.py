"""HTTP knowledge adapter: fashion trends and sustainability factors.

    GET {base_url}/v1/trends?category=shirt&region=Mumbai&season=monsoon
    -> {"trends": [...], "conversion_factors": {...}}
"""

from __future__ import annotations

import httpx
import structlog
from pydantic import ValidationError

from reweave.models.contracts import KnowledgeSnapshot, Season
from reweave.pipeline.errors import (
    MalformedResponseError,
    ServiceRejectedError,
    TransientServiceError,
)

log = structlog.get_logger("adapters.knowledge")

SERVICE = "knowledge"


class HttpKnowledgeAdapter:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    @classmethod
    def from_settings(cls, base_url: str, api_key: str = "", timeout: float = 10.0) -> HttpKnowledgeAdapter:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        return cls(httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout))

    async def aclose(self) -> None:
        await self.client.aclose()

    async def retrieve_trends(self, category: str, region: str, season: Season) -> KnowledgeSnapshot:
        params = {"category": category, "region": region, "season": season}
        try:
            response = await self.client.get("/v1/trends", params=params)
        except httpx.TimeoutException as exc:
            raise TransientServiceError(SERVICE, "timeout fetching trends") from exc
        except httpx.RequestError as exc:
            raise TransientServiceError(SERVICE, f"network error: {type(exc).__name__}") from exc

        if response.status_code >= 400:
            # 429 is throttling; other 4xx mean the request itself is wrong
            message = f"HTTP {response.status_code} fetching trends"
            if response.status_code >= 500 or response.status_code == 429:
                raise TransientServiceError(SERVICE, message)
            raise ServiceRejectedError(SERVICE, message)

        try:
            snapshot = KnowledgeSnapshot.model_validate_json(response.content)
        except ValidationError as exc:
            raise MalformedResponseError(
                f"{SERVICE}: invalid trends payload: {exc.error_count()} errors", stage="market_analysis"
            ) from exc

        log.info(
            "knowledge_trends_fetched",
            category=category,
            region=region,
            season=season,
            trend_count=len(snapshot.trends),
        )
        return snapshot
