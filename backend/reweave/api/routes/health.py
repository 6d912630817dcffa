"""Health check endpoint with backend connectivity probes.

Only backends that are actually configured are probed; the rest report
"disabled". The endpoint always returns 200 so load balancers keep routing.
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter

from reweave.config import settings

logger = structlog.get_logger()

router = APIRouter(tags=["health"])

_CHECK_TIMEOUT = 3.0  # seconds per service check


async def _check_postgres() -> str:
    """Ping PostgreSQL with a simple SELECT 1 query."""
    if settings.store_backend != "postgres":
        return "disabled"

    import asyncpg

    from reweave.persistence.postgres import pg_dsn

    try:
        conn = await asyncio.wait_for(asyncpg.connect(pg_dsn(settings.database_url)), timeout=_CHECK_TIMEOUT)
        try:
            await conn.fetchval("SELECT 1")
        finally:
            await conn.close()
        return "connected"
    except Exception as exc:
        logger.debug("health_postgres_failed", error=str(exc))
        return "disconnected"


async def _check_temporal() -> str:
    """Connect to Temporal with a short timeout."""
    if not settings.use_temporal:
        return "disabled"

    from reweave.worker import create_temporal_client

    try:
        client = await asyncio.wait_for(create_temporal_client(), timeout=_CHECK_TIMEOUT)
        await client.service_client.check_health()
        return "connected"
    except Exception as exc:
        logger.debug("health_temporal_failed", error=str(exc))
        return "disconnected"


@router.get("/health")
async def health_check() -> dict:
    postgres, temporal = await asyncio.gather(_check_postgres(), _check_temporal())
    return {
        "status": "ok",
        "version": "0.1.0",
        "environment": settings.environment,
        "store": settings.store_backend,
        "adapters": "mock" if settings.use_mock_adapters else "live",
        "postgres": postgres,
        "temporal": temporal,
    }
