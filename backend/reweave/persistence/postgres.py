"""PostgreSQL item store (asyncpg).

Conditional updates lock the row with ``SELECT ... FOR UPDATE`` inside a
transaction, check the expected status, apply the patch through
``apply_patch`` and write the whole record back. Nested models live in JSONB
columns whose layout matches ``models/db.py`` and migration 001.
"""

from __future__ import annotations

import contextlib
import json
from collections.abc import AsyncIterator
from typing import Any

import asyncpg
import structlog

from reweave.models.contracts import InventoryItem, ItemPatch, ItemStatus
from reweave.persistence.gateway import apply_patch
from reweave.pipeline.errors import ItemNotFoundError, TransientServiceError

logger = structlog.get_logger()

_JSON_COLUMNS = ("input", "attributes", "market_analysis", "strategies", "total_sustainability_impact")

_COLUMNS = (
    "id, status, input, attributes, market_analysis, strategies, "
    "total_sustainability_impact, error_message, created_at, updated_at"
)

_INSERT = f"""
INSERT INTO inventory_items ({_COLUMNS})
VALUES ($1, $2, $3::jsonb, $4::jsonb, $5::jsonb, $6::jsonb, $7::jsonb, $8, $9, $10)
"""

_SELECT = f"SELECT {_COLUMNS} FROM inventory_items WHERE id = $1"

_UPDATE = """
UPDATE inventory_items
SET status = $2,
    input = $3::jsonb,
    attributes = $4::jsonb,
    market_analysis = $5::jsonb,
    strategies = $6::jsonb,
    total_sustainability_impact = $7::jsonb,
    error_message = $8,
    created_at = $9,
    updated_at = $10
WHERE id = $1
"""

_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    TimeoutError,
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    asyncpg.TransactionRollbackError,
)


def pg_dsn(database_url: str) -> str:
    """Convert a SQLAlchemy-style URL to a plain PostgreSQL DSN for asyncpg."""
    return database_url.replace("postgresql+asyncpg://", "postgresql://")


def item_to_params(item: InventoryItem) -> list[Any]:
    data = item.model_dump(mode="json", exclude={"best_strategy_index"})
    params: list[Any] = [item.id, item.status]
    for column in _JSON_COLUMNS:
        value = data[column]
        params.append(None if value is None else json.dumps(value))
    params.extend([item.error_message, item.created_at, item.updated_at])
    return params


def row_to_item(row: Any) -> InventoryItem:
    data = dict(row)
    for column in _JSON_COLUMNS:
        value = data.get(column)
        if isinstance(value, str):
            data[column] = json.loads(value)
    return InventoryItem.model_validate(data)


class PostgresItemStore:
    def __init__(self, database_url: str) -> None:
        self._dsn = pg_dsn(database_url)

    @contextlib.asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        try:
            conn = await asyncpg.connect(dsn=self._dsn)
            try:
                yield conn
            finally:
                await conn.close()
        except _TRANSIENT_ERRORS as exc:
            logger.warning("item_store_unavailable", error_type=type(exc).__name__, error=str(exc))
            raise TransientServiceError("item_store", str(exc) or type(exc).__name__) from exc

    async def create(self, item: InventoryItem) -> InventoryItem:
        async with self._connection() as conn:
            await conn.execute(_INSERT, *item_to_params(item))
        logger.info("item_created", item_id=item.id, status=item.status)
        return item

    async def get(self, item_id: str) -> InventoryItem:
        async with self._connection() as conn:
            row = await conn.fetchrow(_SELECT, item_id)
        if row is None:
            raise ItemNotFoundError(item_id)
        return row_to_item(row)

    async def conditional_update(
        self, item_id: str, expected_status: ItemStatus, patch: ItemPatch
    ) -> InventoryItem:
        async with self._connection() as conn, conn.transaction():
            row = await conn.fetchrow(_SELECT + " FOR UPDATE", item_id)
            if row is None:
                raise ItemNotFoundError(item_id)
            updated = apply_patch(row_to_item(row), expected_status, patch)
            await conn.execute(_UPDATE, *item_to_params(updated))
        logger.info(
            "item_updated",
            item_id=item_id,
            from_status=expected_status,
            to_status=updated.status,
        )
        return updated
