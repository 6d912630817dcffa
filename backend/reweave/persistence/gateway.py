"""Item store interface and the rules every implementation enforces.

Writes are optimistic: a caller states the status it believes the item is in
and the store rejects the write with ``ConcurrencyConflictError`` if someone
else got there first. ``apply_patch`` holds the record invariants so the
in-memory and PostgreSQL stores cannot drift apart.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

import structlog

from reweave.models.contracts import (
    STATUS_RANK,
    InventoryItem,
    ItemPatch,
    ItemStatus,
    utcnow,
)
from reweave.pipeline.errors import ConcurrencyConflictError, ItemNotFoundError

logger = structlog.get_logger()

_WRITE_ONCE_FIELDS = ("attributes", "market_analysis", "strategies", "total_sustainability_impact")


class PersistenceGateway(Protocol):
    async def create(self, item: InventoryItem) -> InventoryItem: ...

    async def get(self, item_id: str) -> InventoryItem: ...

    async def conditional_update(
        self, item_id: str, expected_status: ItemStatus, patch: ItemPatch
    ) -> InventoryItem: ...


def apply_patch(item: InventoryItem, expected_status: ItemStatus, patch: ItemPatch) -> InventoryItem:
    """Return ``item`` with ``patch`` applied, or raise if the write is not allowed.

    Raises ConcurrencyConflictError when the stored status differs from
    ``expected_status``. Raises ValueError for writes no correct caller makes:
    touching a terminal record, moving status backwards, overwriting a
    write-once field, or setting an error message without failing the item.
    """
    if item.status != expected_status:
        raise ConcurrencyConflictError(item.id, expected_status, item.status)
    if item.is_terminal:
        raise ValueError(f"item {item.id} is terminal ({item.status}); refusing to patch")
    if STATUS_RANK[patch.status] <= STATUS_RANK[item.status]:
        raise ValueError(f"status may not move from {item.status} to {patch.status}")
    if patch.error_message is not None and patch.status != "failed":
        raise ValueError("error_message is only written together with status=failed")

    changes: dict[str, object] = {"status": patch.status, "updated_at": utcnow()}
    for field in _WRITE_ONCE_FIELDS:
        value = getattr(patch, field)
        if value is None:
            continue
        if getattr(item, field) is not None:
            raise ValueError(f"{field} is already set on item {item.id}")
        changes[field] = value
    if patch.error_message is not None:
        changes["error_message"] = patch.error_message
    return item.model_copy(update=changes)


class InMemoryItemStore:
    """Process-local store for development and tests.

    Records are held as deep copies so callers can never mutate stored state
    through a returned object.
    """

    def __init__(self) -> None:
        self._items: dict[str, InventoryItem] = {}
        self._lock = asyncio.Lock()
        self.history: dict[str, list[ItemStatus]] = {}

    async def create(self, item: InventoryItem) -> InventoryItem:
        async with self._lock:
            if item.id in self._items:
                raise ValueError(f"item {item.id} already exists")
            self._items[item.id] = item.model_copy(deep=True)
            self.history[item.id] = [item.status]
        logger.info("item_created", item_id=item.id, status=item.status)
        return item.model_copy(deep=True)

    async def get(self, item_id: str) -> InventoryItem:
        item = self._items.get(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item.model_copy(deep=True)

    async def conditional_update(
        self, item_id: str, expected_status: ItemStatus, patch: ItemPatch
    ) -> InventoryItem:
        async with self._lock:
            current = self._items.get(item_id)
            if current is None:
                raise ItemNotFoundError(item_id)
            updated = apply_patch(current, expected_status, patch)
            self._items[item_id] = updated
            self.history[item_id].append(updated.status)
        logger.info(
            "item_updated",
            item_id=item_id,
            from_status=expected_status,
            to_status=updated.status,
        )
        return updated.model_copy(deep=True)
