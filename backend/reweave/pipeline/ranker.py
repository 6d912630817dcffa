"""Order reuse strategies by profit recovery."""

from __future__ import annotations

from reweave.models.contracts import ReuseStrategy


def rank(strategies: list[ReuseStrategy]) -> list[ReuseStrategy]:
    """Sort descending by profit recovery, keeping generation order on ties.

    ``sorted`` is stable with ``reverse=True`` too, so equal-profit strategies
    are never reordered. The best strategy is therefore always first, which is
    what ``InventoryItem.best_strategy_index`` reports.
    """
    return sorted(strategies, key=lambda s: s.profit_recovery, reverse=True)
