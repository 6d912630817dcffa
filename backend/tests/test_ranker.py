"""Tests for strategy ranking."""

from reweave.models.contracts import InventoryItem, ItemInput, ReuseStrategy, SustainabilityMetrics
from reweave.pipeline.ranker import rank


def _strategy(description: str, cost: float, value: float) -> ReuseStrategy:
    return ReuseStrategy(
        type="resale",
        description=description,
        effort_level="low",
        cost_estimate=cost,
        expected_resale_value=value,
        units=10,
        sustainability=SustainabilityMetrics(),
    )


class TestRank:
    """Descending profit recovery, stable on ties, best index 0."""

    def test_sorted_descending(self):
        ranked = rank([_strategy("a", 100, 200), _strategy("b", 0, 500), _strategy("c", 50, 100)])
        assert [s.description for s in ranked] == ["b", "a", "c"]

    def test_ties_keep_generation_order(self):
        ranked = rank([_strategy("first", 0, 100), _strategy("second", 50, 150), _strategy("top", 0, 900)])
        assert [s.description for s in ranked] == ["top", "first", "second"]

    def test_negative_profit_ranks_last(self):
        ranked = rank([_strategy("loss", 500, 100), _strategy("gain", 0, 10)])
        assert ranked[-1].profit_recovery == -400

    def test_empty(self):
        assert rank([]) == []

    def test_input_not_mutated(self):
        original = [_strategy("low", 0, 1), _strategy("high", 0, 2)]
        rank(original)
        assert [s.description for s in original] == ["low", "high"]

    def test_stored_order_puts_best_at_index_zero(self):
        ranked = rank([_strategy("low", 0, 100), _strategy("high", 0, 900)])
        item = InventoryItem(
            id="item-1",
            input=ItemInput(category="shirt", quantity=10, region="Mumbai", days_unsold=90, image_key="a.jpg"),
            status="completed",
            strategies=ranked,
        )
        assert item.strategies[item.best_strategy_index].description == "high"
