"""Tests for the order book executor (simulate and execute)."""

import pytest

from polybracket.execution.executor import (
    ExecutionResult,
    OrderBookExecutor,
    round_to_tick,
    summarize,
)
from polybracket.execution.orderbook import OrderBookSnapshot

from conftest import FakeClob, FakeEngine


@pytest.fixture
def book():
    return OrderBookSnapshot.from_levels([(0.45, 20), (0.40, 10)])


def _raw_book(asks, tick_size="0.01"):
    return {
        "asks": [{"price": str(p), "size": str(s)} for p, s in asks],
        "bids": [],
        "tick_size": tick_size,
    }


# ------------------------------------------------------------------
# simulate
# ------------------------------------------------------------------


class TestSimulate:

    def test_budget_takes_fraction_of_second_level(self, book):
        result = OrderBookExecutor.simulate(book, max_price=0.50, max_budget=10)
        assert result.shares_filled == pytest.approx(10 + 6.0 / 0.45)
        assert result.total_cost == pytest.approx(10.0)
        assert result.avg_price == pytest.approx(0.4286, abs=1e-4)
        assert result.success

    def test_no_budget_consumes_all_levels_under_cap(self, book):
        result = OrderBookExecutor.simulate(book, max_price=0.50)
        assert result.shares_filled == pytest.approx(30)
        assert result.total_cost == pytest.approx(13.0)
        assert result.avg_price == pytest.approx(0.4333, abs=1e-4)

    def test_price_cap_excludes_expensive_levels(self, book):
        result = OrderBookExecutor.simulate(book, max_price=0.42)
        assert result.shares_filled == pytest.approx(10)
        assert result.total_cost == pytest.approx(4.0)

    def test_empty_ladder(self):
        result = OrderBookExecutor.simulate(OrderBookSnapshot(), max_price=0.9, max_budget=100)
        assert result.shares_filled == 0
        assert result.avg_price == 0
        assert result.apy == 0
        assert not result.success

    def test_zero_budget_buys_nothing(self, book):
        result = OrderBookExecutor.simulate(book, max_price=0.9, max_budget=0)
        assert result.shares_filled == 0
        assert result.total_cost == 0

    @pytest.mark.parametrize("budget", [0.01, 1.0, 3.99, 4.0, 7.5, 12.99, 13.0, 50.0])
    def test_budget_and_average_invariants(self, book, budget):
        result = OrderBookExecutor.simulate(book, max_price=0.50, max_budget=budget)
        assert result.total_cost <= budget + 1e-9
        assert result.shares_filled * result.avg_price == pytest.approx(result.total_cost)

    def test_apy_and_profit(self, book):
        result = OrderBookExecutor.simulate(book, max_price=0.40, days_to_expiry=36.5)
        # 10 shares at 0.40: yield 0.60/share, 150% simple return over 36.5 days
        assert result.profit == pytest.approx(6.0)
        assert result.apy == pytest.approx(1.5 * 10 * 100)

    def test_apy_zero_without_days(self, book):
        assert OrderBookExecutor.simulate(book, max_price=0.5).apy == 0

    def test_simulate_does_not_mutate_snapshot(self, book):
        before = book.model_dump()
        OrderBookExecutor.simulate(book, max_price=0.5, max_budget=5)
        OrderBookExecutor.simulate(book, max_price=0.5, max_budget=5)
        assert book.model_dump() == before


def test_summarize_handles_zero_shares():
    result = summarize(0.0, 0.0, 10.0)
    assert result == ExecutionResult()


@pytest.mark.parametrize(
    "price,tick,expected",
    [(0.456, 0.01, 0.46), (0.454, 0.01, 0.45), (0.4, 0.01, 0.4), (0.1234, 0.001, 0.123)],
)
def test_round_to_tick(price, tick, expected):
    assert round_to_tick(price, tick) == expected


# ------------------------------------------------------------------
# execute
# ------------------------------------------------------------------


class TestExecute:

    @pytest.mark.asyncio
    async def test_floors_sizes_and_caps_by_budget(self):
        clob = FakeClob(_raw_book([(0.45, 20), (0.40, 10.7)]))
        engine = FakeEngine()
        executor = OrderBookExecutor(clob, engine, min_order_value=1.0)

        result = await executor.execute("tok", max_price=0.5, max_budget=10)

        assert [(o.price, o.size) for o in engine.orders] == [(0.40, 10), (0.45, 13)]
        assert result.shares_filled == 23
        assert result.total_cost == pytest.approx(9.85)
        assert result.total_cost <= 10
        assert result.success
        assert clob.book_requests == ["tok"]

    @pytest.mark.asyncio
    async def test_skips_levels_below_minimum_notional(self):
        clob = FakeClob(_raw_book([(0.40, 2), (0.45, 20)]))
        engine = FakeEngine()
        executor = OrderBookExecutor(clob, engine, min_order_value=1.0)

        result = await executor.execute("tok", max_price=0.5)

        assert [(o.price, o.size) for o in engine.orders] == [(0.45, 20)]
        assert all(o.price * o.size >= 1.0 for o in engine.orders)
        assert result.shares_filled == 20

    @pytest.mark.asyncio
    async def test_leftover_budget_below_minimum_is_not_spent(self):
        clob = FakeClob(_raw_book([(0.40, 10), (0.45, 20)]))
        engine = FakeEngine()
        executor = OrderBookExecutor(clob, engine, min_order_value=1.0)

        result = await executor.execute("tok", max_price=0.5, max_budget=4.5)

        assert len(engine.orders) == 1
        assert result.shares_filled == 10
        assert result.total_cost == pytest.approx(4.0)

    @pytest.mark.asyncio
    async def test_failed_level_is_skipped_and_walk_continues(self):
        clob = FakeClob(_raw_book([(0.40, 10), (0.45, 20)]))
        engine = FakeEngine(reject={(0.40, 10)})
        executor = OrderBookExecutor(clob, engine, min_order_value=1.0)

        result = await executor.execute("tok", max_price=0.5)

        assert len(engine.orders) == 2
        assert result.shares_filled == 20
        assert result.total_cost == pytest.approx(9.0)
        assert result.avg_price == pytest.approx(0.45)
        assert result.success
        assert [o.success for o in result.orders] == [False, True]

    @pytest.mark.asyncio
    async def test_all_levels_failing_is_unsuccessful(self):
        clob = FakeClob(_raw_book([(0.40, 10)]))
        engine = FakeEngine(reject={(0.40, 10)})
        executor = OrderBookExecutor(clob, engine, min_order_value=1.0)

        result = await executor.execute("tok", max_price=0.5)

        assert result.shares_filled == 0
        assert not result.success

    @pytest.mark.asyncio
    async def test_missing_orderbook(self):
        executor = OrderBookExecutor(FakeClob(None), FakeEngine())
        result = await executor.execute("tok", max_price=0.5, max_budget=10)
        assert not result.success
        assert result.error == "orderbook_unavailable"

    @pytest.mark.asyncio
    async def test_uses_api_tick_size_when_book_has_none(self):
        clob = FakeClob(_raw_book([(0.456, 10)], tick_size=None), tick_size=0.001)
        engine = FakeEngine()
        executor = OrderBookExecutor(clob, engine, min_order_value=1.0)

        await executor.execute("tok", max_price=0.5)

        assert engine.orders[0].price == 0.456
        assert engine.orders[0].tick_size == "0.001"

    @pytest.mark.asyncio
    async def test_rejects_invalid_max_price(self):
        executor = OrderBookExecutor(FakeClob(_raw_book([(0.4, 10)])), FakeEngine())
        with pytest.raises(ValueError):
            await executor.execute("tok", max_price=1.5)

    @pytest.mark.asyncio
    async def test_preview_fetches_and_simulates(self):
        executor = OrderBookExecutor(FakeClob(_raw_book([(0.40, 10), (0.45, 20)])), FakeEngine())
        snapshot, result = await executor.preview("tok", 0.5, 10)
        assert snapshot is not None
        assert result.total_cost == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_unconfirmed_rung_is_not_counted_but_reserves_budget(self):
        clob = FakeClob(_raw_book([(0.40, 10), (0.45, 20)]))
        engine = FakeEngine(unfilled={(0.40, 10)})
        executor = OrderBookExecutor(clob, engine, min_order_value=1.0)

        result = await executor.execute("tok", max_price=0.5, max_budget=10)

        # 4.00 reserved by the delayed rung leaves 6.00 -> 13 shares at 0.45
        assert [(o.price, o.size) for o in engine.orders] == [(0.40, 10), (0.45, 13)]
        assert result.shares_filled == 13
        assert result.total_cost == pytest.approx(5.85)
        assert [o.filled for o in result.orders] == [False, True]

    @pytest.mark.asyncio
    async def test_no_orders_when_best_ask_above_cap(self):
        clob = FakeClob(_raw_book([(0.60, 10), (0.70, 20)]))
        engine = FakeEngine()
        executor = OrderBookExecutor(clob, engine)

        result = await executor.execute("tok", max_price=0.5, max_budget=10)

        assert engine.orders == []
        assert not result.success
        assert result.error == ""
