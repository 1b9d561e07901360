"""
Tests for the market-maker strategy.

Tests cover:
- Ladder prices around a fixed base and around the book
- One-sided ladders
- Placement, adoption and refresh on partial fills
- Failed submits and cancels keeping orders tracked
"""

from decimal import Decimal

import pytest

from dexbot.config.pairs import MarketMakerPairConfig
from dexbot.core.models import OrderRole, OrderSide
from dexbot.strategy.market_maker import (
    MarketMakerStrategy,
    build_market_maker_orders,
    expected_order_count,
)

from conftest import SYMBOL, make_market


def _pair(**overrides) -> MarketMakerPairConfig:
    values = dict(
        symbol=SYMBOL,
        grid_levels=2,
        grid_interval=Decimal("0.01"),
        base=Decimal("0.005"),
        order_side=0,
        bid_amount_per_level=Decimal("1000"),
    )
    values.update(overrides)
    return MarketMakerPairConfig(**values)


def _options(**overrides) -> dict:
    pair = {"symbol": SYMBOL, "gridLevels": 2, "gridInterval": 0.01, "base": 0.005, "bidAmountPerLevel": 1000}
    pair.update(overrides)
    return {"pairs": [pair]}


async def _started(ctx, **overrides):
    ctx.provider.set_price(SYMBOL, "0.005")
    strategy = MarketMakerStrategy(ctx)
    await strategy.initialize(_options(**overrides))
    return strategy


class TestLadder:
    """Pure ladder tests."""

    def test_fixed_base(self):
        """Test both sides stepped 1% and 2% from the base price."""
        orders = build_market_maker_orders(_pair(), make_market(), Decimal("0"), Decimal("0"))
        assert [(o.side, o.price) for o in orders] == [
            (OrderSide.BUY, Decimal("0.00495")),
            (OrderSide.SELL, Decimal("0.00505")),
            (OrderSide.BUY, Decimal("0.0049")),
            (OrderSide.SELL, Decimal("0.0051")),
        ]
        assert orders[0].quantity == Decimal("4.95")
        assert orders[1].quantity == Decimal("1000.0000")

    def test_book_anchored(self):
        """Test that without a base the best bid and ask anchor the ladder."""
        orders = build_market_maker_orders(
            _pair(base=Decimal("0"), grid_levels=1), make_market(), Decimal("0.0050"), Decimal("0.0052"),
        )
        assert [o.price for o in orders] == [Decimal("0.00495"), Decimal("0.005252")]

    def test_one_sided(self):
        """Test orderSide 2 places only SELLs."""
        pair = _pair(order_side=2)
        orders = build_market_maker_orders(pair, make_market(), Decimal("0"), Decimal("0"))
        assert {o.side for o in orders} == {OrderSide.SELL}
        assert expected_order_count(pair) == 2
        assert expected_order_count(_pair()) == 4


class TestMarketMakerStrategy:
    """Strategy loop tests."""

    @pytest.mark.asyncio
    async def test_places_ladder(self, ctx, exchange):
        """Test the first poll places and tracks the full ladder."""
        strategy = await _started(ctx)
        await strategy.trade()

        assert len(exchange.resting()) == 4
        tracked = strategy.tracked[SYMBOL]
        assert len(tracked) == 4
        assert all(t.order_id and t.role is OrderRole.GRID for t in tracked)

    @pytest.mark.asyncio
    async def test_full_ladder_left_alone(self, ctx, exchange):
        """Test that a complete ladder is not touched."""
        strategy = await _started(ctx)
        await strategy.trade()
        await strategy.trade()
        assert len(exchange.batches) == 1
        assert exchange.cancelled == []

    @pytest.mark.asyncio
    async def test_partial_fill_refreshes_ladder(self, ctx, exchange):
        """Test that a fill cancels the remainder and re-places the ladder."""
        strategy = await _started(ctx)
        await strategy.trade()
        exchange.fill(SYMBOL, OrderSide.BUY, "0.00495")

        await strategy.trade()

        assert len(exchange.cancelled) == 3
        assert exchange.withdrawals == 1
        assert len(exchange.resting()) == 4
        assert len(exchange.batches) == 2
        live_ids = {o.order_id for o in exchange.resting()}
        assert {t.order_id for t in strategy.tracked[SYMBOL]} == live_ids

    @pytest.mark.asyncio
    async def test_adopts_existing_orders(self, ctx, exchange):
        """Test that a restart with a full book adopts it instead of re-placing."""
        for side, price in [(OrderSide.BUY, "0.00495"), (OrderSide.SELL, "0.00505"),
                            (OrderSide.BUY, "0.0049"), (OrderSide.SELL, "0.0051")]:
            exchange.add_foreign(SYMBOL, side, price)
        strategy = await _started(ctx)

        await strategy.trade()

        assert exchange.batches == []
        assert len(strategy.tracked[SYMBOL]) == 4

    @pytest.mark.asyncio
    async def test_cancel_own_orders(self, ctx, exchange):
        """Test exit cancellation of the tracked ladder."""
        strategy = await _started(ctx)
        await strategy.trade()
        await strategy.cancel_own_orders()
        assert exchange.resting() == []
        assert strategy.tracked[SYMBOL] == []

    @pytest.mark.asyncio
    async def test_failed_batch_tracks_landed_orders(self, ctx, exchange):
        """Test that orders from batches that landed before a failure are tracked, then refreshed."""
        strategy = await _started(ctx, gridLevels=6)
        exchange.fail_submit_after = 1

        await strategy.trade()

        assert len(exchange.resting()) == 10
        assert {t.order_id for t in strategy.tracked[SYMBOL]} == {o.order_id for o in exchange.resting()}

        exchange.fail_submit_after = None
        await strategy.trade()

        assert len(exchange.cancelled) == 10
        assert len(exchange.resting()) == 12
        assert len(strategy.tracked[SYMBOL]) == 12

    @pytest.mark.asyncio
    async def test_failed_cancel_keeps_record(self, ctx, exchange):
        """Test that a failed exit cancel keeps the ladder tracked and persisted."""
        strategy = await _started(ctx)
        await strategy.trade()
        exchange.fail_cancel = True

        await strategy.cancel_own_orders()

        assert len(exchange.resting()) == 4
        assert len(strategy.tracked[SYMBOL]) == 4
        assert len(await ctx.store.load()) == 4
