"""
Tests for the swapper strategy.

Tests cover:
- Pool token parsing
- Buy/sell/skip decisions against thresholds and holds
- Swap submission and swap_executed events
- Missing pools
"""

from decimal import Decimal

import pytest

from dexbot.config.pairs import SwapPairConfig
from dexbot.core.models import OrderSide
from dexbot.strategy.swapper import SwapperStrategy, decide_swap, pool_token

POOLS = {
    "XPRUSDC": {
        "lt_symbol": "8,XPRUSDC",
        "pool1": {"quantity": "1000000.0000 XPR", "contract": "eosio.token"},
        "pool2": {"quantity": "400.000000 XUSDC", "contract": "xtokens"},
    }
}


def _pair(buy_max="30000", sell_min="40000", **overrides) -> dict:
    pair = {
        "symbol": "XPRUSDC",
        "base": "XPR",
        "quote": "XUSDC",
        "quoteAmountPerSwap": 10,
        "quoteMaxHold": 100,
        "quoteMinHold": 5,
        "quoteBuyMaxThreshold": buy_max,
        "quoteSellMinThreshold": sell_min,
    }
    pair.update(overrides)
    return pair


def _config(buy_max="30000", sell_min="40000") -> SwapPairConfig:
    return SwapPairConfig(
        symbol="XPRUSDC",
        base="XPR",
        quote="XUSDC",
        quote_amount_per_swap=Decimal("10"),
        quote_max_hold=Decimal("100"),
        quote_min_hold=Decimal("5"),
        quote_buy_max_threshold=Decimal(buy_max),
        quote_sell_min_threshold=Decimal(sell_min),
    )


@pytest.fixture
def tokens():
    pool = POOLS["XPRUSDC"]
    return pool_token(pool, "XUSDC"), pool_token(pool, "XPR")


async def _run(ctx, exchange, pair, quote_balance="50", base_balance="30000"):
    exchange.pools = POOLS
    exchange.set_balance("xtokens", "XUSDC", quote_balance)
    exchange.set_balance("eosio.token", "XPR", base_balance)
    strategy = SwapperStrategy(ctx)
    await strategy.initialize({"pairs": [pair]})
    await strategy.trade()
    return strategy


class TestPoolToken:
    """Pool parsing tests."""

    def test_parses_amount_precision_contract(self, tokens):
        """Test both sides of the pool."""
        quote, base = tokens
        assert quote.amount == Decimal("400")
        assert quote.precision == 6
        assert quote.contract == "xtokens"
        assert base.precision == 4

    def test_exact_code_match(self):
        """Test that a code prefix does not match."""
        assert pool_token(POOLS["XPRUSDC"], "XP") is None
        assert pool_token({}, "XPR") is None


class TestDecision:
    """Pure decision tests."""

    def test_value_from_ratio(self, tokens):
        """Test quote value of a swap: 10 / (400 / 1000000) = 25000."""
        decision = decide_swap(_config(), *tokens, Decimal("50"), Decimal("30000"))
        assert decision.ratio == Decimal("0.0004")
        assert decision.quote_value == Decimal("25000")
        assert decision.side == OrderSide.BUY

    def test_buy_blocked_at_max_hold(self, tokens):
        """Test that the quote max hold stops buying."""
        decision = decide_swap(_config(), *tokens, Decimal("150"), Decimal("30000"))
        assert decision.side is None
        assert decision.reason == "max_hold_reached"

    def test_buy_needs_more_base_than_cost(self, tokens):
        """Test that a base balance equal to the cost is not enough."""
        decision = decide_swap(_config(), *tokens, Decimal("50"), Decimal("25000"))
        assert decision.reason == "insufficient_base"

    def test_sell(self, tokens):
        """Test selling when the value meets the sell threshold."""
        decision = decide_swap(_config("20000", "25000"), *tokens, Decimal("50"), Decimal("0"))
        assert decision.side == OrderSide.SELL

    def test_sell_blocked_at_min_hold(self, tokens):
        """Test that the quote min hold stops selling."""
        decision = decide_swap(_config("20000", "25000"), *tokens, Decimal("4"), Decimal("0"))
        assert decision.reason == "min_hold_reached"

    def test_sell_needs_more_quote_than_amount(self, tokens):
        """Test that a quote balance equal to the swap amount is not enough."""
        decision = decide_swap(_config("20000", "25000"), *tokens, Decimal("10"), Decimal("0"))
        assert decision.reason == "insufficient_quote"

    def test_between_thresholds(self, tokens):
        """Test no swap inside the band."""
        decision = decide_swap(_config("20000", "30000"), *tokens, Decimal("50"), Decimal("30000"))
        assert decision.reason == "within_thresholds"


class TestSwapperStrategy:
    """Strategy loop tests."""

    @pytest.mark.asyncio
    async def test_buy_swap_submitted(self, ctx, exchange):
        """Test a BUY sends base tokens to the pool."""
        await _run(ctx, exchange, _pair())

        [swap] = exchange.swaps
        assert swap["token_code"] == "XPR"
        assert swap["token_contract"] == "eosio.token"
        assert swap["pair_symbol"] == "XPRUSDC"
        assert swap["precision"] == 4
        assert swap["amount"] == Decimal("25000")

        [(_, msg, data)] = ctx.events.of("swap_executed")
        assert msg.startswith("BUY swap")
        assert data["side"] == "BUY"
        assert data["quoteToken"] == "XUSDC"
        assert data["baseAmount"] == "25000.0000"
        assert ctx.metrics.registry.get_sample_value("dexbot_swaps_total", {"pair": "XPRUSDC", "side": "BUY"}) == 1

    @pytest.mark.asyncio
    async def test_sell_swap_submitted(self, ctx, exchange):
        """Test a SELL sends the quote amount to the pool."""
        await _run(ctx, exchange, _pair("20000", "25000"))

        [swap] = exchange.swaps
        assert swap["token_code"] == "XUSDC"
        assert swap["token_contract"] == "xtokens"
        assert swap["amount"] == Decimal("10")
        assert swap["precision"] == 6
        assert ctx.events.of("swap_executed")[0][2]["side"] == "SELL"

    @pytest.mark.asyncio
    async def test_no_swap_inside_band(self, ctx, exchange):
        """Test that nothing is sent between thresholds."""
        await _run(ctx, exchange, _pair("20000", "30000"))
        assert exchange.swaps == []
        assert ctx.events.calls == []

    @pytest.mark.asyncio
    async def test_missing_pool_skipped(self, ctx, exchange):
        """Test that a pair without a pool is skipped without an error."""
        await _run(ctx, exchange, _pair(symbol="XPRXMD"))
        assert exchange.swaps == []
        assert ctx.events.of("bot_error") == []
