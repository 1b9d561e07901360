"""
Swapper strategy: threshold trading against proton.swaps AMM pools.

The quote value of a fixed swap amount is read off the pool ratio. Cheap quote
(value at or under the buy threshold) is bought with base tokens while the
quote balance stays under its max hold; expensive quote (value at or over the
sell threshold) is sold while the quote balance stays over its min hold.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from dexbot.config.pairs import SwapPairConfig, parse_swap_pairs
from dexbot.core.decimal_math import to_decimal, to_fixed
from dexbot.core.models import OrderSide
from dexbot.strategy.base import TradingStrategyBase

log = logging.getLogger("dexbot")


@dataclass(frozen=True)
class PoolToken:
    """One side of a swap pool, parsed from an "<amount> <CODE>" quantity."""
    code: str
    amount: Decimal
    precision: int
    contract: str


def pool_token(pool: Dict[str, Any], code: str) -> Optional[PoolToken]:
    for key in ("pool1", "pool2"):
        side = pool.get(key) or {}
        parts = str(side.get("quantity", "")).split()
        if len(parts) != 2 or parts[1] != code:
            continue
        try:
            amount = to_decimal(parts[0])
        except ValueError:
            return None
        precision = len(parts[0].split(".", 1)[1]) if "." in parts[0] else 0
        return PoolToken(code=code, amount=amount, precision=precision, contract=str(side.get("contract", "")))
    return None


@dataclass(frozen=True)
class SwapDecision:
    side: Optional[OrderSide]
    ratio: Decimal
    quote_value: Decimal
    reason: str = ""


def decide_swap(
    pair: SwapPairConfig,
    quote: PoolToken,
    base: PoolToken,
    quote_balance: Decimal,
    base_balance: Decimal,
) -> SwapDecision:
    """Pure swap decision for one pair; side None means no swap this poll."""
    ratio = quote.amount / base.amount
    value = pair.quote_amount_per_swap / ratio
    if value <= pair.quote_buy_max_threshold:
        if quote_balance > pair.quote_max_hold:
            return SwapDecision(None, ratio, value, "max_hold_reached")
        if pair.quote_amount_per_swap * base.amount / quote.amount >= base_balance:
            return SwapDecision(None, ratio, value, "insufficient_base")
        return SwapDecision(OrderSide.BUY, ratio, value)
    if value >= pair.quote_sell_min_threshold:
        if quote_balance < pair.quote_min_hold:
            return SwapDecision(None, ratio, value, "min_hold_reached")
        if pair.quote_amount_per_swap >= quote_balance:
            return SwapDecision(None, ratio, value, "insufficient_quote")
        return SwapDecision(OrderSide.SELL, ratio, value)
    return SwapDecision(None, ratio, value, "within_thresholds")


class SwapperStrategy(TradingStrategyBase):
    key = "swapper"

    def __init__(self, ctx) -> None:
        super().__init__(ctx)
        self.pairs: List[SwapPairConfig] = []

    async def initialize(self, options: Dict[str, Any]) -> None:
        self.pairs = parse_swap_pairs(options)

    async def trade(self) -> None:
        pools = await self.ctx.provider.fetch_swap_pools()
        for pair in self.pairs:
            try:
                await self._trade_pair(pair, pools)
            except Exception as exc:
                self.report_pair_error(pair.symbol, exc)
        self.write_order_state([])

    async def _trade_pair(self, pair: SwapPairConfig, pools: Dict[str, Dict[str, Any]]) -> None:
        symbol = pair.symbol
        pool = pools.get(symbol)
        if pool is None:
            log.warning(json.dumps({"event": "swap_pool_missing", "pair": symbol}))
            return
        quote = pool_token(pool, pair.quote)
        base = pool_token(pool, pair.base)
        if quote is None or base is None or quote.amount <= 0 or base.amount <= 0:
            log.warning(json.dumps({"event": "swap_pool_token_missing", "pair": symbol, "quote": pair.quote, "base": pair.base}))
            return

        provider = self.ctx.provider
        quote_balance = await provider.fetch_token_balance(self.username, quote.contract, pair.quote)
        base_balance = await provider.fetch_token_balance(self.username, base.contract, pair.base)

        decision = decide_swap(pair, quote, base, quote_balance, base_balance)
        log.info(json.dumps({
            "event": "swap_pool_info",
            "pair": symbol,
            "quote_in_pool": str(quote.amount),
            "base_in_pool": str(base.amount),
            "ratio": str(to_fixed(decision.ratio, 6)),
            "quote_value": str(to_fixed(decision.quote_value, 6)),
        }))
        if decision.side is None:
            log.info(json.dumps({
                "event": "swap_skipped",
                "pair": symbol,
                "reason": decision.reason,
                "quote_balance": str(quote_balance),
                "base_balance": str(base_balance),
            }))
            return

        if decision.side == OrderSide.BUY:
            inverted = base.amount / quote.amount
            base_amount = pair.quote_amount_per_swap * inverted
            await self.ctx.gateway.submit_swap(base_amount, pair.base, base.contract, symbol, base.precision)
            msg = f"BUY swap: {pair.quote_amount_per_swap} {pair.quote} for {to_fixed(base_amount, base.precision)} {pair.base}"
            data = {
                "symbol": symbol,
                "side": "BUY",
                "quoteAmount": str(pair.quote_amount_per_swap),
                "quoteToken": pair.quote,
                "baseAmount": str(to_fixed(base_amount, base.precision)),
                "baseToken": pair.base,
                "priceRatio": str(to_fixed(inverted, 6)),
            }
        else:
            await self.ctx.gateway.submit_swap(pair.quote_amount_per_swap, pair.quote, quote.contract, symbol, quote.precision)
            msg = f"SELL swap: {pair.quote_amount_per_swap} {pair.quote} for {to_fixed(decision.quote_value, 6)} {pair.base}"
            data = {
                "symbol": symbol,
                "side": "SELL",
                "quoteAmount": str(pair.quote_amount_per_swap),
                "quoteToken": pair.quote,
                "baseAmount": str(to_fixed(decision.quote_value, 6)),
                "baseToken": pair.base,
                "priceRatio": str(to_fixed(decision.ratio, 6)),
            }

        log.info(json.dumps({"event": "swap_executed", "pair": symbol, "side": decision.side.label}))
        self.ctx.metrics.swaps_total.labels(pair=symbol, side=decision.side.label).inc()
        self.ctx.events.swap_executed(msg, data)
