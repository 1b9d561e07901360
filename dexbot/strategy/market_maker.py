"""
Market-maker strategy: a symmetric ladder stepped out from the best bid/ask
(or a fixed base price), rebuilt whenever the book holds fewer of the pair's
orders than the ladder should have.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Dict, List

from dexbot.config.pairs import MarketMakerPairConfig, parse_market_maker_pairs
from dexbot.core.decimal_math import quantity_and_adjusted_total, to_fixed
from dexbot.core.models import Market, OrderRole, OrderSide, TrackedOrder, TradeOrder
from dexbot.state.store import OrderStateEntry
from dexbot.strategy.base import TradingStrategyBase

log = logging.getLogger("dexbot")

BOTH_SIDES = 0


def expected_order_count(pair: MarketMakerPairConfig) -> int:
    return pair.grid_levels * (2 if pair.order_side == BOTH_SIDES else 1)


def build_market_maker_orders(
    pair: MarketMakerPairConfig,
    market: Market,
    highest_bid: Decimal,
    lowest_ask: Decimal,
) -> List[TradeOrder]:
    """
    BUY at anchor_bid*(1 - interval*i) and SELL at anchor_ask*(1 + interval*i)
    for i in 1..grid_levels. A positive `base` replaces both anchors.
    """
    bp = market.bid_token.precision
    ap = market.ask_token.precision
    anchor_bid = pair.base if pair.base > 0 else highest_bid
    anchor_ask = pair.base if pair.base > 0 else lowest_ask
    with_buys = pair.order_side in (BOTH_SIDES, int(OrderSide.BUY))
    with_sells = pair.order_side in (BOTH_SIDES, int(OrderSide.SELL))

    orders: List[TradeOrder] = []
    for i in range(1, pair.grid_levels + 1):
        step = pair.grid_interval * i
        if with_buys:
            price = to_fixed(anchor_bid * (1 - step), ap)
            if price > 0:
                sized = quantity_and_adjusted_total(price, pair.bid_amount_per_level, bp, ap)
                orders.append(TradeOrder(OrderSide.BUY, price, sized.adjusted_total, pair.symbol))
        if with_sells:
            price = to_fixed(anchor_ask * (1 + step), ap)
            if price > 0:
                sized = quantity_and_adjusted_total(price, pair.bid_amount_per_level, bp, ap)
                orders.append(TradeOrder(OrderSide.SELL, price, sized.quantity, pair.symbol))
    return orders


class MarketMakerStrategy(TradingStrategyBase):
    key = "marketMaker"

    def __init__(self, ctx) -> None:
        super().__init__(ctx)
        self.pairs: List[MarketMakerPairConfig] = []
        self.tracked: Dict[str, List[TrackedOrder]] = {}

    async def initialize(self, options: Dict[str, Any]) -> None:
        self.pairs = parse_market_maker_pairs(options)
        self.tracked = {p.symbol: [] for p in self.pairs}
        for order in await self.load_tracked_orders():
            if order.role is OrderRole.GRID and order.market_symbol in self.tracked:
                self.tracked[order.market_symbol].append(order)

    def all_tracked(self) -> List[TrackedOrder]:
        return [t for orders in self.tracked.values() for t in orders]

    async def trade(self) -> None:
        entries: List[OrderStateEntry] = []
        for pair in self.pairs:
            try:
                await self._trade_pair(pair, entries)
            except Exception as exc:
                self.report_pair_error(pair.symbol, exc)
            self.ctx.metrics.tracked_orders.labels(pair=pair.symbol).set(len(self.tracked[pair.symbol]))

        await self.save_tracked_orders(self.all_tracked())
        self.write_order_state(entries)

    async def _trade_pair(self, pair: MarketMakerPairConfig, entries: List[OrderStateEntry]) -> None:
        symbol = pair.symbol
        details = await self.get_market_details(symbol)
        if details is None:
            return
        open_orders = await self.get_open_orders(symbol)
        expected = expected_order_count(pair)
        entries.append(OrderStateEntry(symbol, expected, open_orders))

        if len(open_orders) >= expected:
            if not self.tracked[symbol]:
                self.tracked[symbol] = [o.to_tracked(OrderRole.GRID) for o in open_orders]
            return

        if open_orders:
            log.info(json.dumps({
                "event": "mm_ladder_refresh",
                "pair": symbol,
                "open": len(open_orders),
                "expected": expected,
            }))
            await self.cancel_open_orders(symbol, open_orders, "refresh")
            await self.ctx.gateway.withdraw_all()
            await self.pause(self.ctx.settings.rebalance_pause_sec)
        self.tracked[symbol] = []

        orders = build_market_maker_orders(pair, details.market, details.highest_bid, details.lowest_ask)
        if not orders:
            return
        log.info(json.dumps({
            "event": "mm_ladder_placing",
            "pair": symbol,
            "orders": len(orders),
            "bid": str(details.highest_bid),
            "ask": str(details.lowest_ask),
        }))
        placed: List[TradeOrder] = []
        try:
            await self.place_orders(orders, placed)
        finally:
            self.tracked[symbol] = await self.track_placed(placed, symbol, OrderRole.GRID)

    async def cancel_own_orders(self) -> None:
        tracked = self.all_tracked()
        failed: List[TrackedOrder] = []
        if tracked:
            log.info(json.dumps({"event": "cancel_own_orders", "strategy": self.key, "count": len(tracked)}))
            failed = await self.cancel_tracked_orders(tracked)
        for symbol in self.tracked:
            self.tracked[symbol] = [t for t in failed if t.market_symbol == symbol]
        await self.release_tracked_orders(failed)
