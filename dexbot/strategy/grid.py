"""
Grid strategy: a fixed ladder between two limits, kept populated by counter-orders.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

from dexbot.config.pairs import GridPairConfig, parse_grid_pairs
from dexbot.core.models import MarketDetails, OpenOrder, OrderRole, TrackedOrder, TradeOrder
from dexbot.state.store import OrderStateEntry
from dexbot.strategy.base import TradingStrategyBase
from dexbot.strategy.grid_engine import GridCalculator

log = logging.getLogger("dexbot")


class GridBotStrategy(TradingStrategyBase):
    key = "gridBot"

    def __init__(self, ctx) -> None:
        super().__init__(ctx)
        self.pairs: List[GridPairConfig] = []
        self.tracked: Dict[str, List[TrackedOrder]] = {}

    async def initialize(self, options: Dict[str, Any]) -> None:
        self.pairs = parse_grid_pairs(options)
        self.tracked = {p.symbol: [] for p in self.pairs}

        restored = 0
        for order in await self.load_tracked_orders():
            if order.role is OrderRole.GRID and order.market_symbol in self.tracked:
                self.tracked[order.market_symbol].append(order)
                restored += 1
        if restored:
            log.info(json.dumps({"event": "tracked_orders_restored", "strategy": self.key, "count": restored}))

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

    async def _trade_pair(self, pair: GridPairConfig, entries: List[OrderStateEntry]) -> None:
        details = await self.get_market_details(pair.symbol)
        if details is None:
            return
        calc = GridCalculator(pair, details.market, self.ctx.settings.grid_placement)
        open_orders = await self.get_open_orders(pair.symbol)
        entries.append(OrderStateEntry(pair.symbol, pair.grid_levels, open_orders))

        tracked = self.tracked[pair.symbol]
        if not tracked:
            await self._place_ladder(calc, details)
        elif calc.should_reconcile(len(tracked), len(open_orders)):
            await self._reconcile(calc, tracked, open_orders)

    async def _place_ladder(self, calc: GridCalculator, details: MarketDetails) -> None:
        symbol = calc.symbol
        market = details.market
        plan = calc.build_ladder(details.price)
        log.info(json.dumps({
            "event": "grid_ladder_built",
            "pair": symbol,
            "last_price": str(details.price),
            "grid_price": str(plan.grid_price),
            "orders": len(plan.orders),
            "rejected": plan.rejected,
            "max_grids": plan.max_grids,
        }))

        provider = self.ctx.provider
        bid_balance = await provider.fetch_token_balance(self.username, market.bid_token.contract, market.bid_token.code)
        ask_balance = await provider.fetch_token_balance(self.username, market.ask_token.contract, market.ask_token.code)
        if plan.shortfall(bid_balance, ask_balance):
            bid, ask = market.bid_token.code, market.ask_token.code
            msg = (
                f"LOW BALANCES - Current balance {bid_balance} {bid} - Expected {plan.sell_total} {bid}, "
                f"Current balance {ask_balance} {ask} - Expected {plan.buy_total} {ask}"
            )
            log.error(json.dumps({"event": "balance_low", "pair": symbol, "msg": msg}))
            self.ctx.metrics.balance_low_total.labels(pair=symbol).inc()
            self.ctx.events.balance_low(msg, {
                "market": f"{bid}-{ask}",
                "sellRequired": str(plan.sell_total),
                "sellAvailable": str(bid_balance),
                "buyRequired": str(plan.buy_total),
                "buyAvailable": str(ask_balance),
            })
            return

        if not plan.placeable:
            log.warning(json.dumps({
                "event": "grid_ladder_skipped",
                "pair": symbol,
                "orders": len(plan.orders),
                "max_grids": plan.max_grids,
            }))
            return

        placed: List[TradeOrder] = []
        try:
            await self.place_orders(plan.orders, placed)
        finally:
            self.tracked[symbol] = await self.track_placed(placed, symbol, OrderRole.GRID)

    async def _reconcile(self, calc: GridCalculator, tracked: List[TrackedOrder], open_orders: List[OpenOrder]) -> None:
        symbol = calc.symbol
        result = calc.reconcile(tracked, open_orders)
        if not result.has_fills:
            return

        for order in result.filled:
            msg = f"Completed {order.side.label} order for {order.quantity} {symbol} at {order.price}"
            log.info(json.dumps({"event": "order_filled", "pair": symbol, "side": order.side.label, "price": str(order.price)}))
            self.ctx.metrics.fills_total.labels(pair=symbol, side=order.side.label).inc()
            self.ctx.events.order_filled(msg, {
                "market": symbol,
                "side": order.side.label,
                "quantity": str(order.quantity),
                "price": str(order.price),
            })
        for counter in result.skipped:
            log.warning(json.dumps({
                "event": "counter_order_skipped",
                "pair": symbol,
                "side": counter.side.label,
                "price": str(counter.price),
            }))

        for order in result.unpriced:
            log.warning(json.dumps({
                "event": "counter_order_dropped",
                "pair": symbol,
                "side": order.side.label,
                "filled_price": str(order.price),
            }))

        placed: List[TradeOrder] = []
        try:
            if result.counters:
                await self.place_orders(result.counters, placed)
        finally:
            known_ids = [t.order_id for t in result.resting if t.order_id is not None]
            resolved = await self.track_placed(placed, symbol, OrderRole.GRID, exclude_ids=known_ids)
            # Fills whose counter never reached the book stay tracked, so the next poll retries them.
            retry = result.origins[len(placed):]
            self.tracked[symbol] = result.resting + resolved + retry

        if result.counters:
            self.ctx.events.grid_adjusted(f"Placed {len(result.counters)} counter orders for {symbol}", {
                "market": symbol,
                "filled": len(result.filled),
                "orders": [c.to_dict() for c in result.counters],
            })

    async def cancel_own_orders(self) -> None:
        tracked = self.all_tracked()
        failed: List[TrackedOrder] = []
        if tracked:
            log.info(json.dumps({"event": "cancel_own_orders", "strategy": self.key, "count": len(tracked)}))
            failed = await self.cancel_tracked_orders(tracked)
        for symbol in self.tracked:
            self.tracked[symbol] = [t for t in failed if t.market_symbol == symbol]
        await self.release_tracked_orders(failed)
