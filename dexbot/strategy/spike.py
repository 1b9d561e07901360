"""
Spike strategy: limit orders at fixed deviations from a moving average catch
brief price spikes; each spike fill is answered by a take-profit at the MA.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Sequence

from dexbot.config.pairs import parse_spike_config
from dexbot.core.decimal_math import to_fixed
from dexbot.core.models import OpenOrder, OrderRole, TrackedOrder, TradeOrder
from dexbot.state.store import OrderStateEntry
from dexbot.strategy.base import TradingStrategyBase
from dexbot.strategy.spike_engine import PairState, SpikeCalculator, detect_fills

log = logging.getLogger("dexbot")


class SpikeBotStrategy(TradingStrategyBase):
    key = "spikeBot"

    def __init__(self, ctx) -> None:
        super().__init__(ctx)
        self.ma_window = 20
        self.rebalance_threshold_pct = Decimal("1.0")
        self.states: List[PairState] = []

    async def initialize(self, options: Dict[str, Any]) -> None:
        cfg = parse_spike_config(options)
        self.ma_window = cfg.ma_window
        self.rebalance_threshold_pct = cfg.rebalance_threshold_pct
        self.states = [PairState(config=p, window=cfg.ma_window) for p in cfg.pairs]

        restored = 0
        for order in await self.load_tracked_orders():
            if order.role not in (OrderRole.SPIKE, OrderRole.TAKE_PROFIT):
                continue
            if any(state.restore(order) for state in self.states):
                restored += 1
        if restored:
            log.info(json.dumps({"event": "tracked_orders_restored", "strategy": self.key, "count": restored}))

    def all_tracked(self) -> List[TrackedOrder]:
        return [t for state in self.states for t in state.all_tracked()]

    async def trade(self) -> None:
        entries: List[OrderStateEntry] = []
        for state in self.states:
            try:
                await self._trade_pair(state, entries)
            except Exception as exc:
                self.report_pair_error(state.symbol, exc)
            self.ctx.metrics.tracked_orders.labels(pair=state.symbol).set(len(state.all_tracked()))

        await self.save_tracked_orders(self.all_tracked())
        self.write_order_state(entries)

    async def _trade_pair(self, state: PairState, entries: List[OrderStateEntry]) -> None:
        symbol = state.symbol
        market = self.get_market(symbol)
        if market is None:
            return

        price = await self.ctx.provider.fetch_latest_price(symbol)
        if not state.push_price(price):
            log.info(json.dumps({
                "event": "pair_warming_up",
                "pair": symbol,
                "points": len(state.prices),
                "window": self.ma_window,
            }))
            return

        calc = SpikeCalculator(state.config, market)
        state.current_ma = state.moving_average()
        ma = state.current_ma
        self.ctx.metrics.moving_average.labels(pair=symbol).set(float(ma))
        log.info(json.dumps({"event": "spike_tick", "pair": symbol, "price": str(price), "ma": str(to_fixed(ma, market.ask_token.precision))}))

        # Restored ladders have no placement MA; adopt the first one seen.
        if state.spike_orders and state.last_order_ma <= 0:
            state.last_order_ma = ma

        open_orders = await self.get_own_open_orders(symbol, state.all_tracked())
        entries.append(OrderStateEntry(symbol, state.config.levels * 2, open_orders))

        prior_take_profits = list(state.take_profit_orders)
        await self._handle_spike_fills(state, calc, open_orders)
        self._handle_take_profit_fills(state, prior_take_profits, open_orders)

        cleared = False
        if calc.needs_rebalance(state, self.rebalance_threshold_pct):
            await self._rebalance(state, calc)
            cleared = True

        if not state.spike_orders:
            if not cleared:
                stale = [o for o in open_orders if not any(o.matches(t) for t in state.take_profit_orders)]
                if stale:
                    log.info(json.dumps({"event": "stale_orders_clearing", "pair": symbol, "count": len(stale)}))
                    await self._clear_orders(symbol, stale, "stale")
            await self._place_ladder(state, calc)

    async def _handle_spike_fills(self, state: PairState, calc: SpikeCalculator, open_orders: Sequence[OpenOrder]) -> None:
        if not state.spike_orders:
            return
        filled, remaining = detect_fills(state.spike_orders, open_orders)
        state.spike_orders = remaining
        if not filled:
            return

        symbol = state.symbol
        take_profits: List[TradeOrder] = []
        for order in filled:
            msg = f"Filled {order.side.label} spike at {order.price} for {symbol}"
            log.info(json.dumps({"event": "spike_filled", "pair": symbol, "side": order.side.label, "price": str(order.price)}))
            self.ctx.metrics.fills_total.labels(pair=symbol, side=order.side.label).inc()
            self.ctx.events.order_filled(msg, {
                "market": symbol,
                "side": order.side.label,
                "quantity": str(order.quantity),
                "price": str(order.price),
            })
            take_profits.append(calc.build_take_profit(state.current_ma, order.side))

        placed: List[TradeOrder] = []
        try:
            await self.place_orders(take_profits, placed)
        finally:
            known_ids = [t.order_id for t in state.all_tracked() if t.order_id is not None]
            resolved = await self.track_placed(placed, symbol, OrderRole.TAKE_PROFIT, exclude_ids=known_ids)
            state.take_profit_orders.extend(resolved)
            # Spikes whose take-profit never reached the book are detected again next poll.
            state.spike_orders.extend(filled[len(placed):])

    def _handle_take_profit_fills(
        self, state: PairState, prior: Sequence[TrackedOrder], open_orders: Sequence[OpenOrder]
    ) -> None:
        if not prior:
            return
        filled, _ = detect_fills(prior, open_orders)
        if not filled:
            return
        symbol = state.symbol
        for order in filled:
            msg = f"Take-profit {order.side.label} filled at {order.price}"
            log.info(json.dumps({"event": "take_profit_filled", "pair": symbol, "side": order.side.label, "price": str(order.price)}))
            self.ctx.metrics.fills_total.labels(pair=symbol, side=order.side.label).inc()
            self.ctx.events.order_filled(msg, {
                "market": symbol,
                "side": order.side.label,
                "quantity": str(order.quantity),
                "price": str(order.price),
            })
        state.take_profit_orders = [t for t in state.take_profit_orders if not any(t is f for f in filled)]

    async def _rebalance(self, state: PairState, calc: SpikeCalculator) -> None:
        symbol = state.symbol
        drift = calc.drift_pct(state.current_ma, state.last_order_ma)
        log.info(json.dumps({
            "event": "spike_rebalance",
            "pair": symbol,
            "drift_pct": str(round(drift, 4)),
            "threshold_pct": str(self.rebalance_threshold_pct),
        }))
        self.ctx.metrics.rebalances_total.labels(pair=symbol).inc()
        # Re-list so take-profits placed earlier in this poll are cancelled too.
        live = await self.get_own_open_orders(symbol, state.all_tracked())
        await self._clear_orders(symbol, live, "rebalance")
        state.clear()
        self.ctx.events.grid_adjusted(f"MA drift {round(drift, 2)}% on {symbol}, rebalancing", {
            "market": symbol,
            "driftPct": str(round(drift, 4)),
            "ma": str(state.current_ma),
            "lastOrderMa": str(state.last_order_ma),
        })

    async def _clear_orders(self, symbol: str, orders: Sequence[OpenOrder], reason: str) -> None:
        await self.cancel_open_orders(symbol, orders, reason)
        await self.ctx.gateway.withdraw_all()
        await self.pause(self.ctx.settings.rebalance_pause_sec)

    async def _place_ladder(self, state: PairState, calc: SpikeCalculator) -> None:
        orders = calc.build_spike_orders(state.current_ma)
        if not orders:
            return
        symbol = state.symbol
        log.info(json.dumps({
            "event": "spike_ladder_placing",
            "pair": symbol,
            "orders": len(orders),
            "ma": str(state.current_ma),
        }))
        placed: List[TradeOrder] = []
        try:
            await self.place_orders(orders, placed)
        finally:
            known_ids = [t.order_id for t in state.take_profit_orders if t.order_id is not None]
            state.spike_orders = await self.track_placed(placed, symbol, OrderRole.SPIKE, exclude_ids=known_ids)
            if placed:
                state.last_order_ma = state.current_ma

    async def cancel_own_orders(self) -> None:
        tracked = self.all_tracked()
        failed: List[TrackedOrder] = []
        if tracked:
            log.info(json.dumps({"event": "cancel_own_orders", "strategy": self.key, "count": len(tracked)}))
            failed = await self.cancel_tracked_orders(tracked)
        for state in self.states:
            state.clear()
            for order in failed:
                state.restore(order)
        await self.release_tracked_orders(failed)
