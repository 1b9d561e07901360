"""
SpikeCalculator - pure moving-average math for the spike strategy.

This module handles:
- The rolling price window and its simple moving average
- Symmetric spike ladders at fixed deviations from the MA
- Take-profit orders back at the MA after a spike fill
- MA drift measurement against the MA the ladder was placed at
- Fill detection by diffing tracked orders against live open orders

No I/O happens here; the strategy fetches prices, submits orders and persists state.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Deque, List, Sequence, Tuple

from dexbot.config.pairs import SpikePairConfig
from dexbot.core.decimal_math import quantity_and_adjusted_total, to_fixed
from dexbot.core.models import Market, OpenOrder, OrderRole, OrderSide, TrackedOrder, TradeOrder


@dataclass
class PairState:
    """Mutable per-pair state carried across polls."""
    config: SpikePairConfig
    window: int
    prices: Deque[Decimal] = field(init=False)
    current_ma: Decimal = Decimal(0)
    last_order_ma: Decimal = Decimal(0)
    spike_orders: List[TrackedOrder] = field(default_factory=list)
    take_profit_orders: List[TrackedOrder] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.prices = deque(maxlen=self.window)

    @property
    def symbol(self) -> str:
        return self.config.symbol

    @property
    def warmed_up(self) -> bool:
        return len(self.prices) >= self.window

    def push_price(self, price: Decimal) -> bool:
        """Append a price; True once the window is full."""
        self.prices.append(price)
        return self.warmed_up

    def moving_average(self) -> Decimal:
        if not self.prices:
            return Decimal(0)
        return sum(self.prices, Decimal(0)) / len(self.prices)

    def all_tracked(self) -> List[TrackedOrder]:
        return self.spike_orders + self.take_profit_orders

    def clear(self) -> None:
        self.spike_orders = []
        self.take_profit_orders = []

    def restore(self, order: TrackedOrder) -> bool:
        if order.market_symbol != self.symbol:
            return False
        if order.role is OrderRole.TAKE_PROFIT:
            self.take_profit_orders.append(order)
        else:
            self.spike_orders.append(order)
        return True


class SpikeCalculator:
    """Spike ladder math for one pair."""

    def __init__(self, pair: SpikePairConfig, market: Market) -> None:
        self.pair = pair
        self.market = market
        self.bid_precision = market.bid_token.precision
        self.ask_precision = market.ask_token.precision

    @property
    def symbol(self) -> str:
        return self.pair.symbol

    def _order(self, side: OrderSide, price: Decimal) -> TradeOrder:
        sized = quantity_and_adjusted_total(price, self.pair.order_amount, self.bid_precision, self.ask_precision)
        size = sized.adjusted_total if side == OrderSide.BUY else sized.quantity
        return TradeOrder(side, price, size, self.symbol)

    def build_spike_orders(self, ma: Decimal) -> List[TradeOrder]:
        """
        For each level L in 1..levels, a BUY at ma*(1-dev) and a SELL at
        ma*(1+dev) with dev = deviation_pct*L/100. Levels that round to a
        non-positive price are dropped.
        """
        orders: List[TradeOrder] = []
        for level in range(1, self.pair.levels + 1):
            deviation = self.pair.deviation_pct * level / 100
            buy_price = to_fixed(ma * (1 - deviation), self.ask_precision)
            sell_price = to_fixed(ma * (1 + deviation), self.ask_precision)
            if buy_price > 0:
                orders.append(self._order(OrderSide.BUY, buy_price))
            if sell_price > 0:
                orders.append(self._order(OrderSide.SELL, sell_price))
        return orders

    def build_take_profit(self, ma: Decimal, filled_side: OrderSide) -> TradeOrder:
        """Opposite-side order at the MA, sized from the pair's order amount."""
        return self._order(filled_side.opposite(), to_fixed(ma, self.ask_precision))

    @staticmethod
    def drift_pct(ma: Decimal, last_order_ma: Decimal) -> Decimal:
        if last_order_ma <= 0:
            return Decimal(0)
        return abs(ma - last_order_ma) / last_order_ma * 100

    def needs_rebalance(self, state: PairState, threshold_pct: Decimal) -> bool:
        if state.last_order_ma <= 0 or not state.spike_orders:
            return False
        return self.drift_pct(state.current_ma, state.last_order_ma) > threshold_pct


def detect_fills(
    tracked: Sequence[TrackedOrder], open_orders: Sequence[OpenOrder]
) -> Tuple[List[TrackedOrder], List[TrackedOrder]]:
    """Split tracked orders into (filled, still resting)."""
    filled: List[TrackedOrder] = []
    remaining: List[TrackedOrder] = []
    for t in tracked:
        if any(o.matches(t) for o in open_orders):
            remaining.append(t)
        else:
            filled.append(t)
    return filled, remaining
