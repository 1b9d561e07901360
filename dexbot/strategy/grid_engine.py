"""
GridCalculator - pure grid computation for the grid strategy.

This module handles:
- Ladder construction between the configured limits
- The anti-cross filter around the last trade price
- Balance requirements of a ladder
- Fill detection by diffing tracked orders against live open orders
- Counter-order pricing and spread-adaptive buy-back sizing

No I/O happens here; the strategy fetches data, submits orders and persists state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence

from dexbot.config.pairs import GridPairConfig
from dexbot.core.decimal_math import quantity_and_adjusted_total, to_fixed
from dexbot.core.models import Market, OpenOrder, OrderRole, OrderSide, TrackedOrder, TradeOrder

# Percent floor of the buy-back inflation.
PURCHASE_SPREAD_FLOOR = Decimal("0.1")


@dataclass
class LadderPlan:
    """Result of initial ladder construction."""
    orders: List[TradeOrder]
    grid_price: Decimal
    max_grids: int
    start_index: int
    sell_total: Decimal  # bid-token units
    buy_total: Decimal  # ask-token units
    rejected: int = 0

    @property
    def placeable(self) -> bool:
        """False when non-divisible sizing produced one order too many."""
        return len(self.orders) <= self.max_grids

    def shortfall(self, bid_balance: Decimal, ask_balance: Decimal) -> bool:
        return self.sell_total > bid_balance or self.buy_total > ask_balance


@dataclass
class GridReconciliation:
    """Result of one fill-detection pass."""
    filled: List[TrackedOrder] = field(default_factory=list)
    counters: List[TradeOrder] = field(default_factory=list)
    resting: List[TrackedOrder] = field(default_factory=list)
    skipped: List[TradeOrder] = field(default_factory=list)
    # origins[i] is the fill answered by counters[i]
    origins: List[TrackedOrder] = field(default_factory=list)
    # fills whose counter would price at or below zero
    unpriced: List[TrackedOrder] = field(default_factory=list)

    @property
    def has_fills(self) -> bool:
        return bool(self.filled)

    @property
    def working_set(self) -> List[TrackedOrder]:
        """Resting orders plus not-yet-resolved counters: the pair's next tracked state."""
        return self.resting + [TrackedOrder(order=c, role=OrderRole.GRID) for c in self.counters]


class GridCalculator:
    """
    Grid math for one pair.

    Limits are expressed in token units and scaled into the bid token's integer
    domain (x 10^bid_precision) before the grid is divided into levels.
    """

    def __init__(self, pair: GridPairConfig, market: Market, grid_placement: bool = True) -> None:
        self.pair = pair
        self.market = market
        self.grid_placement = grid_placement
        self.bid_precision = market.bid_token.precision
        self.ask_precision = market.ask_token.precision
        self._scale = Decimal(10) ** self.bid_precision
        self.upper = pair.upper_limit * self._scale
        self.lower = pair.lower_limit * self._scale
        self.grid_size = (self.upper - self.lower) / pair.grid_levels
        self.grid_price = to_fixed(self.grid_size / self._scale, self.ask_precision)

    @property
    def symbol(self) -> str:
        return self.pair.symbol

    def level_price(self, index: int) -> Decimal:
        return to_fixed((self.upper - self.grid_size * index) / self._scale, self.ask_precision)

    def build_ladder(self, last_price: Decimal) -> LadderPlan:
        """
        Compute the initial ladder around `last_price`.

        Levels closer than half a grid step to the last price are rejected;
        levels above it become SELLs sized in bid tokens, levels below become
        BUYs sized by ask-token spend.
        """
        last = to_fixed(last_price, self.ask_precision)
        price_traded = last * self._scale
        max_grids = self.pair.grid_levels
        start_index = 0
        if self.upper >= price_traded and self.lower >= price_traded:
            max_grids -= 1
        if self.upper <= price_traded and self.lower <= price_traded:
            start_index = 1

        min_diff = self.grid_price / 2
        orders: List[TradeOrder] = []
        sell_total = Decimal(0)
        buy_total = Decimal(0)
        rejected = 0
        for index in range(start_index, max_grids + 1):
            price = self.level_price(index)
            if price <= 0 or abs(price - last) < min_diff:
                rejected += 1
                continue
            sized = quantity_and_adjusted_total(
                price, self.pair.bid_amount_per_level, self.bid_precision, self.ask_precision
            )
            if price > last:
                orders.append(TradeOrder(OrderSide.SELL, price, sized.quantity, self.symbol))
                sell_total += sized.quantity
            elif price < last:
                orders.append(TradeOrder(OrderSide.BUY, price, sized.adjusted_total, self.symbol))
                buy_total += sized.adjusted_total
            else:
                rejected += 1

        return LadderPlan(
            orders=orders,
            grid_price=self.grid_price,
            max_grids=max_grids,
            start_index=start_index,
            sell_total=to_fixed(sell_total, self.bid_precision),
            buy_total=to_fixed(buy_total, self.ask_precision),
            rejected=rejected,
        )

    def should_reconcile(self, tracked_count: int, open_count: int) -> bool:
        """At least one but not all levels still resting."""
        return tracked_count > 0 and 0 < open_count < self.pair.grid_levels

    def counter_buy_amount(self, filled_price: Decimal) -> Decimal:
        """
        Per-level amount inflated by half the percent spread above a 0.1% floor.

        Always derived from the configured base amount, never from a previous
        adjusted amount. Unbounded.
        """
        percent_spread = self.grid_price / filled_price * 100
        purchase_spread = (percent_spread - PURCHASE_SPREAD_FLOOR) / 2 + PURCHASE_SPREAD_FLOOR
        base = self.pair.bid_amount_per_level
        return base + base * purchase_spread / 100

    def counter_order(self, filled: TrackedOrder, working: Sequence[TrackedOrder]) -> Optional[TradeOrder]:
        """Opposite-side order one grid step away; None when that price is not positive."""
        if filled.side == OrderSide.BUY:
            lowest_ask = _lowest_ask(working)
            if lowest_ask is None or self.grid_placement:
                price = to_fixed(filled.price + self.grid_price, self.ask_precision)
            else:
                price = to_fixed(lowest_ask - self.grid_price, self.ask_precision)
            if price <= 0:
                return None
            sized = quantity_and_adjusted_total(
                price, self.pair.bid_amount_per_level, self.bid_precision, self.ask_precision
            )
            return TradeOrder(OrderSide.SELL, price, sized.quantity, self.symbol)

        highest_bid = _highest_bid(working)
        if highest_bid is None or self.grid_placement:
            price = to_fixed(filled.price - self.grid_price, self.ask_precision)
        else:
            price = to_fixed(highest_bid + self.grid_price, self.ask_precision)
        if price <= 0:
            return None
        sized = quantity_and_adjusted_total(
            price, self.counter_buy_amount(filled.price), self.bid_precision, self.ask_precision
        )
        return TradeOrder(OrderSide.BUY, price, sized.adjusted_total, self.symbol)

    def reconcile(self, tracked: Sequence[TrackedOrder], open_orders: Sequence[OpenOrder]) -> GridReconciliation:
        """
        Diff tracked orders against the live book.

        A tracked order with no matching live order is filled. Each counter joins
        the working set immediately so later fills in the same pass see the
        updated best bid/ask. A counter landing on a (side, price) that is
        already resting is skipped. With no fills the tracked state is returned
        as is.
        """
        filled = [t for t in tracked if not any(o.matches(t) for o in open_orders)]
        if not filled:
            return GridReconciliation(resting=list(tracked))

        resting: List[TrackedOrder] = []
        for live in open_orders:
            known = next((t for t in tracked if live.matches(t)), None)
            resting.append(known if known is not None else live.to_tracked(OrderRole.GRID))

        result = GridReconciliation(filled=filled, resting=resting)
        working = list(resting)
        for order in filled:
            counter = self.counter_order(order, working)
            if counter is None:
                result.unpriced.append(order)
                continue
            if any(w.side == counter.side and w.price == counter.price for w in working):
                result.skipped.append(counter)
                continue
            result.counters.append(counter)
            result.origins.append(order)
            working.append(TrackedOrder(order=counter, role=OrderRole.GRID))
        return result


def _lowest_ask(orders: Sequence[TrackedOrder]) -> Optional[Decimal]:
    return min((o.price for o in orders if o.side == OrderSide.SELL), default=None)


def _highest_bid(orders: Sequence[TrackedOrder]) -> Optional[Decimal]:
    return max((o.price for o in orders if o.side == OrderSide.BUY), default=None)
