"""
Shared strategy plumbing: batched placement, market snapshots, open-order
filtering, id resolution, cancellation and persistence hooks.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from dexbot.core.context import TradingContext
from dexbot.core.models import Market, MarketDetails, OpenOrder, OrderRole, TrackedOrder, TradeOrder
from dexbot.state.store import OrderStateEntry

log = logging.getLogger("dexbot")

BATCH_SIZE = 10


class TradingStrategyBase(ABC):
    """Capability interface shared by every strategy: initialize, trade, cancel_own_orders."""

    key: str = ""

    def __init__(self, ctx: TradingContext) -> None:
        self.ctx = ctx
        self.username = ctx.username

    @abstractmethod
    async def initialize(self, options: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def trade(self) -> None:
        ...

    async def cancel_own_orders(self) -> None:
        """Cancel what this instance tracks. Strategies without tracked orders do nothing."""
        return None

    # -- helpers -------------------------------------------------------------

    def get_market(self, symbol: str) -> Optional[Market]:
        market = self.ctx.registry.by_symbol(symbol)
        if market is None:
            log.error(json.dumps({"event": "invalid_market", "strategy": self.key, "pair": symbol}))
        return market

    async def pause(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    async def place_orders(self, orders: Sequence[TradeOrder], placed: Optional[List[TradeOrder]] = None) -> None:
        """
        Stage orders and flush every BATCH_SIZE orders and after the last one.

        Each flush is a process action plus the staged batch, followed by a
        fixed pause. Every batch whose transaction went through is appended to
        `placed` before the next one is staged, so a caller still knows what
        reached the book when a later flush raises.
        """
        gateway = self.ctx.gateway
        total = len(orders)
        batch_start = 0
        for i, order in enumerate(orders, start=1):
            try:
                gateway.prepare_limit_order(order.market_symbol, order.side, order.quantity, order.price)
            except Exception:
                gateway.discard_staged()
                raise
            if i % BATCH_SIZE != 0 and i != total:
                continue
            batch = orders[batch_start:i]
            batch_start = i
            try:
                await gateway.submit_process_action()
                await gateway.submit_orders()
            except Exception:
                gateway.discard_staged()
                raise
            if placed is not None:
                placed.extend(batch)
            for o in batch:
                self.ctx.metrics.orders_submitted.labels(pair=o.market_symbol, side=o.side.label).inc()
            self.ctx.metrics.order_batches.labels(strategy=self.key).inc()
            self.ctx.events.grid_placed(f"Placed {len(batch)} orders", {"orders": [o.to_dict() for o in batch]})
            log.info(json.dumps({"event": "orders_placed", "strategy": self.key, "count": len(batch)}))
            await self.pause(self.ctx.settings.order_batch_delay_sec)

    async def get_market_details(self, symbol: str) -> Optional[MarketDetails]:
        """Last trade price plus best bid/ask from a depth-1 book; sides fall back to the last price."""
        market = self.get_market(symbol)
        if market is None:
            return None
        provider = self.ctx.provider
        price = await provider.fetch_latest_price(symbol)
        book = await provider.fetch_order_book(symbol, 1)
        lowest_ask = book["asks"][0] if book["asks"] else price
        highest_bid = book["bids"][0] if book["bids"] else price
        return MarketDetails(market=market, price=price, highest_bid=highest_bid, lowest_ask=lowest_ask)

    async def get_open_orders(self, symbol: str) -> List[OpenOrder]:
        if self.ctx.registry.by_symbol(symbol) is None:
            raise ValueError(f"Market {symbol} does not exist")
        orders = await self.ctx.provider.fetch_pair_open_orders(self.username, symbol)
        log.debug(json.dumps({"event": "open_orders", "pair": symbol, "count": len(orders)}))
        return orders

    async def get_own_open_orders(self, symbol: str, tracked: Sequence[TrackedOrder]) -> List[OpenOrder]:
        """
        Live orders restricted to what this instance tracks: tracked ids, plus
        price+side for tracked orders without an id. Unfiltered when nothing is
        tracked, so a fresh instance still sees a previous run's orders.
        """
        orders = await self.get_open_orders(symbol)
        if not tracked:
            return orders
        ids: Set[str] = {t.order_id for t in tracked if t.order_id is not None}
        idless = [t for t in tracked if t.order_id is None]
        return [o for o in orders if o.order_id in ids or any(o.matches(t) for t in idless)]

    async def resolve_order_ids(
        self,
        orders: Sequence[TradeOrder],
        symbol: str,
        role: OrderRole,
        exclude_ids: Iterable[str] = (),
    ) -> List[TrackedOrder]:
        """
        Promote submitted orders to tracked orders, taking ids from the live book
        by exact price and side. Orders that cannot be matched stay tracked
        without an id and are matched by price and side later.
        """
        if not orders:
            return []
        live = await self.get_open_orders(symbol)
        claimed: Set[str] = set(exclude_ids)
        tracked: List[TrackedOrder] = []
        unresolved = 0
        for order in orders:
            match = next(
                (o for o in live if o.order_id not in claimed and o.side == order.side and o.price == order.price),
                None,
            )
            if match is not None:
                claimed.add(match.order_id)
            else:
                unresolved += 1
            tracked.append(TrackedOrder(order=order, role=role).with_id(match.order_id if match else None))
        if unresolved:
            log.warning(json.dumps({"event": "order_ids_unresolved", "pair": symbol, "count": unresolved}))
        return tracked

    async def track_placed(
        self,
        placed: Sequence[TradeOrder],
        symbol: str,
        role: OrderRole,
        exclude_ids: Iterable[str] = (),
    ) -> List[TrackedOrder]:
        """
        Track orders that reached the book. When the book cannot be read they
        are tracked without ids and matched by price and side on later polls.
        """
        try:
            return await self.resolve_order_ids(placed, symbol, role, exclude_ids)
        except Exception as exc:
            log.warning(json.dumps({"event": "order_ids_unresolved", "pair": symbol, "count": len(placed), "err": str(exc)}))
            return [TrackedOrder(order=o, role=role) for o in placed]

    async def _cancel_one(self, symbol: str, order_id: str, reason: str) -> bool:
        try:
            await self.ctx.gateway.cancel_order(order_id)
        except Exception as exc:
            log.error(json.dumps({"event": "cancel_failed", "pair": symbol, "order_id": order_id, "err": str(exc)}))
            return False
        self.ctx.metrics.orders_cancelled.labels(pair=symbol, reason=reason).inc()
        return True

    async def cancel_tracked_orders(self, tracked: Sequence[TrackedOrder], reason: str = "shutdown") -> List[TrackedOrder]:
        """
        Cancel tracked orders one by one. Failures are logged and skipped.

        Returns the tracked orders that may still be resting because one of
        their cancels failed. An id-less order with no live match is gone.
        """
        by_symbol: Dict[str, List[TrackedOrder]] = {}
        for t in tracked:
            by_symbol.setdefault(t.market_symbol, []).append(t)

        failed: List[TrackedOrder] = []
        cancelled = 0
        for symbol, orders in by_symbol.items():
            live: List[OpenOrder] = []
            if any(t.order_id is None for t in orders):
                live = await self.get_open_orders(symbol)
            outcome: Dict[str, bool] = {}
            for t in orders:
                if t.order_id is not None:
                    ids = [t.order_id]
                else:
                    ids = [o.order_id for o in live if o.matches(t)]
                for order_id in ids:
                    if order_id not in outcome:
                        outcome[order_id] = await self._cancel_one(symbol, order_id, reason)
                        cancelled += outcome[order_id]
                if not all(outcome[order_id] for order_id in ids):
                    failed.append(t)
        if cancelled:
            self.ctx.events.order_cancelled(f"Cancelled {cancelled} orders", {"count": cancelled, "reason": reason})
        return failed

    async def cancel_open_orders(self, symbol: str, orders: Sequence[OpenOrder], reason: str) -> int:
        cancelled = 0
        for order in orders:
            cancelled += await self._cancel_one(symbol, order.order_id, reason)
        return cancelled

    async def save_tracked_orders(self, orders: Iterable[TrackedOrder]) -> None:
        await self.ctx.store.save(self.key, orders)

    async def load_tracked_orders(self) -> List[TrackedOrder]:
        return await self.ctx.store.load()

    async def cleanup_tracked_orders(self) -> None:
        await self.ctx.store.cleanup()

    async def release_tracked_orders(self, still_resting: Sequence[TrackedOrder]) -> None:
        """Delete the tracked-order record only when every cancel went through."""
        if still_resting:
            log.error(json.dumps({"event": "cancel_incomplete", "strategy": self.key, "count": len(still_resting)}))
            await self.save_tracked_orders(still_resting)
        else:
            await self.cleanup_tracked_orders()

    def write_order_state(self, entries: Iterable[OrderStateEntry]) -> None:
        self.ctx.order_state.write(self.key, entries)

    def report_pair_error(self, symbol: str, exc: Exception) -> None:
        """Per-pair failure: log, count and report, then move on to the next pair."""
        err = str(exc) or type(exc).__name__
        log.error(json.dumps({"event": "pair_error", "strategy": self.key, "pair": symbol, "err": err}))
        self.ctx.metrics.errors_total.labels(pair=symbol, error_type=type(exc).__name__).inc()
        self.ctx.events.bot_error(f"{self.key} error: {err}", {"error": err, "pair": symbol})
