"""
Pytest configuration and fixtures.

FakeExchange plays both the market-data provider and the order gateway: staged
orders rest on an in-memory book with generated ids, and tests simulate fills
by removing resting orders.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import pytest

from dexbot.config.config import Settings
from dexbot.core.context import TradingContext
from dexbot.core.models import Market, OpenOrder, OrderSide, Token, TradeOrder
from dexbot.market_data.dex_api import MarketRegistry
from dexbot.monitoring.metrics import BotMetrics
from dexbot.state.state_atomic import AtomicTrackedOrderStore
from dexbot.state.store import OrderStateWriter

SYMBOL = "XPR_XMD"
USERNAME = "tester"


def make_market(symbol: str = SYMBOL, market_id: int = 1, bid_precision: int = 4, ask_precision: int = 6) -> Market:
    return Market(
        market_id=market_id,
        symbol=symbol,
        bid_token=Token(code="XPR", precision=bid_precision, contract="eosio.token"),
        ask_token=Token(code="XMD", precision=ask_precision, contract="xmd.token"),
    )


def make_settings(**overrides) -> Settings:
    values = dict(
        username=USERNAME,
        permission="active",
        api_root="https://dex.test/dex",
        light_api_root="https://light.test/api",
        chain="proton",
        rpc_endpoints=["https://rpc.test"],
        signer_url="http://signer.test",
        signer_token=None,
        strategy="gridBot",
        config_path="configs/bot.yaml",
        trade_interval_sec=0.01,
        initial_settle_sec=0.0,
        cancel_open_orders_on_exit=False,
        grid_placement=True,
        order_batch_delay_sec=0.0,
        rebalance_pause_sec=0.0,
        http_timeout=5.0,
        state_dir=None,
        instance_id=None,
        dashboard_url=None,
        dashboard_api_key=None,
        dashboard_enabled=False,
        metrics_port=0,
        log_file=None,
        log_level="INFO",
    )
    values.update(overrides)
    return Settings(**values)


class FakeExchange:
    """In-memory exchange implementing the provider and gateway calls strategies use."""

    def __init__(self, markets: List[Market]) -> None:
        self.markets = {m.symbol: m for m in markets}
        self.prices: Dict[str, Decimal] = {}
        self.books: Dict[str, Dict[str, List[Decimal]]] = {}
        self.open: Dict[str, List[OpenOrder]] = {m.symbol: [] for m in markets}
        self.balances: Dict[Tuple[str, str], Decimal] = {}
        self.pools: Dict[str, Dict[str, Any]] = {}
        self.staged: List[TradeOrder] = []
        self.batches: List[List[TradeOrder]] = []
        self.process_calls = 0
        self.cancelled: List[str] = []
        self.withdrawals = 0
        self.swaps: List[Dict[str, Any]] = []
        # submit_orders raises once this many batches have landed
        self.fail_submit_after: Optional[int] = None
        self.fail_cancel = False
        self._next_id = 1000

    # -- test helpers ----------------------------------------------------------

    def set_price(self, symbol: str, price: str) -> None:
        self.prices[symbol] = Decimal(price)

    def set_balance(self, contract: str, code: str, amount: str) -> None:
        self.balances[(contract, code)] = Decimal(amount)

    def resting(self, symbol: str = SYMBOL) -> List[OpenOrder]:
        return list(self.open[symbol])

    def find(self, symbol: str, side: OrderSide, price: str) -> Optional[OpenOrder]:
        px = Decimal(price)
        return next((o for o in self.open[symbol] if o.side == side and o.price == px), None)

    def fill(self, symbol: str, side: OrderSide, price: str) -> OpenOrder:
        order = self.find(symbol, side, price)
        assert order is not None, f"no resting {side.label} at {price}"
        self.open[symbol].remove(order)
        return order

    def add_foreign(self, symbol: str, side: OrderSide, price: str, quantity: str = "1") -> OpenOrder:
        order = OpenOrder(str(self._next_id), symbol, side, Decimal(price), Decimal(quantity))
        self._next_id += 1
        self.open[symbol].append(order)
        return order

    @property
    def submitted(self) -> List[TradeOrder]:
        return [o for batch in self.batches for o in batch]

    # -- provider --------------------------------------------------------------

    async def fetch_latest_price(self, symbol: str) -> Decimal:
        return self.prices[symbol]

    async def fetch_order_book(self, symbol: str, limit: int = 100, step: int = 100000) -> Dict[str, List[Decimal]]:
        return self.books.get(symbol, {"bids": [], "asks": []})

    async def fetch_pair_open_orders(self, account: str, symbol: str) -> List[OpenOrder]:
        return list(self.open.get(symbol, []))

    async def fetch_open_orders(self, account: str, limit: int = 250, offset: int = 0) -> List[OpenOrder]:
        rows = [o for orders in self.open.values() for o in orders]
        return rows[offset:offset + limit]

    async def fetch_token_balance(self, account: str, contract: str, code: str) -> Decimal:
        return self.balances.get((contract, code), Decimal(0))

    async def fetch_swap_pools(self) -> Dict[str, Dict[str, Any]]:
        return self.pools

    # -- gateway ---------------------------------------------------------------

    def prepare_limit_order(self, symbol: str, side: OrderSide, quantity: Any, price: Any) -> None:
        if symbol not in self.markets:
            raise ValueError(f"No market found by symbol {symbol}")
        self.staged.append(TradeOrder(side, Decimal(price), Decimal(quantity), symbol))

    def discard_staged(self) -> int:
        dropped = len(self.staged)
        self.staged = []
        return dropped

    async def submit_process_action(self) -> Dict[str, Any]:
        self.process_calls += 1
        return {}

    async def submit_orders(self) -> Optional[Dict[str, Any]]:
        if not self.staged:
            return None
        batch, self.staged = self.staged, []
        if self.fail_submit_after is not None and len(self.batches) >= self.fail_submit_after:
            raise RuntimeError("transaction failed")
        for order in batch:
            self.add_foreign(order.market_symbol, order.side, str(order.price), str(order.quantity))
        self.batches.append(batch)
        return {"transaction_id": f"tx{len(self.batches)}"}

    async def cancel_order(self, order_id: str) -> Dict[str, Any]:
        if self.fail_cancel:
            raise RuntimeError("rpc unavailable")
        for orders in self.open.values():
            for o in list(orders):
                if o.order_id == order_id:
                    orders.remove(o)
        self.cancelled.append(order_id)
        return {}

    async def cancel_all_orders(self) -> int:
        ids = [o.order_id for orders in self.open.values() for o in orders]
        for order_id in ids:
            await self.cancel_order(order_id)
        return len(ids)

    async def withdraw_all(self) -> Dict[str, Any]:
        self.withdrawals += 1
        return {}

    async def submit_swap(self, amount, token_code, token_contract, pair_symbol, precision=4) -> Dict[str, Any]:
        self.swaps.append({
            "amount": amount,
            "token_code": token_code,
            "token_contract": token_contract,
            "pair_symbol": pair_symbol,
            "precision": precision,
        })
        return {}


@dataclass
class MockEvents:
    """Mock event emitter recording (type, message, data)."""
    calls: List[Tuple[str, str, Optional[Dict[str, Any]]]] = field(default_factory=list)
    started: bool = False
    shut_down: bool = False
    dropped_overflow: int = 0
    dropped_failed: int = 0

    def of(self, event_type: str) -> List[Tuple[str, str, Optional[Dict[str, Any]]]]:
        return [c for c in self.calls if c[0] == event_type]

    def _record(self, event_type: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.calls.append((event_type, message, data))

    def start(self) -> None:
        self.started = True

    async def shutdown(self) -> None:
        self.shut_down = True

    def bot_started(self, message: str = "Bot started") -> None:
        self._record("bot_started", message)

    def bot_stopped(self, message: str = "Bot stopped") -> None:
        self._record("bot_stopped", message)

    def bot_error(self, message, data=None) -> None:
        self._record("bot_error", message, data)

    def config_loaded(self, message, data=None) -> None:
        self._record("config_loaded", message, data)

    def order_filled(self, message, data=None) -> None:
        self._record("order_filled", message, data)

    def order_cancelled(self, message, data=None) -> None:
        self._record("order_cancelled", message, data)

    def grid_placed(self, message, data=None) -> None:
        self._record("grid_placed", message, data)

    def grid_adjusted(self, message, data=None) -> None:
        self._record("grid_adjusted", message, data)

    def balance_low(self, message, data=None) -> None:
        self._record("balance_low", message, data)

    def swap_executed(self, message, data=None) -> None:
        self._record("swap_executed", message, data)


def make_context(exchange: FakeExchange, settings: Settings, events: Optional[MockEvents] = None) -> TradingContext:
    return TradingContext(
        settings=settings,
        registry=MarketRegistry(list(exchange.markets.values())),
        provider=exchange,
        gateway=exchange,
        events=events or MockEvents(),
        store=AtomicTrackedOrderStore(settings.state_dir, settings.instance_id),
        order_state=OrderStateWriter(settings.state_dir, settings.instance_id),
        metrics=BotMetrics(),
    )


@pytest.fixture
def market() -> Market:
    return make_market()


@pytest.fixture
def exchange(market) -> FakeExchange:
    return FakeExchange([market])


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(state_dir=str(tmp_path), instance_id="test-bot")


@pytest.fixture
def ctx(exchange, settings) -> TradingContext:
    return make_context(exchange, settings)


def with_settings(ctx: TradingContext, **overrides) -> TradingContext:
    return replace(ctx, settings=replace(ctx.settings, **overrides))
