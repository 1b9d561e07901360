"""
Order submission gateway for the dex contract.

Limit orders are staged as transfer + placeorder action pairs and flushed as one
transaction by submit_orders(), which appends the contract's process and
withdrawall actions.
"""

from __future__ import annotations

import json
import logging
import random
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from dexbot.core.decimal_math import scale_up, to_fixed
from dexbot.core.models import Market, OrderSide
from dexbot.execution.signer import RelayTransactor
from dexbot.market_data.dex_api import MarketDataClient, MarketRegistry

log = logging.getLogger("dexbot")

DEX_CONTRACT = "dex"
SWAP_CONTRACT = "proton.swaps"
ORDER_TYPE_LIMIT = 1
FILL_TYPE_GTC = 0
OPEN_ORDERS_PAGE = 150


class DexGateway:
    def __init__(
        self,
        transactor: RelayTransactor,
        registry: MarketRegistry,
        provider: MarketDataClient,
        username: str,
        cancel_batch_size: int = 50,
    ) -> None:
        self.transactor = transactor
        self.registry = registry
        self.provider = provider
        self.username = username
        self.cancel_batch_size = max(1, cancel_batch_size)
        self._staged: List[Dict[str, Any]] = []

    @property
    def staged_count(self) -> int:
        return len(self._staged)

    def _market(self, symbol: str) -> Market:
        market = self.registry.by_symbol(symbol)
        if market is None:
            raise ValueError(f"No market found by symbol {symbol}")
        return market

    def prepare_limit_order(self, symbol: str, side: OrderSide, quantity: Any, price: Any) -> None:
        """Stage a GTC limit order. SELL quantity is bid-token size, BUY quantity is ask-token spend."""
        market = self._market(symbol)
        bid, ask = market.bid_token, market.ask_token
        token = bid if side == OrderSide.SELL else ask
        qty = to_fixed(quantity, token.precision)
        px = to_fixed(price, ask.precision)
        log.info(json.dumps({
            "event": "order_staged",
            "pair": symbol,
            "side": side.label,
            "quantity": f"{qty} {token.code}",
            "price": str(px),
        }))
        self._staged.extend([
            {
                "account": token.contract,
                "name": "transfer",
                "data": {
                    "from": self.username,
                    "to": DEX_CONTRACT,
                    "quantity": f"{qty} {token.code}",
                    "memo": "",
                },
            },
            {
                "account": DEX_CONTRACT,
                "name": "placeorder",
                "data": {
                    "market_id": market.market_id,
                    "account": self.username,
                    "order_type": ORDER_TYPE_LIMIT,
                    "order_side": int(side),
                    "quantity": str(int(scale_up(qty, token.precision))),
                    "price": str(int(scale_up(px, ask.precision))),
                    "bid_symbol": {"sym": f"{bid.precision},{bid.code}", "contract": bid.contract},
                    "ask_symbol": {"sym": f"{ask.precision},{ask.code}", "contract": ask.contract},
                    "trigger_price": 0,
                    "fill_type": FILL_TYPE_GTC,
                    "referrer": "",
                },
            },
        ])

    def _process_action(self, q_size: int) -> Dict[str, Any]:
        return {"account": DEX_CONTRACT, "name": "process", "data": {"q_size": q_size, "show_error_msg": 0}}

    def _withdraw_action(self) -> Dict[str, Any]:
        return {"account": DEX_CONTRACT, "name": "withdrawall", "data": {"account": self.username}}

    def _cancel_action(self, order_id: str) -> Dict[str, Any]:
        return {"account": DEX_CONTRACT, "name": "cancelorder", "data": {"account": self.username, "order_id": str(order_id)}}

    async def submit_process_action(self) -> Dict[str, Any]:
        return await self.transactor.transact([self._process_action(100)])

    async def submit_orders(self) -> Optional[Dict[str, Any]]:
        """Flush staged orders in one transaction. Staged actions are discarded even on failure."""
        if not self._staged:
            return None
        actions = self._staged + [self._process_action(60), self._withdraw_action()]
        self._staged = []
        return await self.transactor.transact(actions)

    def discard_staged(self) -> int:
        dropped = len(self._staged)
        self._staged = []
        return dropped

    async def cancel_order(self, order_id: str) -> Dict[str, Any]:
        log.info(json.dumps({"event": "order_cancel", "order_id": str(order_id)}))
        return await self.transactor.transact([self._cancel_action(order_id)])

    async def cancel_orders(self, order_ids: Sequence[str]) -> int:
        ids = [str(i) for i in order_ids]
        for start in range(0, len(ids), self.cancel_batch_size):
            chunk = ids[start:start + self.cancel_batch_size]
            await self.transactor.transact([self._cancel_action(i) for i in chunk])
        return len(ids)

    async def cancel_all_orders(self) -> int:
        """Cancel every open order of the account, across all markets."""
        order_ids: List[str] = []
        page = 0
        while True:
            rows = await self.provider.fetch_open_orders(self.username, OPEN_ORDERS_PAGE, OPEN_ORDERS_PAGE * page)
            if not rows:
                break
            order_ids.extend(o.order_id for o in rows)
            if len(rows) < OPEN_ORDERS_PAGE:
                break
            page += 1
        if not order_ids:
            log.info(json.dumps({"event": "cancel_all", "count": 0}))
            return 0
        log.info(json.dumps({"event": "cancel_all", "count": len(order_ids)}))
        return await self.cancel_orders(order_ids)

    async def withdraw_all(self) -> Dict[str, Any]:
        return await self.transactor.transact([self._withdraw_action()])

    async def submit_swap(self, amount: Decimal, token_code: str, token_contract: str, pair_symbol: str, precision: int = 4) -> Dict[str, Any]:
        """Send tokens to the swap contract; the memo selects the pool."""
        nonce = random.randint(0, 9_999_999)
        quantity = f"{to_fixed(amount, precision)} {token_code}"
        log.info(json.dumps({"event": "swap_submit", "pair": pair_symbol, "quantity": quantity}))
        action = {
            "account": token_contract,
            "name": "transfer",
            "data": {
                "from": self.username,
                "to": SWAP_CONTRACT,
                "quantity": quantity,
                "memo": f"{pair_symbol},{nonce}",
            },
        }
        return await self.transactor.transact([action])
