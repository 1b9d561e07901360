"""
Domain types shared by strategies, the gateway and persistence.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any, Dict, Optional

from dexbot.core.decimal_math import to_decimal


class OrderSide(IntEnum):
    """Order side as encoded by the dex contract."""
    BUY = 1
    SELL = 2

    @property
    def label(self) -> str:
        return self.name

    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class OrderRole(str, Enum):
    """Why a strategy is tracking an order."""
    GRID = "grid"
    SPIKE = "spike"
    TAKE_PROFIT = "takeProfit"


@dataclass(frozen=True)
class Token:
    code: str
    precision: int
    contract: str

    @property
    def multiplier(self) -> int:
        return 10 ** self.precision

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Token":
        return cls(
            code=str(data["code"]),
            precision=int(data["precision"]),
            contract=str(data["contract"]),
        )


@dataclass(frozen=True)
class Market:
    market_id: int
    symbol: str
    bid_token: Token
    ask_token: Token
    maker_fee: Decimal = Decimal("0")
    taker_fee: Decimal = Decimal("0")
    status_code: int = 1

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Market":
        return cls(
            market_id=int(data["market_id"]),
            symbol=str(data["symbol"]),
            bid_token=Token.from_api(data["bid_token"]),
            ask_token=Token.from_api(data["ask_token"]),
            maker_fee=to_decimal(data.get("maker_fee", 0)),
            taker_fee=to_decimal(data.get("taker_fee", 0)),
            status_code=int(data.get("status_code", 1)),
        )


@dataclass(frozen=True)
class TradeOrder:
    side: OrderSide
    price: Decimal
    quantity: Decimal
    market_symbol: str

    def key(self) -> tuple[str, OrderSide, Decimal]:
        return (self.market_symbol, self.side, self.price.normalize())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "market": self.market_symbol,
            "side": self.side.label,
            "quantity": str(self.quantity),
            "price": str(self.price),
        }


@dataclass
class TrackedOrder:
    """An order this process believes is resting on the book."""
    order: TradeOrder
    role: OrderRole
    order_id: Optional[str] = None
    placed_at: Optional[str] = None

    @property
    def side(self) -> OrderSide:
        return self.order.side

    @property
    def price(self) -> Decimal:
        return self.order.price

    @property
    def quantity(self) -> Decimal:
        return self.order.quantity

    @property
    def market_symbol(self) -> str:
        return self.order.market_symbol

    def with_id(self, order_id: Optional[str]) -> "TrackedOrder":
        return replace(
            self,
            order_id=order_id,
            placed_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_side": int(self.order.side),
            "price": str(self.order.price),
            "quantity": str(self.order.quantity),
            "market_symbol": self.order.market_symbol,
            "role": self.role.value,
            "order_id": self.order_id,
            "placed_at": self.placed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackedOrder":
        order = TradeOrder(
            side=OrderSide(int(data["order_side"])),
            price=to_decimal(data["price"]),
            quantity=to_decimal(data["quantity"]),
            market_symbol=str(data["market_symbol"]),
        )
        order_id = data.get("order_id")
        return cls(
            order=order,
            role=OrderRole(data.get("role", OrderRole.SPIKE.value)),
            order_id=str(order_id) if order_id is not None else None,
            placed_at=data.get("placed_at"),
        )


@dataclass(frozen=True)
class OpenOrder:
    """A resting order as reported by the exchange API."""
    order_id: str
    market_symbol: str
    side: OrderSide
    price: Decimal
    quantity: Decimal
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_api(cls, data: Dict[str, Any], market_symbol: Optional[str] = None) -> "OpenOrder":
        return cls(
            order_id=str(data["order_id"]),
            market_symbol=str(data.get("symbol") or market_symbol or ""),
            side=OrderSide(int(data["order_side"])),
            price=to_decimal(data["price"]),
            quantity=to_decimal(data.get("quantity_curr", data.get("quantity", 0))),
            raw=data,
        )

    def matches(self, tracked: TrackedOrder) -> bool:
        """Id match when the tracked order has one, else exact price + side."""
        if tracked.order_id is not None:
            return self.order_id == tracked.order_id
        return self.side == tracked.side and self.price == tracked.price

    def to_tracked(self, role: OrderRole) -> TrackedOrder:
        return TrackedOrder(
            order=TradeOrder(
                side=self.side,
                price=self.price,
                quantity=self.quantity,
                market_symbol=self.market_symbol,
            ),
            role=role,
            order_id=self.order_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "side": self.side.label,
            "price": str(self.price),
            "quantity": str(self.quantity),
        }


@dataclass(frozen=True)
class MarketDetails:
    market: Market
    price: Decimal
    highest_bid: Decimal
    lowest_ask: Decimal
