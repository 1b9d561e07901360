"""
Core package.

This package contains the domain types, fixed-precision math and the trading
context handed to strategies.
"""

from dexbot.core.context import TradingContext
from dexbot.core.decimal_math import quantity_and_adjusted_total, to_decimal, to_fixed
from dexbot.core.models import (
    Market,
    MarketDetails,
    OpenOrder,
    OrderRole,
    OrderSide,
    Token,
    TrackedOrder,
    TradeOrder,
)

__all__ = [
    "TradingContext",
    "quantity_and_adjusted_total",
    "to_decimal",
    "to_fixed",
    "Market",
    "MarketDetails",
    "OpenOrder",
    "OrderRole",
    "OrderSide",
    "Token",
    "TrackedOrder",
    "TradeOrder",
]
