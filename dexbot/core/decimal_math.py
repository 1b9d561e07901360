"""
Fixed-precision price/quantity helpers.

All order math runs on Decimal with ROUND_HALF_UP so that a price or quantity
rendered at a token's precision is exactly what the contract receives.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Context, Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

# Token precisions go up to 18 decimals; leave headroom for intermediate products.
# Module-local context; the thread's default context is left as is.
_CTX = Context(prec=40, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class QuantityTotal:
    quantity: Decimal
    adjusted_total: Decimal


def to_decimal(value: Any) -> Decimal:
    """Convert API/config values to Decimal without passing through binary floats."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"not a decimal value: {value!r}") from exc


def to_fixed(value: Any, precision: int) -> Decimal:
    """Round to `precision` decimals, half-up (BigNumber.toFixed semantics)."""
    exp = Decimal(1).scaleb(-precision)
    return to_decimal(value).quantize(exp, rounding=ROUND_HALF_UP, context=_CTX)


def quantity_and_adjusted_total(
    price: Any,
    total_cost: Any,
    bid_precision: int,
    ask_precision: int,
) -> QuantityTotal:
    """
    Given a price and total cost return a quantity and an adjusted total.

    Multiplying then dividing by price does not round-trip at fixed precision,
    so BUY orders commit `adjusted_total` (ask-token spend) and SELL orders
    commit `quantity` (bid-token size). The price must be positive.
    """
    px = to_decimal(price)
    if px <= 0:
        raise ValueError(f"price must be positive: {price!r}")
    adjusted_total = to_fixed(_CTX.multiply(to_decimal(total_cost), px), ask_precision)
    quantity = to_fixed(_CTX.divide(adjusted_total, px), bid_precision)
    return QuantityTotal(quantity=quantity, adjusted_total=adjusted_total)


def scale_up(value: Any, precision: int) -> Decimal:
    """Express a token amount in its integer-scaled domain (value * 10^precision)."""
    return to_decimal(value).scaleb(precision, context=_CTX)


def scale_down(value: Any, precision: int) -> Decimal:
    return to_decimal(value).scaleb(-precision, context=_CTX)
