"""
Tests for fixed-precision helpers.

Tests cover:
- Half-up rounding at token precision
- Quantity / adjusted-total sizing
- Float and string inputs
- The quantity x price round-trip bound at ask precision
- Isolation from the caller's decimal context
"""

from decimal import Context, Decimal, localcontext

import pytest

from dexbot.core.decimal_math import (
    quantity_and_adjusted_total,
    scale_down,
    scale_up,
    to_decimal,
    to_fixed,
)


class TestToFixed:
    """Rounding tests."""

    def test_rounds_half_up(self):
        """Test that a trailing 5 rounds away from zero."""
        assert to_fixed("0.0051415", 6) == Decimal("0.005142")
        assert to_fixed("0.0051414", 6) == Decimal("0.005141")

    def test_pads_to_precision(self):
        """Test that the result always carries `precision` decimals."""
        assert str(to_fixed(5250, 4)) == "5250.0000"

    def test_float_input_uses_repr(self):
        """Test that floats are converted through their shortest repr."""
        assert to_decimal(0.1) == Decimal("0.1")

    def test_rejects_garbage(self):
        """Test that non-numeric input raises ValueError."""
        with pytest.raises(ValueError):
            to_decimal("abc")


class TestQuantityAndAdjustedTotal:
    """Order sizing tests."""

    def test_scenario_sell_level(self):
        """Test sizing a SELL level at 0.005159 for 5250 XPR."""
        sized = quantity_and_adjusted_total("0.005159", "5250", 4, 6)
        assert sized.adjusted_total == Decimal("27.084750")
        assert sized.quantity == Decimal("5250.0000")

    def test_adjusted_total_is_rounded_to_ask_precision(self):
        """Test that the spend is rounded before the quantity is derived from it."""
        sized = quantity_and_adjusted_total("0.003333", "1000", 4, 2)
        assert sized.adjusted_total == Decimal("3.33")
        assert sized.quantity == Decimal("999.0999")

    def test_scale_round_trip(self):
        """Test integer-domain scaling used by the contract actions."""
        assert int(scale_up(Decimal("0.005159"), 6)) == 5159
        assert scale_down(5159, 6) == Decimal("0.005159")

    def test_non_positive_price_rejected(self):
        """Test that a zero or negative price raises ValueError."""
        with pytest.raises(ValueError, match="positive"):
            quantity_and_adjusted_total("0", "5250", 4, 6)
        with pytest.raises(ValueError, match="positive"):
            quantity_and_adjusted_total("-0.001", "5250", 4, 6)

    # Rounding the quantity moves quantity*price by at most price/2 bid units,
    # which stays under 1.5 ask units while price < 3 * 10^(bid - ask).
    @pytest.mark.parametrize("price,bid_precision,ask_precision", [
        ("0.005159", 4, 6),
        ("0.003333", 4, 2),
        ("1.2345", 8, 4),
        ("250.5", 6, 2),
        ("2.5", 0, 0),
        ("0.75", 8, 8),
        ("123.456789", 12, 8),
        ("0.00000123", 18, 18),
        ("0.000001", 18, 6),
    ])
    @pytest.mark.parametrize("total", ["1", "5250", "123456.789"])
    def test_product_within_one_ask_unit(self, price, bid_precision, ask_precision, total):
        """Test round(quantity * price, ask precision) is within one ask unit of the adjusted total."""
        sized = quantity_and_adjusted_total(price, total, bid_precision, ask_precision)
        product = to_fixed(Context(prec=80).multiply(sized.quantity, Decimal(price)), ask_precision)
        assert abs(product - sized.adjusted_total) <= Decimal(1).scaleb(-ask_precision)


class TestContextIsolation:
    """Decimal context tests."""

    def test_caller_context_untouched(self):
        """Test that sizing is exact under a low-precision caller context and leaves it as is."""
        with localcontext() as ctx:
            ctx.prec = 5
            sized = quantity_and_adjusted_total("0.005159", "5250", 4, 6)
            assert ctx.prec == 5
        assert sized.adjusted_total == Decimal("27.084750")
        assert sized.quantity == Decimal("5250.0000")
