"""
Unit tests for money helpers.
"""

from decimal import Decimal

from utils.money_utils import is_valid_amount, quantize_money, to_decimal


class TestToDecimal:
    """Test to_decimal function."""

    def test_float_has_no_binary_artefacts(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_none_is_zero(self):
        assert to_decimal(None) == Decimal("0")

    def test_decimal_passes_through(self):
        value = Decimal("12.345")
        assert to_decimal(value) is value


class TestQuantizeMoney:
    """Test quantize_money function."""

    def test_half_up(self):
        assert quantize_money(Decimal("0.005")) == Decimal("0.01")
        assert quantize_money(Decimal("40.125")) == Decimal("40.13")

    def test_below_half_rounds_down(self):
        assert quantize_money(Decimal("0.004")) == Decimal("0.00")


class TestIsValidAmount:
    """Test is_valid_amount function."""

    def test_zero_and_positive_are_valid(self):
        assert is_valid_amount(Decimal("0"))
        assert is_valid_amount(Decimal("300.00"))

    def test_negative_is_invalid(self):
        assert not is_valid_amount(Decimal("-0.01"))

    def test_non_finite_is_invalid(self):
        assert not is_valid_amount(Decimal("NaN"))
        assert not is_valid_amount(Decimal("Infinity"))
