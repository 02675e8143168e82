"""Tests for the decimal ↔ minor unit amount codec."""

from decimal import Decimal

import pytest

from checkout_bridge.engine.amounts import INT64_MAX, from_minor_units, to_minor_units
from checkout_bridge.engine.errors import AmountOverflowError


class TestToMinorUnits:
    def test_two_decimal_places(self):
        assert to_minor_units(Decimal("19.99")) == 1999

    def test_whole_amount(self):
        assert to_minor_units(Decimal("120")) == 12000

    def test_rounds_half_away_from_zero(self):
        assert to_minor_units(Decimal("0.005")) == 1
        assert to_minor_units(Decimal("-0.005")) == -1
        assert to_minor_units(Decimal("10.004")) == 1000

    def test_float_input_has_no_binary_noise(self):
        """0.29 * 100 is 28.999... as a float; it must still be 29."""
        assert to_minor_units(0.29) == 29
        assert to_minor_units(1.15) == 115

    def test_overflow_raises_instead_of_truncating(self):
        with pytest.raises(AmountOverflowError):
            to_minor_units(Decimal("100000000000000000"))

    def test_largest_representable_amount(self):
        largest = Decimal(INT64_MAX) / 100
        assert to_minor_units(largest) == INT64_MAX

    def test_non_finite_amount(self):
        with pytest.raises(AmountOverflowError):
            to_minor_units(Decimal("NaN"))

    def test_overflow_is_an_arithmetic_error(self):
        with pytest.raises(ArithmeticError):
            to_minor_units(Decimal("1e30"))

    @pytest.mark.parametrize("amount", ["1e27", "-1e27", "1e40", "123456789012345678901234567.89"])
    def test_amounts_beyond_decimal_precision_overflow(self, amount):
        with pytest.raises(AmountOverflowError):
            to_minor_units(Decimal(amount))

    def test_just_past_the_largest_amount(self):
        with pytest.raises(AmountOverflowError):
            to_minor_units(Decimal(INT64_MAX + 1) / 100)


class TestFromMinorUnits:
    def test_two_places(self):
        assert from_minor_units(1999) == Decimal("19.99")
        assert str(from_minor_units(1000)) == "10.00"

    def test_round_trip(self):
        for amount in ["0.00", "0.01", "19.99", "100.10", "-42.50", "999999.99"]:
            assert from_minor_units(to_minor_units(Decimal(amount))) == Decimal(amount)
