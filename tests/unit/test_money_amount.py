"""
Unit tests for MoneyAmount.

Verifies:
- Construction from Decimal, int and decimal strings
- Float, bool, NaN, negative and excess-precision rejection
- Exact arithmetic and comparison
- Minor-unit conversion
- Percentage rounding and capping
"""

from decimal import Decimal

import pytest

from loan_ledger.db.types import MAX_MINOR_UNITS, MONEY_DECIMAL_PLACES
from loan_ledger.domain.values import MoneyAmount
from loan_ledger.exceptions import InvalidAmountError


class TestConstruction:
    """Tests for accepted inputs."""

    def test_decimal_string(self):
        assert MoneyAmount.of("100.50").amount == Decimal("100.50")

    def test_integer_is_major_units(self):
        assert MoneyAmount.of(1000) == MoneyAmount.of("1000.00")

    def test_equal_regardless_of_spelling(self):
        assert MoneyAmount.of("5") == MoneyAmount.of("5.0") == MoneyAmount.of("5.00")
        assert hash(MoneyAmount.of("5")) == hash(MoneyAmount.of("5.00"))

    def test_scale_is_fixed(self):
        assert MoneyAmount.of("7").amount.as_tuple().exponent == -MONEY_DECIMAL_PLACES

    def test_of_returns_existing_instance(self):
        amount = MoneyAmount.of("1.00")
        assert MoneyAmount.of(amount) is amount

    def test_whitespace_is_tolerated(self):
        assert MoneyAmount.of(" 12.30 ") == MoneyAmount.of("12.30")

    def test_negative_zero_normalizes(self):
        assert str(MoneyAmount.of("-0.00")) == "0.00"


class TestRejection:
    """Tests for inputs that must raise InvalidAmountError."""

    @pytest.mark.parametrize("value", [1.5, 0.1, True, False])
    def test_float_and_bool_rejected(self, value):
        with pytest.raises(InvalidAmountError):
            MoneyAmount.of(value)

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity", Decimal("NaN")])
    def test_non_finite_rejected(self, value):
        with pytest.raises(InvalidAmountError):
            MoneyAmount.of(value)

    @pytest.mark.parametrize("value", ["-0.01", -1, Decimal("-5")])
    def test_negative_rejected(self, value):
        with pytest.raises(InvalidAmountError, match="negative"):
            MoneyAmount.of(value)

    @pytest.mark.parametrize("value", ["abc", "", "1,000.00", "12.3.4"])
    def test_malformed_string_rejected(self, value):
        with pytest.raises(InvalidAmountError):
            MoneyAmount.of(value)

    def test_excess_precision_rejected_not_rounded(self):
        with pytest.raises(InvalidAmountError, match="fraction digits"):
            MoneyAmount.of("10.005")

    def test_unsupported_type_rejected(self):
        with pytest.raises(InvalidAmountError):
            MoneyAmount.of([1])  # type: ignore[arg-type]

    def test_error_carries_value(self):
        with pytest.raises(InvalidAmountError) as exc_info:
            MoneyAmount.of("oops")
        assert exc_info.value.code == "INVALID_AMOUNT"
        assert exc_info.value.value == "oops"


class TestArithmetic:
    """Tests for exact arithmetic."""

    def test_addition_is_exact(self):
        total = MoneyAmount.of("0.10") + MoneyAmount.of("0.20")
        assert total == MoneyAmount.of("0.30")

    def test_subtraction(self):
        assert MoneyAmount.of("1000.00") - MoneyAmount.of("999.99") == MoneyAmount.of("0.01")

    def test_subtraction_below_zero_raises(self):
        with pytest.raises(InvalidAmountError):
            MoneyAmount.of("1.00") - MoneyAmount.of("1.01")

    def test_clamped_sub_floors_at_zero(self):
        assert MoneyAmount.of("1.00").clamped_sub(MoneyAmount.of("5.00")).is_zero

    def test_total_of_empty_is_zero(self):
        assert MoneyAmount.total([]) == MoneyAmount.zero()

    def test_total(self):
        amounts = [MoneyAmount.of("0.01")] * 100
        assert MoneyAmount.total(amounts) == MoneyAmount.of("1.00")

    def test_ordering(self):
        small, large = MoneyAmount.of("99.99"), MoneyAmount.of("100.00")
        assert small < large
        assert large >= small
        assert sorted([large, small]) == [small, large]

    def test_predicates(self):
        assert MoneyAmount.zero().is_zero
        assert not MoneyAmount.zero().is_positive
        assert MoneyAmount.of("0.01").is_positive


class TestMinorUnits:
    """Tests for integer cent conversion."""

    def test_to_minor_units(self):
        assert MoneyAmount.of("1050.00").minor_units == 105000

    def test_from_minor_units(self):
        assert MoneyAmount.from_minor_units(105000) == MoneyAmount.of("1050.00")

    def test_one_cent(self):
        assert str(MoneyAmount.from_minor_units(1)) == "0.01"

    @pytest.mark.parametrize("value", [1.0, True, "100"])
    def test_from_minor_units_requires_int(self, value):
        with pytest.raises(InvalidAmountError):
            MoneyAmount.from_minor_units(value)

    def test_largest_column_value_is_storable(self):
        assert MoneyAmount.from_minor_units(MAX_MINOR_UNITS).is_storable

    def test_one_cent_over_is_not_storable(self):
        assert not MoneyAmount.from_minor_units(MAX_MINOR_UNITS + 1).is_storable
        assert not MoneyAmount.of("100000000000000000.00").is_storable


class TestPercentOf:
    """Tests for the repayment percentage helper."""

    def test_half(self):
        assert MoneyAmount.of("500").percent_of(MoneyAmount.of("1000")) == 50

    def test_rounds_half_up(self):
        # 1/8 = 12.5 %
        assert MoneyAmount.of("1").percent_of(MoneyAmount.of("8")) == 13

    def test_capped_at_100(self):
        assert MoneyAmount.of("2000").percent_of(MoneyAmount.of("1000")) == 100

    def test_zero_whole(self):
        assert MoneyAmount.of("5").percent_of(MoneyAmount.zero()) == 0


def test_str_and_repr():
    amount = MoneyAmount.of("42.5")
    assert str(amount) == "42.50"
    assert repr(amount) == "MoneyAmount('42.50')"
