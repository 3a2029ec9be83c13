"""
Unit tests for Money.

Verifies:
- Exact two-decimal construction (no silent rounding)
- Float / NaN / Infinity prohibition
- Arithmetic closure and total ordering
- Money.rounded as the one explicit rounding path
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import InvalidAmountError, NegativeAmountError

amounts = st.decimals(
    min_value=Decimal("-9999999999.99"),
    max_value=Decimal("9999999999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


class TestMoneyConstruction:
    """Tests for parsing amounts into Money."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("100.50", Decimal("100.50")),
            ("10.5", Decimal("10.50")),
            (" 7 ", Decimal("7.00")),
            (42, Decimal("42.00")),
            (Decimal("0.01"), Decimal("0.01")),
            (Decimal("1.500"), Decimal("1.50")),
            ("-3.25", Decimal("-3.25")),
        ],
    )
    def test_accepts_exact_two_decimal_values(self, value, expected):
        assert Money.of(value).amount == expected

    def test_amount_always_has_two_places(self):
        assert str(Money.of("5")) == "5.00"
        assert Money.of("5").amount.as_tuple().exponent == -2

    def test_equal_values_compare_and_hash_equal(self):
        assert Money.of("10.5") == Money.of("10.50")
        assert hash(Money.of("10.5")) == hash(Money.of("10.50"))

    @pytest.mark.parametrize("value", ["10.505", Decimal("0.001"), "1.999"])
    def test_rejects_excess_precision(self, value):
        """Construction never rounds."""
        with pytest.raises(InvalidAmountError) as exc_info:
            Money.of(value)
        assert exc_info.value.code == "INVALID_AMOUNT"

    @pytest.mark.parametrize("value", [1.5, 0.1, True])
    def test_rejects_float_and_bool(self, value):
        with pytest.raises(InvalidAmountError):
            Money.of(value)

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity", Decimal("NaN")])
    def test_rejects_non_finite(self, value):
        with pytest.raises(InvalidAmountError):
            Money.of(value)

    def test_rejects_unparsable_string(self):
        with pytest.raises(InvalidAmountError) as exc_info:
            Money.of("ten dollars")
        assert exc_info.value.reason == "not a decimal number"

    def test_rejects_out_of_range(self):
        with pytest.raises(InvalidAmountError):
            Money.of("10000000000000000")
        with pytest.raises(InvalidAmountError):
            Money.of(Decimal("1E+40"))

    def test_largest_storable_amount(self):
        assert Money.of("9999999999999999.99").amount == Decimal("9999999999999999.99")

    def test_negative_zero_is_normalized(self):
        assert str(Money.of("-0.00")) == "0.00"
        assert not Money.of("-0").is_negative

    def test_repr(self):
        assert repr(Money.of("12.3")) == "Money('12.30')"


class TestNonNegative:
    """Tests for Money.non_negative, used for debit/credit sides."""

    def test_zero_and_positive_pass(self):
        assert Money.non_negative("0").is_zero
        assert Money.non_negative("0.01").is_positive

    def test_negative_raises_with_side(self):
        with pytest.raises(NegativeAmountError) as exc_info:
            Money.non_negative("-1.00", side="credit")
        assert exc_info.value.side == "credit"
        assert exc_info.value.code == "NEGATIVE_AMOUNT"

    def test_negative_amount_is_an_invalid_amount(self):
        with pytest.raises(InvalidAmountError):
            Money.non_negative("-0.01")


class TestMoneyArithmetic:
    """Arithmetic is closed over Money and exact."""

    def test_add_subtract(self):
        assert Money.of("0.10") + Money.of("0.20") == Money.of("0.30")
        assert Money.of("1.00") - Money.of("2.50") == Money.of("-1.50")

    def test_negate_and_abs(self):
        assert -Money.of("4.20") == Money.of("-4.20")
        assert abs(Money.of("-4.20")) == Money.of("4.20")

    def test_predicates(self):
        assert Money.zero().is_zero
        assert Money.of("-0.01").is_negative
        assert Money.of("0.01").is_positive

    def test_ordering(self):
        values = [Money.of("3"), Money.of("-1"), Money.of("2.50")]
        assert sorted(values) == [Money.of("-1"), Money.of("2.50"), Money.of("3")]
        assert Money.of("1.00") < Money.of("1.01")

    def test_mixing_with_decimal_is_a_type_error(self):
        with pytest.raises(TypeError):
            Money.of("1.00") + Decimal("1.00")

    @given(a=amounts, b=amounts)
    def test_addition_commutes(self, a, b):
        assert Money.of(a) + Money.of(b) == Money.of(b) + Money.of(a)

    @given(a=amounts, b=amounts)
    def test_subtraction_inverts_addition(self, a, b):
        assert (Money.of(a) + Money.of(b)) - Money.of(b) == Money.of(a)


class TestExplicitRounding:
    """Money.rounded delegates to round_money (ROUND_HALF_UP)."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("1.005", "1.01"),
            ("2.675", "2.68"),
            ("2.674", "2.67"),
            ("-1.005", "-1.01"),
            ("7", "7.00"),
        ],
    )
    def test_half_up(self, value, expected):
        assert Money.rounded(value) == Money.of(expected)

    def test_matches_round_money(self):
        assert Money.rounded(Decimal("0.125")).amount == round_money(Decimal("0.125"))

    def test_rounded_still_rejects_float(self):
        with pytest.raises(InvalidAmountError):
            Money.rounded(0.125)
