"""
Unit tests for the pure journal rules shared by drafting and posting.

Verifies:
- Line shape (one positive side, no negatives, no zero lines)
- Effective currency chain and mismatch detection
- Currency policy
- Per-currency balancing fold and imbalance reporting
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from ledger_kernel.db.types import validate_currency
from ledger_kernel.domain.journal_rules import (
    CurrencyTotals,
    PostingLine,
    check_currency_policy,
    check_line_currency,
    currency_totals,
    effective_currency,
    first_imbalance,
    validate_line_amounts,
)
from ledger_kernel.domain.policies import CurrencyPolicy, LedgerPolicy, VoidPolicy
from ledger_kernel.exceptions import (
    BothSidesSetError,
    CurrencyMismatchError,
    InvalidAmountError,
    InvalidCurrencyError,
    NegativeAmountError,
    UnbalancedEntryError,
    ZeroAmountLineError,
)


class TestLineShape:
    def test_debit_line(self):
        debit, credit = validate_line_amounts("100.00", 0)
        assert debit.amount == Decimal("100.00")
        assert credit.is_zero

    def test_credit_line(self):
        debit, credit = validate_line_amounts(Decimal("0"), Decimal("0.01"))
        assert debit.is_zero
        assert credit.amount == Decimal("0.01")

    def test_negative_debit(self):
        with pytest.raises(NegativeAmountError) as exc_info:
            validate_line_amounts("-5.00", 0)
        assert exc_info.value.side == "debit"

    def test_negative_credit(self):
        with pytest.raises(NegativeAmountError) as exc_info:
            validate_line_amounts(0, "-5.00")
        assert exc_info.value.side == "credit"

    def test_both_sides(self):
        with pytest.raises(BothSidesSetError):
            validate_line_amounts("1.00", "1.00")

    def test_zero_line(self):
        with pytest.raises(ZeroAmountLineError):
            validate_line_amounts(0, "0.00")

    def test_excess_precision(self):
        with pytest.raises(InvalidAmountError):
            validate_line_amounts("1.001", 0)


class TestCurrencyChain:
    def test_effective_currency_fallbacks(self):
        assert effective_currency("EUR", "EUR", "USD") == "EUR"
        assert effective_currency(None, "EUR", "USD") == "EUR"
        assert effective_currency(None, None, "USD") == "USD"

    def test_line_currency_must_match_account(self):
        with pytest.raises(CurrencyMismatchError) as exc_info:
            check_line_currency("EUR", "GBP", "USD")
        assert exc_info.value.expected == "GBP"
        assert exc_info.value.received == "EUR"

    def test_line_currency_must_match_inherited_base(self):
        with pytest.raises(CurrencyMismatchError):
            check_line_currency("EUR", None, "USD")

    def test_implicit_line_currency_resolves(self):
        assert check_line_currency(None, None, "JPY") == "JPY"
        assert check_line_currency("GBP", "GBP", "USD") == "GBP"

    def test_validate_currency_normalizes(self):
        assert validate_currency(" eur ") == "EUR"

    @pytest.mark.parametrize("code", ["", "US", "ZZZ", "DOLLAR"])
    def test_validate_currency_rejects(self, code):
        with pytest.raises(InvalidCurrencyError):
            validate_currency(code)


class TestCurrencyPolicy:
    def test_per_currency_allows_mixed(self):
        check_currency_policy(["USD", "EUR"], CurrencyPolicy.PER_CURRENCY)

    def test_homogeneous_rejects_mixed(self):
        with pytest.raises(CurrencyMismatchError) as exc_info:
            check_currency_policy(["USD", "USD", "EUR"], CurrencyPolicy.HOMOGENEOUS)
        assert exc_info.value.expected == "USD"
        assert exc_info.value.received == "EUR"

    def test_homogeneous_accepts_single(self):
        check_currency_policy(["EUR", "EUR"], CurrencyPolicy.HOMOGENEOUS)

    def test_included_statuses_follow_void_policy(self):
        assert LedgerPolicy().included_statuses == {"posted"}
        assert LedgerPolicy(void_policy=VoidPolicy.REVERSING_ENTRY).included_statuses == {
            "posted",
            "voided",
        }


def _line(currency, debit="0", credit="0"):
    return PostingLine(currency, Decimal(debit), Decimal(credit))


class TestBalancingFold:
    def test_totals_per_currency_sorted(self):
        totals = currency_totals([
            _line("USD", debit="10.00"),
            _line("EUR", credit="5.00"),
            _line("USD", credit="10.00"),
            _line("EUR", debit="5.00"),
        ])
        assert [t.currency for t in totals] == ["EUR", "USD"]
        assert all(t.is_balanced for t in totals)
        assert first_imbalance(totals) is None

    def test_first_imbalance_in_code_order(self):
        totals = currency_totals([
            _line("USD", debit="10.00"),
            _line("EUR", debit="3.00"),
            _line("EUR", credit="1.00"),
        ])
        imbalance = first_imbalance(totals)
        assert imbalance.currency == "EUR"
        assert imbalance.difference == Decimal("2.00")

    def test_no_tolerance(self):
        totals = currency_totals([_line("USD", debit="100.00"), _line("USD", credit="99.99")])
        assert first_imbalance(totals).difference == Decimal("0.01")

    def test_unbalanced_error_reports_difference(self):
        error = UnbalancedEntryError("USD", "100.00", "90.00")
        assert error.code == "UNBALANCED"
        assert error.difference == "10.00"

    @given(
        cents=st.lists(st.integers(min_value=1, max_value=10_000_000), min_size=1, max_size=30),
        seed=st.randoms(use_true_random=False),
    )
    def test_fold_is_order_independent(self, cents, seed):
        lines = []
        for n in cents:
            amount = str(Decimal(n) / 100)
            lines.append(_line("USD", debit=amount))
            lines.append(_line("EUR", credit=amount))
        shuffled = list(lines)
        seed.shuffle(shuffled)
        assert currency_totals(lines) == currency_totals(shuffled)

    def test_totals_value_object(self):
        total = CurrencyTotals("USD", Decimal("5.00"), Decimal("7.50"))
        assert total.difference == Decimal("-2.50")
        assert not total.is_balanced
