"""
Journal rules -- the pure validation and folding logic behind posting.

Responsibility:
    Line-shape validation, the effective-currency chain, the currency policy
    check, and the per-currency balancing fold.  Shared by the draft
    mutation path (early feedback) and the posting path (authoritative
    re-check under lock), so both apply exactly the same rules.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Works on Decimals,
    Money and plain strings, never on ORM objects.

Invariants enforced:
    - Exactly one of debit/credit is strictly positive; neither is negative.
    - Effective currency = line currency ?? account currency ?? organization
      base currency.  An explicit line currency must equal the account's
      effective currency.
    - An entry balances when, for every effective currency, the sum of
      debits equals the sum of credits exactly (no tolerance).
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from ledger_kernel.domain.policies import CurrencyPolicy
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    BothSidesSetError,
    CurrencyMismatchError,
    ZeroAmountLineError,
)


def validate_line_amounts(
    debit: Money | Decimal | str | int, credit: Money | Decimal | str | int
) -> tuple[Money, Money]:
    """
    Parse and shape-check one line's amounts.

    Raises:
        InvalidAmountError: float, non-finite or over-precise amount.
        NegativeAmountError: either side below zero.
        BothSidesSetError: both sides positive.
        ZeroAmountLineError: both sides zero.
    """
    debit_money = Money.non_negative(debit, side="debit")
    credit_money = Money.non_negative(credit, side="credit")
    if debit_money.is_positive and credit_money.is_positive:
        raise BothSidesSetError(str(debit_money), str(credit_money))
    if debit_money.is_zero and credit_money.is_zero:
        raise ZeroAmountLineError()
    return debit_money, credit_money


def effective_currency(
    line_currency: str | None,
    account_currency: str | None,
    base_currency: str,
) -> str:
    return line_currency or account_currency or base_currency


def check_line_currency(
    line_currency: str | None,
    account_currency: str | None,
    base_currency: str,
) -> str:
    """
    Resolve a line's effective currency, rejecting an explicit currency that
    disagrees with the account.

    Returns the effective currency.
    """
    held = account_currency or base_currency
    if line_currency is not None and line_currency != held:
        raise CurrencyMismatchError(
            expected=held,
            received=line_currency,
            reason="line currency differs from account currency",
        )
    return held


def check_currency_policy(
    currencies: Iterable[str],
    policy: CurrencyPolicy,
) -> None:
    """Under HOMOGENEOUS, every line must share the first line's currency."""
    if policy != CurrencyPolicy.HOMOGENEOUS:
        return
    first: str | None = None
    for currency in currencies:
        if first is None:
            first = currency
        elif currency != first:
            raise CurrencyMismatchError(
                expected=first,
                received=currency,
                reason="entry must use a single currency",
            )


@dataclass(frozen=True)
class PostingLine:
    """One line reduced to what the balancing fold needs."""

    currency: str
    debit: Decimal
    credit: Decimal


@dataclass(frozen=True)
class CurrencyTotals:
    """Debit and credit totals for one currency."""

    currency: str
    debits: Decimal
    credits: Decimal

    @property
    def difference(self) -> Decimal:
        return self.debits - self.credits

    @property
    def is_balanced(self) -> bool:
        return self.debits == self.credits


def currency_totals(lines: Iterable[PostingLine]) -> tuple[CurrencyTotals, ...]:
    """Fold lines into per-currency totals, ordered by currency code."""
    debits: dict[str, Decimal] = {}
    credits: dict[str, Decimal] = {}
    for line in lines:
        debits[line.currency] = debits.get(line.currency, Decimal("0")) + line.debit
        credits[line.currency] = credits.get(line.currency, Decimal("0")) + line.credit
    return tuple(
        CurrencyTotals(currency, debits[currency], credits[currency])
        for currency in sorted(debits)
    )


def first_imbalance(totals: Iterable[CurrencyTotals]) -> CurrencyTotals | None:
    """The first unbalanced currency in code order, or None."""
    for total in sorted(totals, key=lambda t: t.currency):
        if not total.is_balanced:
            return total
    return None
