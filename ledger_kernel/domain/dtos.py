"""
DTOs -- Immutable results returned across the kernel boundary.

Responsibility:
    Services and selectors return these frozen dataclasses rather than ORM
    entities, so callers never hold a live, session-bound row and cannot
    mutate ledger state by accident.  LineSpec is the one input DTO: a line
    to be written by ``LedgerPostingService.record``.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  from_model() converters are invoked
    only from the service and selector layers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from ledger_kernel.domain.journal_rules import CurrencyTotals


@dataclass(frozen=True)
class LineSpec:
    """A journal line to be written: account, one-sided amount, optional currency."""

    account_id: UUID
    debit: Decimal | str | int = Decimal("0")
    credit: Decimal | str | int = Decimal("0")
    description: str | None = None
    currency: str | None = None


@dataclass(frozen=True)
class PostedEntry:
    """Outcome of a successful post."""

    entry_id: UUID
    organization_id: UUID
    entry_date: date
    posted_at: datetime
    line_count: int
    totals: tuple[CurrencyTotals, ...]
    reversal_of_id: UUID | None = None

    @property
    def currencies(self) -> tuple[str, ...]:
        return tuple(t.currency for t in self.totals)


@dataclass(frozen=True)
class VoidedEntry:
    """Outcome of a void, with the contra-entry when one was posted."""

    entry_id: UUID
    organization_id: UUID
    voided_at: datetime
    voided_by_id: UUID
    reason: str | None
    reversal: PostedEntry | None = None

    @property
    def reversal_entry_id(self) -> UUID | None:
        return self.reversal.entry_id if self.reversal else None


@dataclass(frozen=True)
class AccountBalance:
    """
    Balance of one account derived from posted history.

    net_balance is debits minus credits (debit-positive).  natural_balance
    flips the sign for credit-normal accounts (liability, equity, income) so
    that a healthy balance reads positive.
    """

    account_id: UUID
    organization_id: UUID
    code: str
    name: str
    account_type: str
    currency: str
    total_debits: Decimal
    total_credits: Decimal
    line_count: int
    is_active: bool = True

    @property
    def net_balance(self) -> Decimal:
        return self.total_debits - self.total_credits

    @property
    def natural_balance(self) -> Decimal:
        if self.account_type in ("liability", "equity", "income"):
            return -self.net_balance
        return self.net_balance

    @property
    def is_zero(self) -> bool:
        return self.net_balance == 0


@dataclass(frozen=True)
class TrialBalance:
    """All account balances of an organization with per-currency totals."""

    organization_id: UUID
    as_of_date: date | None
    accounts: tuple[AccountBalance, ...]
    totals: tuple[CurrencyTotals, ...] = field(default_factory=tuple)

    @property
    def is_balanced(self) -> bool:
        return all(t.is_balanced for t in self.totals)

    def for_currency(self, currency: str) -> CurrencyTotals | None:
        for total in self.totals:
            if total.currency == currency:
                return total
        return None


@dataclass(frozen=True)
class DeactivationResult:
    """Outcome of deactivating an account.

    A non-zero balance never blocks deactivation; it is reported here and
    logged at WARNING so the caller can decide what to do.
    """

    account_id: UUID
    was_active: bool
    balance: AccountBalance

    @property
    def has_nonzero_balance(self) -> bool:
        return not self.balance.is_zero
