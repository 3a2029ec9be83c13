"""
Module: ledger_kernel.selectors.balance_projector
Responsibility: Derive account balances and trial balances from posted
    journal history.  There are no stored balances anywhere in the ledger;
    every figure here is recomputed from JournalLine rows at query time.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ and selectors/base.py.  MUST NOT import from services/.

Invariants enforced:
    - Tenant isolation: every query is filtered by organization_id; an
      account of another organization is reported as not found.
    - Only lines of entries whose status is in ``included_statuses`` count
      (posted, plus voided under the reversing-entry void policy), and only
      entries with entry_date <= as_of_date when a date is given.
    - Deterministic: amounts are folded as Decimals (exact, order
      independent) and results are ordered by account code.

Failure modes:
    - OrganizationNotFoundError for an unknown organization.
    - AccountNotFoundError from account_balance() for an absent or foreign
      account.
"""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import AccountBalance, TrialBalance
from ledger_kernel.domain.journal_rules import PostingLine, currency_totals
from ledger_kernel.domain.policies import DEFAULT_POLICY, LedgerPolicy
from ledger_kernel.exceptions import AccountNotFoundError, OrganizationNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_kernel.models.organization import Organization
from ledger_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.balance_projector")


class BalanceProjector(BaseSelector):
    """
    Read-only balance projection over posted journal lines.

    Contract:
        Never mutates state.  Calling it twice on the same persisted state
        returns equal results.
    """

    def __init__(self, session: Session, policy: LedgerPolicy | None = None):
        super().__init__(session)
        self._policy = policy or DEFAULT_POLICY

    @property
    def included_statuses(self) -> frozenset[str]:
        return self._policy.included_statuses

    def balances(
        self,
        organization_id: UUID,
        as_of_date: date | None = None,
    ) -> dict[UUID, AccountBalance]:
        """
        Balance of every account in the organization, keyed by account id.

        Accounts without lines are included with zero totals.  Iteration
        order follows account code.
        """
        base_currency = self._base_currency(organization_id)
        accounts = self.session.scalars(
            select(Account)
            .where(Account.organization_id == organization_id)
            .order_by(Account.code)
        ).all()
        folded = self._fold(organization_id, as_of_date)

        result = {
            account.id: self._to_balance(account, base_currency, folded)
            for account in accounts
        }
        logger.debug(
            "balances_projected",
            extra={
                "organization_id": str(organization_id),
                "account_count": len(result),
                "as_of_date": as_of_date,
            },
        )
        return result

    def account_balance(
        self,
        organization_id: UUID,
        account_id: UUID,
        as_of_date: date | None = None,
    ) -> AccountBalance:
        """Balance of a single account of the organization."""
        base_currency = self._base_currency(organization_id)
        account = self.session.get(Account, account_id)
        if account is None or account.organization_id != organization_id:
            raise AccountNotFoundError(str(account_id))
        folded = self._fold(organization_id, as_of_date, account_id=account_id)
        return self._to_balance(account, base_currency, folded)

    def trial_balance(
        self,
        organization_id: UUID,
        as_of_date: date | None = None,
    ) -> TrialBalance:
        """
        All account balances with per-currency debit/credit totals.

        For a ledger that only ever accepted balanced entries, every
        currency's totals are equal and ``is_balanced`` is True.
        """
        accounts = tuple(self.balances(organization_id, as_of_date).values())
        totals = currency_totals(
            PostingLine(b.currency, b.total_debits, b.total_credits)
            for b in accounts
        )
        return TrialBalance(
            organization_id=organization_id,
            as_of_date=as_of_date,
            accounts=accounts,
            totals=totals,
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _base_currency(self, organization_id: UUID) -> str:
        base_currency = self.session.scalar(
            select(Organization.base_currency).where(Organization.id == organization_id)
        )
        if base_currency is None:
            raise OrganizationNotFoundError(str(organization_id))
        return base_currency

    def _fold(
        self,
        organization_id: UUID,
        as_of_date: date | None,
        account_id: UUID | None = None,
    ) -> dict[UUID, tuple[Decimal, Decimal, int]]:
        stmt = (
            select(JournalLine.account_id, JournalLine.debit, JournalLine.credit)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalEntry.organization_id == organization_id,
                JournalLine.organization_id == organization_id,
                JournalEntry.status.in_(sorted(self.included_statuses)),
            )
        )
        if as_of_date is not None:
            stmt = stmt.where(JournalEntry.entry_date <= as_of_date)
        if account_id is not None:
            stmt = stmt.where(JournalLine.account_id == account_id)
        return _fold_rows(self.session.execute(stmt))

    @staticmethod
    def _to_balance(
        account: Account,
        base_currency: str,
        folded: dict[UUID, tuple[Decimal, Decimal, int]],
    ) -> AccountBalance:
        debits, credits, count = folded.get(account.id, (Decimal("0"), Decimal("0"), 0))
        return AccountBalance(
            account_id=account.id,
            organization_id=account.organization_id,
            code=account.code,
            name=account.name,
            account_type=str(getattr(account.account_type, "value", account.account_type)),
            currency=account.currency or base_currency,
            total_debits=debits,
            total_credits=credits,
            line_count=count,
            is_active=account.is_active,
        )


def _fold_rows(
    rows: Iterable[tuple[UUID, Decimal, Decimal]],
) -> dict[UUID, tuple[Decimal, Decimal, int]]:
    folded: dict[UUID, tuple[Decimal, Decimal, int]] = {}
    for account_id, debit, credit in rows:
        d, c, n = folded.get(account_id, (Decimal("0"), Decimal("0"), 0))
        folded[account_id] = (d + debit, c + credit, n + 1)
    return folded
