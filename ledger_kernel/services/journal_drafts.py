"""
JournalDrafts -- the draft-mutation phase of the JournalEntry aggregate.

Responsibility:
    Creates draft entries and adds, updates and removes their lines.  Every
    line is shape-checked, tenant-checked and currency-checked as it is
    written, so a caller gets feedback before posting.  Posting re-runs the
    same checks under lock (see LedgerPostingService), so nothing here is
    trusted by the post.

Architecture position:
    Kernel > Services.  Flush-only (BaseService contract): the caller, usually
    LedgerPostingService, owns the transaction.

Invariants enforced:
    - Lines are written only while the entry is a draft.
    - line.organization_id == entry.organization_id == account.organization_id.
    - Every mutation bumps the entry's version, so a post racing a draft
      edit is detected as a concurrency conflict.

Failure modes:
    - EntryNotDraftError, EntryNotFoundError, LineNotFoundError.
    - InvalidAmountError / NegativeAmountError / BothSidesSetError /
      ZeroAmountLineError for malformed amounts.
    - AccountNotFoundError, CrossTenantReferenceError.
    - InvalidCurrencyError, CurrencyMismatchError.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.attributes import flag_modified

from ledger_kernel.db.types import validate_currency
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.identifiers import IdGenerator
from ledger_kernel.domain.journal_rules import (
    check_currency_policy,
    check_line_currency,
    validate_line_amounts,
)
from ledger_kernel.domain.policies import CurrencyPolicy
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    CrossTenantReferenceError,
    EntryNotDraftError,
    EntryNotFoundError,
    LineNotFoundError,
    OrganizationNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus, JournalLine
from ledger_kernel.models.organization import Organization
from ledger_kernel.services.base import BaseService

logger = get_logger("services.journal_drafts")

# Sentinel for "leave this field unchanged" in update_line
UNSET = object()


class JournalDrafts(BaseService):
    """Draft entry construction and line editing."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        id_generator: IdGenerator | None = None,
        currency_policy: CurrencyPolicy = CurrencyPolicy.PER_CURRENCY,
    ):
        super().__init__(session, clock, id_generator)
        self._currency_policy = currency_policy

    # -------------------------------------------------------------------------
    # Entries
    # -------------------------------------------------------------------------

    def new_draft(
        self,
        organization_id: UUID,
        entry_date: date,
        created_by: UUID,
        reference: str | None = None,
        memo: str | None = None,
        reversal_of_id: UUID | None = None,
    ) -> JournalEntry:
        if self.session.get(Organization, organization_id) is None:
            raise OrganizationNotFoundError(str(organization_id))

        now = self._clock.now()
        entry = JournalEntry(
            id=self._ids.new_id(),
            organization_id=organization_id,
            entry_date=entry_date,
            reference=reference,
            memo=memo,
            status=JournalEntryStatus.DRAFT.value,
            posted_at=None,
            reversal_of_id=reversal_of_id,
            created_at=now,
            updated_at=now,
            created_by_id=created_by,
        )
        self.session.add(entry)
        self.session.flush()
        logger.info(
            "journal_draft_created",
            extra={"entry_id": str(entry.id), "entry_date": entry_date},
        )
        return entry

    def load_entry(
        self,
        organization_id: UUID,
        entry_id: UUID,
        for_update: bool = False,
    ) -> JournalEntry:
        """
        Load an entry of the organization with its lines.

        With ``for_update`` the row is locked (SELECT ... FOR UPDATE on
        PostgreSQL) and re-read from storage.
        """
        stmt = (
            select(JournalEntry)
            .options(selectinload(JournalEntry.lines))
            .where(JournalEntry.id == entry_id)
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        entry = self.session.scalar(stmt)
        if entry is None or entry.organization_id != organization_id:
            raise EntryNotFoundError(str(entry_id))
        return entry

    def discard(self, entry: JournalEntry) -> None:
        """Delete a draft together with its lines."""
        self._require_draft(entry)
        entry_id = entry.id
        self.session.delete(entry)
        self.session.flush()
        logger.info("journal_draft_discarded", extra={"entry_id": str(entry_id)})

    # -------------------------------------------------------------------------
    # Lines
    # -------------------------------------------------------------------------

    def add_line(
        self,
        entry: JournalEntry,
        account_id: UUID,
        debit: Money | Decimal | str | int = 0,
        credit: Money | Decimal | str | int = 0,
        description: str | None = None,
        currency: str | None = None,
        actor_id: UUID | None = None,
    ) -> JournalLine:
        self._require_draft(entry)
        debit_money, credit_money = validate_line_amounts(debit, credit)
        line_currency = validate_currency(currency) if currency is not None else None
        account = self._require_account(entry, account_id)
        self._check_currency(entry, account, line_currency, exclude_line_id=None)

        now = self._clock.now()
        line = JournalLine(
            id=self._ids.new_id(),
            organization_id=entry.organization_id,
            journal_entry_id=entry.id,
            account_id=account.id,
            description=description,
            debit=debit_money.amount,
            credit=credit_money.amount,
            currency=line_currency,
            line_seq=self._next_line_seq(entry),
            created_at=now,
            updated_at=now,
            created_by_id=actor_id,
        )
        entry.lines.append(line)
        self._touch(entry, actor_id)
        self.session.flush()
        logger.debug(
            "journal_line_added",
            extra={
                "line_id": str(line.id),
                "account_id": str(account.id),
                "line_seq": line.line_seq,
            },
        )
        return line

    def update_line(
        self,
        entry: JournalEntry,
        line_id: UUID,
        *,
        account_id=UNSET,
        debit=UNSET,
        credit=UNSET,
        description=UNSET,
        currency=UNSET,
        actor_id: UUID | None = None,
    ) -> JournalLine:
        """
        Change fields of a draft line.  Omitted fields keep their value; the
        merged line is validated exactly like a new one.
        """
        self._require_draft(entry)
        line = self._require_line(entry, line_id)

        merged_debit = line.debit if debit is UNSET else debit
        merged_credit = line.credit if credit is UNSET else credit
        debit_money, credit_money = validate_line_amounts(merged_debit, merged_credit)

        merged_currency = line.currency if currency is UNSET else currency
        line_currency = (
            validate_currency(merged_currency) if merged_currency is not None else None
        )
        account = self._require_account(
            entry, line.account_id if account_id is UNSET else account_id
        )
        self._check_currency(entry, account, line_currency, exclude_line_id=line.id)

        line.account_id = account.id
        line.account = account
        line.debit = debit_money.amount
        line.credit = credit_money.amount
        line.currency = line_currency
        if description is not UNSET:
            line.description = description
        line.updated_at = self._clock.now()
        line.updated_by_id = actor_id
        self._touch(entry, actor_id)
        self.session.flush()
        logger.debug("journal_line_updated", extra={"line_id": str(line.id)})
        return line

    def remove_line(
        self,
        entry: JournalEntry,
        line_id: UUID,
        actor_id: UUID | None = None,
    ) -> None:
        self._require_draft(entry)
        line = self._require_line(entry, line_id)
        entry.lines.remove(line)
        self._touch(entry, actor_id)
        self.session.flush()
        logger.debug("journal_line_removed", extra={"line_id": str(line_id)})

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _require_draft(entry: JournalEntry) -> None:
        if entry.status != JournalEntryStatus.DRAFT:
            raise EntryNotDraftError(
                str(entry.id), getattr(entry.status, "value", entry.status)
            )

    @staticmethod
    def _require_line(entry: JournalEntry, line_id: UUID) -> JournalLine:
        for line in entry.lines:
            if line.id == line_id:
                return line
        raise LineNotFoundError(str(line_id))

    def _require_account(self, entry: JournalEntry, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        if account.organization_id != entry.organization_id:
            raise CrossTenantReferenceError(
                entity_type="Account",
                entity_id=str(account_id),
                expected_organization_id=str(entry.organization_id),
                actual_organization_id=str(account.organization_id),
            )
        return account

    def _check_currency(
        self,
        entry: JournalEntry,
        account: Account,
        line_currency: str | None,
        exclude_line_id: UUID | None,
    ) -> str:
        base_currency = self.session.get(Organization, entry.organization_id).base_currency
        currency = check_line_currency(line_currency, account.currency, base_currency)
        others = [
            check_line_currency(line.currency, line.account.currency, base_currency)
            for line in entry.lines
            if line.id != exclude_line_id
        ]
        check_currency_policy([*others, currency], self._currency_policy)
        return currency

    @staticmethod
    def _next_line_seq(entry: JournalEntry) -> int:
        return max((line.line_seq for line in entry.lines), default=0) + 1

    def _touch(self, entry: JournalEntry, actor_id: UUID | None) -> None:
        entry.updated_at = self._clock.now()
        if actor_id is not None:
            entry.updated_by_id = actor_id
        # Always emit an UPDATE so the version counter moves, even when the
        # audit values are unchanged
        flag_modified(entry, "updated_at")
