"""
LedgerPostingService -- the journal entry state machine and transaction boundary.

Responsibility:
    Owns the lifecycle DRAFT -> POSTED -> VOIDED.  Draft editing is delegated
    to JournalDrafts; posting re-validates the whole entry under lock and
    flips it to POSTED; voiding flips a posted entry to VOIDED (and, under
    the reversing-entry void policy, posts a contra-entry in the same
    transaction).

Architecture position:
    Kernel > Services.  Transactional (see services/base.py): every public
    method is exactly one atomic unit of work.

Posting flow:
    1. Lock the entry row (SELECT ... FOR UPDATE on PostgreSQL; SQLite holds
       the database write lock from BEGIN IMMEDIATE).
    2. Require DRAFT and at least one line.
    3. Lock every referenced account.
    4. Per line: tenant match, account active, line shape, effective
       currency; then the entry-wide currency policy.
    5. Fold per-currency totals; the first unbalanced currency in code order
       fails the post.
    6. status = POSTED, posted_at = clock.now(), flush, commit.

    Any failure rolls the whole transaction back and the entry stays DRAFT.
    The service never adds balancing lines.

Failure modes:
    - EntryNotFoundError, EntryNotDraftError, EmptyEntryError,
      CrossTenantReferenceError, AccountInactiveError, line-shape errors,
      CurrencyMismatchError, UnbalancedEntryError.
    - EntryNotPostedError / EntryAlreadyVoidedError from void().
    - ConcurrencyConflictError when a concurrent transaction wins a race.
    - LedgerIntegrityError when storage contradicts validation (for example
      a line whose account row has vanished).
"""

import time
from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import LineSpec, PostedEntry, VoidedEntry
from ledger_kernel.domain.identifiers import IdGenerator
from ledger_kernel.domain.journal_rules import (
    PostingLine,
    check_currency_policy,
    check_line_currency,
    currency_totals,
    first_imbalance,
    validate_line_amounts,
)
from ledger_kernel.domain.policies import DEFAULT_POLICY, LedgerPolicy, VoidPolicy
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    AccountInactiveError,
    CrossTenantReferenceError,
    EmptyEntryError,
    EntryAlreadyVoidedError,
    EntryNotDraftError,
    EntryNotPostedError,
    LedgerIntegrityError,
    UnbalancedEntryError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus, JournalLine
from ledger_kernel.models.organization import Organization
from ledger_kernel.services.base import TransactionalService
from ledger_kernel.services.journal_drafts import UNSET, JournalDrafts

logger = get_logger("services.ledger_posting")


class LedgerPostingService(TransactionalService):
    """
    Public write API of the ledger.

    Every method takes an already-authorized ``organization_id`` and
    ``actor_id``; lookups outside that organization behave exactly like
    lookups of ids that do not exist.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        id_generator: IdGenerator | None = None,
        policy: LedgerPolicy | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session, clock, id_generator, auto_commit)
        self._policy = policy or DEFAULT_POLICY
        self._drafts = JournalDrafts(
            session,
            self._clock,
            self._ids,
            currency_policy=self._policy.currency_policy,
        )

    @property
    def policy(self) -> LedgerPolicy:
        return self._policy

    # -------------------------------------------------------------------------
    # Draft operations
    # -------------------------------------------------------------------------

    def create_draft(
        self,
        organization_id: UUID,
        actor_id: UUID,
        entry_date: date,
        reference: str | None = None,
        memo: str | None = None,
    ) -> JournalEntry:
        with self._transaction(
            "create_draft", organization_id=organization_id, actor_id=actor_id
        ):
            entry = self._drafts.new_draft(
                organization_id, entry_date, actor_id, reference=reference, memo=memo
            )
        return entry

    def get_entry(self, organization_id: UUID, entry_id: UUID) -> JournalEntry:
        with self._transaction(
            "get_entry", organization_id=organization_id, entry_id=entry_id
        ):
            entry = self._drafts.load_entry(organization_id, entry_id)
        return entry

    def add_line(
        self,
        organization_id: UUID,
        actor_id: UUID,
        entry_id: UUID,
        account_id: UUID,
        debit: Money | Decimal | str | int = 0,
        credit: Money | Decimal | str | int = 0,
        description: str | None = None,
        currency: str | None = None,
    ) -> JournalLine:
        with self._transaction(
            "add_line",
            organization_id=organization_id,
            actor_id=actor_id,
            entry_id=entry_id,
        ):
            entry = self._drafts.load_entry(organization_id, entry_id, for_update=True)
            line = self._drafts.add_line(
                entry,
                account_id,
                debit=debit,
                credit=credit,
                description=description,
                currency=currency,
                actor_id=actor_id,
            )
        return line

    def update_line(
        self,
        organization_id: UUID,
        actor_id: UUID,
        entry_id: UUID,
        line_id: UUID,
        *,
        account_id=UNSET,
        debit=UNSET,
        credit=UNSET,
        description=UNSET,
        currency=UNSET,
    ) -> JournalLine:
        with self._transaction(
            "update_line",
            organization_id=organization_id,
            actor_id=actor_id,
            entry_id=entry_id,
        ):
            entry = self._drafts.load_entry(organization_id, entry_id, for_update=True)
            line = self._drafts.update_line(
                entry,
                line_id,
                account_id=account_id,
                debit=debit,
                credit=credit,
                description=description,
                currency=currency,
                actor_id=actor_id,
            )
        return line

    def remove_line(
        self,
        organization_id: UUID,
        actor_id: UUID,
        entry_id: UUID,
        line_id: UUID,
    ) -> None:
        with self._transaction(
            "remove_line",
            organization_id=organization_id,
            actor_id=actor_id,
            entry_id=entry_id,
        ):
            entry = self._drafts.load_entry(organization_id, entry_id, for_update=True)
            self._drafts.remove_line(entry, line_id, actor_id=actor_id)

    def discard_draft(
        self,
        organization_id: UUID,
        actor_id: UUID,
        entry_id: UUID,
    ) -> None:
        with self._transaction(
            "discard_draft",
            organization_id=organization_id,
            actor_id=actor_id,
            entry_id=entry_id,
        ):
            entry = self._drafts.load_entry(organization_id, entry_id, for_update=True)
            self._drafts.discard(entry)

    # -------------------------------------------------------------------------
    # Posting
    # -------------------------------------------------------------------------

    def post(
        self,
        organization_id: UUID,
        actor_id: UUID,
        entry_id: UUID,
    ) -> PostedEntry:
        """Validate a draft under lock and mark it posted."""
        t0 = time.monotonic()
        with self._transaction(
            "post",
            organization_id=organization_id,
            actor_id=actor_id,
            entry_id=entry_id,
        ):
            entry = self._drafts.load_entry(organization_id, entry_id, for_update=True)
            result = self._post_entry(entry, actor_id)
        self._log_posted(result, t0)
        return result

    def record(
        self,
        organization_id: UUID,
        actor_id: UUID,
        entry_date: date,
        lines: Sequence[LineSpec],
        reference: str | None = None,
        memo: str | None = None,
    ) -> PostedEntry:
        """
        Create, fill and post an entry in one transaction.

        On any failure nothing is persisted; no draft is left behind.
        """
        t0 = time.monotonic()
        with self._transaction(
            "record", organization_id=organization_id, actor_id=actor_id
        ):
            entry = self._drafts.new_draft(
                organization_id, entry_date, actor_id, reference=reference, memo=memo
            )
            for spec in lines:
                self._drafts.add_line(
                    entry,
                    spec.account_id,
                    debit=spec.debit,
                    credit=spec.credit,
                    description=spec.description,
                    currency=spec.currency,
                    actor_id=actor_id,
                )
            result = self._post_entry(entry, actor_id)
        self._log_posted(result, t0)
        return result

    # -------------------------------------------------------------------------
    # Voiding
    # -------------------------------------------------------------------------

    def void(
        self,
        organization_id: UUID,
        actor_id: UUID,
        entry_id: UUID,
        reason: str | None = None,
    ) -> VoidedEntry:
        """
        Void a posted entry.  Lines are never edited or deleted.

        Under VoidPolicy.REVERSING_ENTRY a contra-entry with debits and
        credits swapped is posted atomically, linked via reversal_of_id.
        """
        with self._transaction(
            "void",
            organization_id=organization_id,
            actor_id=actor_id,
            entry_id=entry_id,
        ):
            entry = self._drafts.load_entry(organization_id, entry_id, for_update=True)
            status = getattr(entry.status, "value", entry.status)
            if status == JournalEntryStatus.VOIDED:
                raise EntryAlreadyVoidedError(str(entry.id))
            if status != JournalEntryStatus.POSTED:
                raise EntryNotPostedError(str(entry.id), status)

            now = self._clock.now()
            entry.status = JournalEntryStatus.VOIDED.value
            entry.posted_at = None
            entry.voided_at = now
            entry.voided_by_id = actor_id
            entry.void_reason = reason
            entry.updated_at = now
            entry.updated_by_id = actor_id
            self.session.flush()

            reversal = None
            if self._policy.void_policy == VoidPolicy.REVERSING_ENTRY:
                reversal = self._post_reversal(entry, actor_id)

            result = VoidedEntry(
                entry_id=entry.id,
                organization_id=entry.organization_id,
                voided_at=now,
                voided_by_id=actor_id,
                reason=reason,
                reversal=reversal,
            )

        logger.info(
            "journal_entry_voided",
            extra={
                "entry_id": str(result.entry_id),
                "organization_id": str(result.organization_id),
                "void_policy": self._policy.void_policy.value,
                "reversal_entry_id": (
                    str(result.reversal_entry_id) if result.reversal_entry_id else None
                ),
            },
        )
        return result

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _post_reversal(self, original: JournalEntry, actor_id: UUID) -> PostedEntry:
        contra = self._drafts.new_draft(
            original.organization_id,
            original.entry_date,
            actor_id,
            reference=original.reference,
            memo=f"Reversal of {original.id}",
            reversal_of_id=original.id,
        )
        for line in original.lines:
            self._drafts.add_line(
                contra,
                line.account_id,
                debit=line.credit,
                credit=line.debit,
                description=line.description,
                currency=line.currency,
                actor_id=actor_id,
            )
        # A void must succeed even if an account was deactivated since posting
        return self._post_entry(contra, actor_id, allow_inactive=True)

    def _post_entry(
        self,
        entry: JournalEntry,
        actor_id: UUID,
        allow_inactive: bool = False,
    ) -> PostedEntry:
        status = getattr(entry.status, "value", entry.status)
        if status != JournalEntryStatus.DRAFT:
            raise EntryNotDraftError(str(entry.id), status)

        lines = sorted(entry.lines, key=lambda line: line.line_seq)
        if not lines:
            raise EmptyEntryError(str(entry.id))

        organization = self.session.get(Organization, entry.organization_id)
        accounts = self._lock_accounts({line.account_id for line in lines})

        posting_lines: list[PostingLine] = []
        for line in lines:
            account = accounts.get(line.account_id)
            if account is None:
                raise LedgerIntegrityError(
                    "post",
                    f"account {line.account_id} referenced by line {line.id} does not exist",
                )
            if (
                account.organization_id != entry.organization_id
                or line.organization_id != entry.organization_id
            ):
                raise CrossTenantReferenceError(
                    entity_type="Account",
                    entity_id=str(account.id),
                    expected_organization_id=str(entry.organization_id),
                    actual_organization_id=str(account.organization_id),
                )
            if not account.is_active and not allow_inactive:
                raise AccountInactiveError(str(account.id))

            debit, credit = validate_line_amounts(line.debit, line.credit)
            currency = check_line_currency(
                line.currency, account.currency, organization.base_currency
            )
            posting_lines.append(PostingLine(currency, debit.amount, credit.amount))

        check_currency_policy(
            (p.currency for p in posting_lines), self._policy.currency_policy
        )

        totals = currency_totals(posting_lines)
        imbalance = first_imbalance(totals)
        if imbalance is not None:
            logger.warning(
                "unbalanced_entry",
                extra={
                    "entry_id": str(entry.id),
                    "currency": imbalance.currency,
                    "sum_debit": str(imbalance.debits),
                    "sum_credit": str(imbalance.credits),
                    "imbalance": str(imbalance.difference),
                },
            )
            raise UnbalancedEntryError(
                imbalance.currency, str(imbalance.debits), str(imbalance.credits)
            )
        for total in totals:
            logger.debug(
                "balance_validated",
                extra={
                    "entry_id": str(entry.id),
                    "currency": total.currency,
                    "sum_debit": str(total.debits),
                    "sum_credit": str(total.credits),
                },
            )

        now = self._clock.now()
        entry.status = JournalEntryStatus.POSTED.value
        entry.posted_at = now
        entry.updated_at = now
        entry.updated_by_id = actor_id
        self.session.flush()

        return PostedEntry(
            entry_id=entry.id,
            organization_id=entry.organization_id,
            entry_date=entry.entry_date,
            posted_at=now,
            line_count=len(lines),
            totals=totals,
            reversal_of_id=entry.reversal_of_id,
        )

    def _lock_accounts(self, account_ids: set[UUID]) -> dict[UUID, Account]:
        # Stable lock order avoids deadlocks between concurrent posts
        ordered = sorted(account_ids, key=str)
        accounts = self.session.scalars(
            select(Account)
            .where(Account.id.in_(ordered))
            .order_by(Account.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return {account.id: account for account in accounts}

    def _log_posted(self, result: PostedEntry, t0: float) -> None:
        logger.info(
            "journal_entry_posted",
            extra={
                "entry_id": str(result.entry_id),
                "organization_id": str(result.organization_id),
                "line_count": result.line_count,
                "currencies": list(result.currencies),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
