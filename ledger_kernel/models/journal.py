"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and journal lines, the
    single source of financial truth.  Balances are derived from these rows
    and never stored.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Line shape: debit >= 0, credit >= 0, not both positive, at least one
      positive (ck_line_* CHECK constraints, re-checked by the services).
    - posted_at is set if and only if status = 'posted' (ck_entry_posted_at).
    - voided_at is set if and only if status = 'voided' (ck_entry_voided_at).
    - Balance per effective currency is checked by LedgerPostingService
      before the entry is marked posted; the model carries no balance helper.
    - Immutability: ORM listeners in db/immutability.py block UPDATE/DELETE
      of posted and voided entries and of lines whose entry is not a draft.

Failure modes:
    - IntegrityError when a CHECK constraint rejects a row the services let
      through (surfaced as LedgerIntegrityError).
    - ImmutabilityViolationError on writes to posted/voided history.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import MoneyDecimal, TrackedBase, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class JournalEntryStatus(str, Enum):
    """Lifecycle status of a journal entry.

    Transitions are one-way: DRAFT -> POSTED -> VOIDED.
    """

    DRAFT = "draft"
    POSTED = "posted"
    VOIDED = "voided"


class JournalEntry(TrackedBase):
    """
    Journal entry header, the atomic unit of double-entry accounting.

    Contract:
        Once status is POSTED, the header and its lines are frozen except for
        the single POSTED -> VOIDED transition.  VOIDED is terminal.

    Non-goals:
        - This model does NOT check balance on write; LedgerPostingService
          does, inside the posting transaction.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'posted', 'voided')",
            name="ck_entry_status",
        ),
        CheckConstraint(
            "(status = 'posted' AND posted_at IS NOT NULL) "
            "OR (status <> 'posted' AND posted_at IS NULL)",
            name="ck_entry_posted_at",
        ),
        CheckConstraint(
            "(status = 'voided' AND voided_at IS NOT NULL) "
            "OR (status <> 'voided' AND voided_at IS NULL)",
            name="ck_entry_voided_at",
        ),
        Index("idx_journal_entries_org_date", "organization_id", "entry_date"),
        Index("idx_journal_entries_org_status", "organization_id", "status"),
    )

    # Owning tenant
    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Accounting date (drives as-of balance queries)
    entry_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    # External reference: invoice number, receipt id, etc.
    reference: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    memo: Mapped[str | None] = mapped_column(
        String(4000),
        nullable=True,
    )

    # Current status
    status: Mapped[JournalEntryStatus] = mapped_column(
        String(10),
        default=JournalEntryStatus.DRAFT,
        nullable=False,
    )

    # When the entry was posted (cleared on void)
    posted_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    voided_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    voided_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    void_reason: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    # If this is a contra-entry, points to the voided original
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    # Optimistic lock counter
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="JournalLine.line_seq",
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.id} {self.status} {self.entry_date}>"

    @property
    def is_draft(self) -> bool:
        return self.status == JournalEntryStatus.DRAFT

    @property
    def is_posted(self) -> bool:
        return self.status == JournalEntryStatus.POSTED

    @property
    def is_voided(self) -> bool:
        return self.status == JournalEntryStatus.VOIDED


class JournalLine(TrackedBase):
    """
    Individual debit or credit line within a journal entry.

    Contract:
        Exactly one of debit/credit is strictly positive, the other is zero.
        organization_id equals both the entry's and the account's
        organization.  Lines are written only while the entry is a draft.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        CheckConstraint("CAST(debit AS NUMERIC) >= 0", name="ck_line_debit_non_negative"),
        CheckConstraint("CAST(credit AS NUMERIC) >= 0", name="ck_line_credit_non_negative"),
        CheckConstraint(
            "NOT (CAST(debit AS NUMERIC) > 0 AND CAST(credit AS NUMERIC) > 0)",
            name="ck_line_one_side",
        ),
        CheckConstraint(
            "CAST(debit AS NUMERIC) > 0 OR CAST(credit AS NUMERIC) > 0",
            name="ck_line_non_zero",
        ),
        Index("idx_journal_lines_entry", "journal_entry_id"),
        Index("idx_journal_lines_account", "account_id"),
        Index("idx_journal_lines_org", "organization_id"),
    )

    # Owning tenant (denormalized for tenant-scoped scans)
    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Parent journal entry
    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Account being debited or credited
    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    debit: Mapped[Decimal] = mapped_column(
        MoneyDecimal(),
        nullable=False,
        default=Decimal("0"),
    )

    credit: Mapped[Decimal] = mapped_column(
        MoneyDecimal(),
        nullable=False,
        default=Decimal("0"),
    )

    # Explicit line currency (null = account, then organization currency)
    currency: Mapped[str | None] = mapped_column(
        String(3),
        nullable=True,
    )

    # Line sequence within entry (for deterministic ordering)
    line_seq: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    # Relationships
    entry: Mapped["JournalEntry"] = relationship(
        back_populates="lines",
    )

    account: Mapped["Account"] = relationship()

    def __repr__(self) -> str:
        side = f"Dr {self.debit}" if self.debit > 0 else f"Cr {self.credit}"
        return f"<JournalLine {self.line_seq} {side} {self.currency or ''}>"
