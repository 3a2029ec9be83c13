"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the per-organization chart of accounts,
    the target of every journal line.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code is unique within an organization (uq_account_org_code).
    - account_type is one of the five fixed types (ck_account_type).
    - Structural fields (code, account_type, organization_id) are immutable
      once the account is referenced by a posted or voided JournalLine
      (ORM listener in db/immutability.py).
    - Accounts referenced by posted or voided lines are never deleted.

Failure modes:
    - DuplicateAccountCodeError (service) / IntegrityError (storage) on a
      duplicate code within an organization.
    - ImmutabilityViolationError on a structural change after first use.
    - AccountReferencedError when deletion is attempted on a referenced account.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"


# Types whose natural balance is on the credit side
CREDIT_NORMAL_TYPES = frozenset({
    AccountType.LIABILITY,
    AccountType.EQUITY,
    AccountType.INCOME,
})


class Account(TrackedBase):
    """
    Chart of Accounts entry, scoped to one organization.

    Contract:
        (organization_id, code) is unique.  Once a posted or voided
        JournalLine references the account, code, account_type and
        organization_id MUST NOT change, and the row MUST NOT be deleted.

    Non-goals:
        - No account hierarchy; the chart is flat.
        - Deactivation does not require a zero balance.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_account_org_code"),
        CheckConstraint(
            "account_type IN ('asset', 'liability', 'equity', 'income', 'expense')",
            name="ck_account_type",
        ),
        Index("idx_accounts_org", "organization_id"),
    )

    # Owning tenant
    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Human-readable code, e.g. "1000"
    code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    # Display name, e.g. "Cash"
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Account type determines natural balance side
    account_type: Mapped[AccountType] = mapped_column(
        String(20),
        nullable=False,
    )

    # Currency override (null = organization base currency)
    currency: Mapped[str | None] = mapped_column(
        String(3),
        nullable=True,
    )

    # Whether the account accepts new postings
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Optimistic lock counter
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def is_credit_normal(self) -> bool:
        """True for liability, equity and income accounts."""
        return AccountType(self.account_type) in CREDIT_NORMAL_TYPES
