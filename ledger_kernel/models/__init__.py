"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import Account, AccountType, CREDIT_NORMAL_TYPES
from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus, JournalLine
from ledger_kernel.models.organization import (
    MemberRole,
    Organization,
    OrganizationMember,
    User,
)

__all__ = [
    "Organization",
    "User",
    "OrganizationMember",
    "MemberRole",
    "Account",
    "AccountType",
    "CREDIT_NORMAL_TYPES",
    "JournalEntry",
    "JournalEntryStatus",
    "JournalLine",
]
