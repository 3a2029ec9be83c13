"""Kernel services: the write side of the ledger."""

from ledger_kernel.services.base import BaseService, TransactionalService
from ledger_kernel.services.chart_of_accounts import ChartOfAccounts
from ledger_kernel.services.journal_drafts import JournalDrafts
from ledger_kernel.services.ledger_posting_service import LedgerPostingService
from ledger_kernel.services.organization_service import OrganizationService
from ledger_kernel.services.retry import retry_on_conflict

__all__ = [
    "BaseService",
    "TransactionalService",
    "OrganizationService",
    "ChartOfAccounts",
    "JournalDrafts",
    "LedgerPostingService",
    "retry_on_conflict",
]
