"""
Ledger policies -- the deployment-level choices the kernel supports.

VoidPolicy decides what a void does to balances:
    EXCLUDE_VOIDED   voided entries drop out of every projection.
    REVERSING_ENTRY  voiding also posts a contra-entry; both the voided
                     original and the contra-entry stay in projections and
                     cancel out, so the audit trail shows both movements.

CurrencyPolicy decides how many currencies one entry may carry:
    PER_CURRENCY     any number; each effective currency balances on its own.
    HOMOGENEOUS      every line of an entry shares one effective currency.
"""

from dataclasses import dataclass
from enum import Enum


class VoidPolicy(str, Enum):
    EXCLUDE_VOIDED = "exclude_voided"
    REVERSING_ENTRY = "reversing_entry"


class CurrencyPolicy(str, Enum):
    PER_CURRENCY = "per_currency"
    HOMOGENEOUS = "homogeneous"


@dataclass(frozen=True)
class LedgerPolicy:
    """Policy bundle shared by the posting service and the balance projector."""

    void_policy: VoidPolicy = VoidPolicy.EXCLUDE_VOIDED
    currency_policy: CurrencyPolicy = CurrencyPolicy.PER_CURRENCY

    @property
    def included_statuses(self) -> frozenset[str]:
        """Entry statuses whose lines count toward balances."""
        if self.void_policy == VoidPolicy.REVERSING_ENTRY:
            return frozenset({"posted", "voided"})
        return frozenset({"posted"})


DEFAULT_POLICY = LedgerPolicy()
