"""Pure domain layer: values, policies, rules, DTOs, injected clock and ids."""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountBalance,
    DeactivationResult,
    LineSpec,
    PostedEntry,
    TrialBalance,
    VoidedEntry,
)
from ledger_kernel.domain.identifiers import (
    IdGenerator,
    SequentialIdGenerator,
    UUID4Generator,
)
from ledger_kernel.domain.policies import CurrencyPolicy, LedgerPolicy, VoidPolicy
from ledger_kernel.domain.values import Money

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "IdGenerator",
    "UUID4Generator",
    "SequentialIdGenerator",
    "Money",
    "VoidPolicy",
    "CurrencyPolicy",
    "LedgerPolicy",
    "LineSpec",
    "PostedEntry",
    "VoidedEntry",
    "AccountBalance",
    "TrialBalance",
    "DeactivationResult",
]
