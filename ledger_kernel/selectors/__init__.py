"""Read-only selectors."""

from ledger_kernel.selectors.balance_projector import BalanceProjector
from ledger_kernel.selectors.base import BaseSelector

__all__ = ["BaseSelector", "BalanceProjector"]
