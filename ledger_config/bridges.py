"""
Config -> Kernel Bridges.

Functions that turn a LedgerConfig into kernel inputs.  They live in
ledger_config (the producer) because the kernel must never import
ledger_config.

Usage:
    from ledger_config import get_active_config
    from ledger_config.bridges import build_policy, init_database, retry_options

    config = get_active_config()
    init_database(config)
    posting = LedgerPostingService(get_session(), policy=build_policy(config))
    retry_on_conflict(lambda: ..., **retry_options(config))
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.engine import Engine

from ledger_config.loader import log_level
from ledger_config.schema import LedgerConfig
from ledger_kernel.db.engine import init_engine_from_url
from ledger_kernel.domain.policies import CurrencyPolicy, LedgerPolicy, VoidPolicy
from ledger_kernel.logging_config import configure_logging


def build_policy(config: LedgerConfig) -> LedgerPolicy:
    """Kernel LedgerPolicy for the configured void and currency policies."""
    return LedgerPolicy(
        void_policy=VoidPolicy(config.policy.void_policy),
        currency_policy=CurrencyPolicy(config.policy.currency_policy),
    )


def retry_options(config: LedgerConfig) -> dict[str, Any]:
    """Keyword arguments for ``retry_on_conflict``."""
    return {
        "max_attempts": config.retry.max_attempts,
        "backoff_seconds": config.retry.backoff_seconds,
    }


def init_database(config: LedgerConfig) -> Engine:
    """Configure logging at the configured level, then create the engine."""
    configure_logging(level=log_level(config.logging))
    db = config.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        lock_timeout_ms=db.lock_timeout_ms,
        statement_timeout_ms=db.statement_timeout_ms,
        busy_timeout_seconds=db.busy_timeout_seconds,
        enforce_immutability=db.enforce_immutability,
    )
