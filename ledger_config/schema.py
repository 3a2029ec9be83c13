"""
LedgerConfig schema.

Frozen dataclasses describing one deployment of the ledger: where the
database lives, how conflicts are retried, how verbose logging is, and which
void/currency policy the kernel runs with.  YAML documents are parsed into
these types by the loader; bridges turn them into kernel inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings passed to ``init_engine_from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 10
    lock_timeout_ms: int = 5000
    statement_timeout_ms: int = 30000
    busy_timeout_seconds: float = 5.0
    enforce_immutability: bool = True


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetryConfig:
    """Arguments for ``retry_on_conflict``."""

    max_attempts: int = 3
    backoff_seconds: float = 0.05


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PolicyConfig:
    """Policy names as written in YAML (``exclude_voided``, ``per_currency``...)."""

    void_policy: str = "exclude_voided"
    currency_policy: str = "per_currency"


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfig:
    """A complete, validated ledger deployment configuration."""

    database: DatabaseConfig
    retry: RetryConfig = field(default_factory=RetryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    source: str | None = None
