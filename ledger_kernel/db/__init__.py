"""Database layer - engine, base classes, types, and immutability guards."""

from ledger_kernel.db.base import (
    UUID,
    Base,
    MoneyDecimal,
    TrackedBase,
    UTCDateTime,
    UUIDString,
)
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from ledger_kernel.db.types import round_money, validate_currency

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UTCDateTime",
    "MoneyDecimal",
    "UUID",
    "round_money",
    "validate_currency",
]
