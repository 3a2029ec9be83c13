"""
Module: ledger_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, portable UUID/timestamp/money column types, the
    type annotation map, and the TrackedBase mixin for audit fields.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - UUID primary keys: every model carries a UUID primary key.  There is no
      model-side or database-side default; ids come from the injected
      IdGenerator (domain/identifiers.py) so tests can replay them.
    - Decimal precision: type_annotation_map maps Python Decimal to
      MoneyDecimal, numeric(18, 2) on PostgreSQL and exact decimal text on
      SQLite, matching the two-fractional-digit Money value object.
      NEVER use float for monetary amounts.
    - Timezone-aware timestamps: UTCDateTime normalizes every value to UTC on
      write and returns aware UTC datetimes on read, on every dialect.

Failure modes:
    - ValueError from UTCDateTime if a naive datetime is bound.
    - IntegrityError if an insert is attempted without an id or audit fields.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID

from sqlalchemy import Date, DateTime, Integer, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Transparently converts between Python UUID objects and their 36-character
    string representation on both SQLite and PostgreSQL.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        """Convert UUID to string when storing."""
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        """Convert string back to UUID when loading."""
        if value is not None:
            return PyUUID(value)
        return None


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp that always round-trips as UTC.

    PostgreSQL stores ``timestamptz`` natively.  SQLite has no timezone
    support, so values are stored as naive UTC and re-tagged on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed for UTCDateTime: {value!r}")
        value = value.astimezone(UTC)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class MoneyDecimal(TypeDecorator):
    """
    Exact two-place monetary amount.

    PostgreSQL stores ``numeric(18, 2)``.  SQLite has no exact decimal type
    and would hand Numeric values back through a float, so there the amount
    is stored as its canonical decimal text and parsed back on load.
    CHECK constraints on these columns compare ``CAST(col AS NUMERIC)`` so
    the sign checks mean the same thing on both engines.
    """

    impl = Numeric(18, 2)
    cache_ok = True

    _QUANTUM = Decimal("0.01")

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(40))
        return dialect.type_descriptor(Numeric(18, 2))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = Decimal(value)
        if dialect.name == "sqlite":
            return format(value.quantize(self._QUANTUM), "f")
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value).quantize(self._QUANTUM)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Every ORM model inherits from Base (or TrackedBase).  Base provides a UUID
    primary key and a type_annotation_map that keeps column types consistent
    across the schema.
    """

    # Map Python types to SQLAlchemy column types
    type_annotation_map: ClassVar[dict] = {
        # Two fractional digits, up to 16 integer digits
        Decimal: MoneyDecimal(),
        datetime: UTCDateTime(),
        date: Date(),
        PyUUID: UUIDString(),
        int: Integer(),
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamp and actor tracking.

    Services set these fields from the injected Clock and the calling actor;
    nothing here reads the wall clock.  updated_at/updated_by_id are audit
    metadata and may change even on otherwise-immutable rows (see
    db/immutability.py).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


# Re-export UUID for convenience
UUID = PyUUID
