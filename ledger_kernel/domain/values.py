"""
Values -- Immutable, self-validating monetary value object.

Responsibility:
    Money is the exact decimal amount used for every debit, credit and
    balance in the ledger.  It replaces raw Decimal/str/float wherever an
    amount crosses into the kernel.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Exactly two fractional digits.  Construction never rounds; a value with
      more significant fractional digits is rejected.  ``Money.rounded`` is
      the one explicit rounding path (ROUND_HALF_UP via db.types.round_money).
    - Never float.  Floats, NaN and Infinity are rejected at construction.
    - At most 16 integer digits (the numeric(18, 2) storage range).

Failure modes:
    - InvalidAmountError on floats, non-finite values, unparsable strings,
      excess precision, or out-of-range values.
    - NegativeAmountError from ``Money.non_negative`` for negative values.

Non-goals:
    Money carries no currency.  Currency is recorded beside the amount
    (line, account, organization) and never converted.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from ledger_kernel.db.types import MONEY_DECIMAL_PLACES, round_money
from ledger_kernel.exceptions import InvalidAmountError, NegativeAmountError

_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)
_LIMIT = Decimal(10) ** 16


def _to_decimal(value) -> Decimal:
    # bool is an int subclass; True is not an amount
    if isinstance(value, (float, bool)):
        raise InvalidAmountError(repr(value), f"{type(value).__name__} is not accepted")
    if isinstance(value, Money):
        return value.amount
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation as exc:
            raise InvalidAmountError(value, "not a decimal number") from exc
    raise InvalidAmountError(repr(value), f"unsupported type {type(value).__name__}")


@dataclass(frozen=True, slots=True, order=True)
class Money:
    """
    Exact two-decimal monetary amount.

    Contract:
        ``Money("10.5") == Money("10.50")``; ``Money("10.505")`` raises.
        Arithmetic is closed over Money and never rounds.

    Guarantees:
        - amount is a finite Decimal quantized to exactly 2 places.
        - Immutable, hashable and totally ordered.
    """

    amount: Decimal

    def __post_init__(self) -> None:
        value = _to_decimal(self.amount)
        if not value.is_finite():
            raise InvalidAmountError(str(value), "must be finite")
        try:
            quantized = value.quantize(_QUANTUM)
        except InvalidOperation as exc:
            raise InvalidAmountError(str(value), "out of range") from exc
        if quantized != value:
            raise InvalidAmountError(
                str(value),
                f"more than {MONEY_DECIMAL_PLACES} fractional digits",
            )
        if abs(quantized) >= _LIMIT:
            raise InvalidAmountError(str(value), "exceeds 16 integer digits")
        if quantized == 0:
            # Normalize -0.00
            quantized = abs(quantized)
        object.__setattr__(self, "amount", quantized)

    @classmethod
    def of(cls, value: Money | Decimal | str | int) -> Money:
        """Parse ``value`` into Money without rounding."""
        if isinstance(value, Money):
            return value
        return cls(_to_decimal(value))

    @classmethod
    def zero(cls) -> Money:
        return cls(Decimal("0"))

    @classmethod
    def non_negative(
        cls, value: Money | Decimal | str | int, side: str | None = None
    ) -> Money:
        """
        Parse ``value`` and require it to be >= 0.

        Raises:
            InvalidAmountError: value is not an exact two-decimal amount.
            NegativeAmountError: value is below zero.
        """
        money = cls.of(value)
        if money.is_negative:
            raise NegativeAmountError(str(money.amount), side=side)
        return money

    @classmethod
    def rounded(cls, value: Decimal | str | int) -> Money:
        """Explicitly round ``value`` half-up to two places."""
        decimal_value = _to_decimal(value)
        if not decimal_value.is_finite():
            raise InvalidAmountError(str(decimal_value), "must be finite")
        return cls(round_money(decimal_value))

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def __add__(self, other: object) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.amount + other.amount)

    def __sub__(self, other: object) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.amount - other.amount)

    def __neg__(self) -> Money:
        return Money(-self.amount)

    def __abs__(self) -> Money:
        return Money(abs(self.amount))

    def __str__(self) -> str:
        return str(self.amount)

    def __repr__(self) -> str:
        return f"Money('{self.amount}')"
