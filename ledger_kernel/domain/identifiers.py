"""
Identifiers -- Injectable UUID generation.

Responsibility:
    Every row id in the ledger comes from an IdGenerator passed to the
    services.  Production uses random UUIDs; tests use SequentialIdGenerator
    so ids are predictable and ordering assertions are stable.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
"""

import threading
from abc import ABC, abstractmethod
from uuid import UUID, uuid4


class IdGenerator(ABC):
    """Source of new primary keys."""

    @abstractmethod
    def new_id(self) -> UUID:
        ...


class UUID4Generator(IdGenerator):
    """Random version-4 UUIDs."""

    def new_id(self) -> UUID:
        return uuid4()


class SequentialIdGenerator(IdGenerator):
    """
    Deterministic ids: UUID(int=start), UUID(int=start + 1), ...

    Thread-safe, so one instance can be shared by concurrent test workers.
    """

    def __init__(self, start: int = 1):
        if start < 0:
            raise ValueError("start must be non-negative")
        self._next = start
        self._lock = threading.Lock()

    def new_id(self) -> UUID:
        with self._lock:
            value = self._next
            self._next += 1
        return UUID(int=value)
