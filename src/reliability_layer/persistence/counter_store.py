"""
Counter store contract and in-memory implementation.

The counter store holds the only cross-call mutable state of the engine:
circuit breaker state and tenant budget counters. Each key maps to a flat
hash of string fields. Implementations must make every operation atomic per
key, including across processes for shared backends (see RedisCounterStore).

Operations:
- read: snapshot of the hash
- atomic_increment: store-applied `field = field + delta` for several
  fields at once, plus optional plain field writes, in one atomic step
- conditional_reset: write reset values only if a guard on one field holds
  (stale window / expired cooldown); only the first of several concurrent
  callers observing staleness applies it
- clear: delete fields (or the whole key)
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Union


Delta = Union[int, float, Decimal]


class CounterStoreError(Exception):
    """
    Raised when the backing store cannot be reached or rejects an operation.

    The engine treats this as an expected failure: breaker checks fail open
    and budget accounting is skipped with an error log.
    """

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


@dataclass(frozen=True)
class ResetGuard:
    """
    Guard predicate for conditional_reset.

    The reset applies when `field` is missing/empty or its stored value is
    below `before` (or equal to it when `inclusive`). Comparison is numeric
    when `numeric` is set and lexicographic otherwise (ISO dates compare
    correctly as strings).
    """

    field: str
    before: Union[str, float]
    numeric: bool = False
    inclusive: bool = False

    def allows(self, stored: Optional[str]) -> bool:
        if stored is None or stored == "":
            return True
        if self.numeric:
            current, bound = float(stored), float(self.before)
        else:
            current, bound = stored, str(self.before)
        return current <= bound if self.inclusive else current < bound


def format_value(value: object) -> str:
    """Serialize a field value the way every store persists it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, float):
        return repr(value)
    return str(value)


def is_integral(delta: Delta) -> bool:
    return isinstance(delta, int) and not isinstance(delta, bool)


class CounterStore(ABC):
    """Abstract counter store collaborator."""

    @abstractmethod
    async def read(self, key: str) -> dict[str, str]:
        """Return all fields of `key` (empty dict if missing)."""

    @abstractmethod
    async def atomic_increment(
        self,
        key: str,
        fields: Mapping[str, Delta],
        set_fields: Optional[Mapping[str, object]] = None,
    ) -> dict[str, str]:
        """
        Atomically add deltas to fields and write set_fields.

        Integer deltas use integer arithmetic; float/Decimal deltas use
        decimal arithmetic. Returns the full hash after the update.
        """

    @abstractmethod
    async def conditional_reset(
        self,
        key: str,
        guard: Optional[ResetGuard],
        reset_fields: Mapping[str, object],
    ) -> bool:
        """
        Write reset_fields if guard allows (always if guard is None).

        A None value deletes the field. Returns True when applied.
        """

    @abstractmethod
    async def clear(self, key: str, fields: Optional[Iterable[str]] = None) -> None:
        """Delete the given fields, or the whole key when fields is None."""

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryCounterStore(CounterStore):
    """
    Thread-safe process-local counter store.

    Used in tests and single-process deployments. Values are kept as strings
    to match the Redis representation exactly.
    """

    def __init__(self) -> None:
        self._data: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()

    async def read(self, key: str) -> dict[str, str]:
        with self._lock:
            return dict(self._data.get(key, {}))

    async def atomic_increment(
        self,
        key: str,
        fields: Mapping[str, Delta],
        set_fields: Optional[Mapping[str, object]] = None,
    ) -> dict[str, str]:
        with self._lock:
            record = self._data.setdefault(key, {})
            for name, delta in fields.items():
                current = record.get(name) or "0"
                if is_integral(delta) and current.lstrip("-").isdigit():
                    record[name] = str(int(current) + delta)
                else:
                    record[name] = str(Decimal(current) + Decimal(str(delta)))
            for name, value in (set_fields or {}).items():
                record[name] = format_value(value)
            return dict(record)

    async def conditional_reset(
        self,
        key: str,
        guard: Optional[ResetGuard],
        reset_fields: Mapping[str, object],
    ) -> bool:
        with self._lock:
            record = self._data.setdefault(key, {})
            if guard is not None and not guard.allows(record.get(guard.field)):
                return False
            for name, value in reset_fields.items():
                if value is None:
                    record.pop(name, None)
                else:
                    record[name] = format_value(value)
            return True

    async def clear(self, key: str, fields: Optional[Iterable[str]] = None) -> None:
        with self._lock:
            if fields is None:
                self._data.pop(key, None)
                return
            record = self._data.get(key)
            if record is None:
                return
            for name in fields:
                record.pop(name, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)
