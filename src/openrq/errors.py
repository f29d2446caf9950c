"""Error taxonomy and the ``Outcome`` result type returned by store operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

__all__ = [
    "StoreError",
    "ConfigurationError",
    "SchemaError",
    "QueryError",
    "DecodeError",
    "IntegrityError",
    "Outcome",
]

T = TypeVar("T")


class StoreError(RuntimeError):
    """Base class for every failure reported by the project store."""


class ConfigurationError(StoreError):
    """Raised when the SQLite driver is unavailable or unusable."""


class SchemaError(StoreError):
    """Raised when schema creation fails or an existing file lacks tables."""

    def __init__(self, message: str, *, table: str | None = None):
        self.table = table
        super().__init__(message)


class QueryError(StoreError):
    """An execute/query call failed; carries the engine's error text."""

    def __init__(self, message: str, *, step: str | None = None, sql: str | None = None):
        self.step = step
        self.sql = sql
        super().__init__(f"{step}: {message}" if step else message)


class DecodeError(StoreError):
    """A stored row could not be converted into an in-memory record."""


class IntegrityError(StoreError):
    """A referenced row is missing or a structural rule would be broken."""


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Success/failure result of a store operation.

    Store operations never raise across the store boundary; callers inspect
    ``ok`` or call :meth:`unwrap` to turn a failure back into an exception.
    """

    ok: bool
    value: T | None = None
    error: StoreError | None = None

    @classmethod
    def success(cls, value: Any = None) -> Outcome:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: StoreError) -> Outcome:
        return cls(ok=False, error=error)

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""

        if not self.ok:
            if self.error is None:
                raise StoreError("failed outcome carries no error")
            raise self.error
        return self.value  # type: ignore[return-value]

    def __bool__(self) -> bool:
        return self.ok
