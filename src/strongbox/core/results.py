"""
Typed results for expected domain outcomes.

A wrong password or a corrupted backup is not a crash: operations that can
fail that way return a :class:`Result`. Infrastructure problems
(:class:`StorageError`, :class:`ConfigurationError`) are not captured and
keep propagating as exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

from .exceptions import (
    AuthenticationError,
    BackupError,
    DecryptionError,
    IntegrityCheckFailedError,
    OperationFailure,
    RecordNotFoundError,
)

T = TypeVar("T")


class Outcome(Enum):
    OK = "ok"
    AUTH_FAILURE = AuthenticationError.outcome
    DECRYPTION_FAILURE = DecryptionError.outcome
    INTEGRITY_FAILURE = IntegrityCheckFailedError.outcome
    NOT_FOUND = RecordNotFoundError.outcome
    BACKUP_FAILURE = BackupError.outcome


_ERRORS = {
    Outcome.AUTH_FAILURE: AuthenticationError,
    Outcome.DECRYPTION_FAILURE: DecryptionError,
    Outcome.INTEGRITY_FAILURE: IntegrityCheckFailedError,
    Outcome.NOT_FOUND: RecordNotFoundError,
    Outcome.BACKUP_FAILURE: BackupError,
}


@dataclass(frozen=True)
class Result(Generic[T]):
    outcome: Outcome
    value: Optional[T] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.OK

    def __bool__(self) -> bool:
        return self.ok

    def unwrap(self) -> T:
        """Return the value, or raise the exception matching the outcome."""
        if self.ok:
            return self.value
        raise _ERRORS[self.outcome](self.message)

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(Outcome.OK, value)

    @classmethod
    def failure(cls, outcome: Outcome, message: str = "") -> "Result[T]":
        if outcome is Outcome.OK:
            raise ValueError("failure() needs a non-OK outcome")
        return cls(outcome, None, message)

    @classmethod
    def from_error(cls, error: OperationFailure) -> "Result[T]":
        return cls.failure(Outcome(error.outcome), str(error))

    @classmethod
    def capture(cls, fn: Callable[..., T], *args, **kwargs) -> "Result[T]":
        """Run ``fn`` and fold expected failures into a Result."""
        try:
            return cls.success(fn(*args, **kwargs))
        except OperationFailure as e:
            return cls.from_error(e)
