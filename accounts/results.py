"""
accounts/results.py -- Outcome and error-kind types for account operations.

Every public AccountService operation that can fail returns an Outcome rather
than a bare bool. An Outcome is truthy exactly when the operation succeeded,
so callers that only need the verdict can keep writing `if service.create_...`,
while tests and the API layer can tell a business rejection (CONSTRAINT_VIOLATION,
AUTH_FAILED) apart from an infrastructure failure (STORE_UNAVAILABLE).

Exceptions are reserved for two cases:
  InvalidInputError  -- raised by the credential helpers on empty/oversized input.
  IndeterminateError -- raised by existence checks when the store cannot answer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    CONSTRAINT_VIOLATION = "constraint_violation"
    STORE_UNAVAILABLE = "store_unavailable"
    NOT_FOUND = "not_found"
    AUTH_FAILED = "auth_failed"
    INDETERMINATE = "indeterminate"


class AccountError(Exception):
    """Base class for account-core exceptions. Carries the matching ErrorKind."""

    kind: ErrorKind = ErrorKind.STORE_UNAVAILABLE

    def __init__(self, message: str, kind: Optional[ErrorKind] = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class InvalidInputError(AccountError, ValueError):
    kind = ErrorKind.INVALID_INPUT


class IndeterminateError(AccountError):
    """The store could not answer a yes/no question (e.g. username_exists).

    Raised instead of answering False so a transient store error can never
    be mistaken for "does not exist" and let a duplicate through.
    """

    kind = ErrorKind.INDETERMINATE


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of an account operation: a value on success, an ErrorKind on failure.

    message is a short operator-facing description. It never contains a
    plaintext password or a credential hash.
    """

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, value: Optional[T] = None) -> Outcome[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorKind, message: str = "") -> Outcome[T]:
        return cls(error=error, message=message)

    def unwrap(self) -> T:
        """Return the value, or raise AccountError carrying the failure kind."""
        if self.error is not None:
            raise AccountError(self.message or self.error.value, kind=self.error)
        return self.value  # type: ignore[return-value]
