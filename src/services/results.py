"""Result type returned by the auth and payment coordinators.

Expected negative outcomes (duplicate email, wrong password, unknown
payment) come back as a failed ``ServiceResult`` instead of an exception.
Gateway faults are also reported this way, flagged by ``ErrorKind.is_fault``
so callers can tell an infrastructure problem from a business outcome.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Why a coordinator operation did not succeed."""

    VALIDATION_ERROR = "validation_error"
    DUPLICATE_EMAIL = "duplicate_email"
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_TOKEN = "invalid_token"
    INVALID_REFRESH_TOKEN = "invalid_refresh_token"
    USER_NOT_FOUND = "user_not_found"
    PAYMENT_NOT_FOUND = "payment_not_found"
    FORBIDDEN = "forbidden"
    GATEWAY_ERROR = "gateway_error"
    GATEWAY_AUTH_ERROR = "gateway_auth_error"
    CONFLICT = "conflict"

    @property
    def is_fault(self) -> bool:
        """Check if this kind reports an infrastructure failure."""
        return self in (ErrorKind.GATEWAY_ERROR, ErrorKind.GATEWAY_AUTH_ERROR)


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """Outcome of a coordinator operation: a value or an error kind."""

    value: T | None = None
    error: ErrorKind | None = None
    message: str = ""

    @property
    def is_success(self) -> bool:
        return self.error is None

    @classmethod
    def ok(cls, value: T | None = None, message: str = "") -> "ServiceResult[T]":
        return cls(value=value, message=message)

    @classmethod
    def fail(cls, error: ErrorKind, message: str) -> "ServiceResult[T]":
        return cls(error=error, message=message)
