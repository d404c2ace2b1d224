"""
auth/errors.py -- The closed set of expected authentication failures.

Expected failures (wrong password, locked account, stale token) are not
exceptions here. Service operations return Ok(value) or Err(AuthError) and
the route layer decides how each variant becomes an HTTP response. Genuine
faults (database down, programming errors) still raise and reach the generic
500 handler in api/main.py.

Each AuthError member carries:
  code        -- stable machine-readable identifier sent to clients
  status_code -- HTTP status used by the route layer
  message     -- safe, user-facing text (never internal detail)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class AuthError(Enum):
    INVALID_CREDENTIALS = ("AUTH_001", 401, "Invalid email or password")
    UNAUTHORIZED = ("AUTH_002", 401, "You must be logged in to access this resource")
    TOKEN_EXPIRED = ("AUTH_003", 401, "Your session has expired. Please log in again")
    TOKEN_INVALID = ("AUTH_004", 401, "Invalid or malformed token")
    EMAIL_ALREADY_EXISTS = ("AUTH_005", 409, "Email is already registered")
    ACCOUNT_LOCKED = ("AUTH_006", 429, "Account is locked due to too many login attempts")
    TOKEN_REVOKED = ("AUTH_007", 401, "This session is no longer valid. Please log in again")
    SAME_PASSWORD = ("VALIDATION_013", 400, "New password must be different from current password")
    USER_NOT_FOUND = ("NOT_FOUND_001", 404, "User not found")
    RESET_TOKEN_NOT_FOUND = ("NOT_FOUND_004", 404, "Password reset token not found or expired")

    def __init__(self, code: str, status_code: int, message: str) -> None:
        self.code = code
        self.status_code = status_code
        self.message = message

    def envelope(self) -> dict:
        """Return the uniform {code, message, statusCode} error body."""
        return {"code": self.code, "message": self.message, "statusCode": self.status_code}


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: AuthError


Result = Union[Ok[T], Err]
