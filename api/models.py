"""
API request and response models for the finder auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation (including fields such as password_hash that
must never be serialized). Route handlers map between the two.

JSON bodies use camelCase (displayName, refreshToken, ...). The models keep
snake_case attributes and declare camelCase aliases via to_camel.
"""

import re
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Pragmatic address check: one "@", no whitespace, a dot in the domain part.
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 1024


class _Request(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class _Response(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


def _normalize_email(value: str) -> str:
    """Trim and lower-case before the format check so the stored form is canonical."""
    normalized = str(value).strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise ValueError("Invalid email address")
    return normalized


# Annotated type shared by every request that carries an email address.
_Email = Annotated[str, Field(min_length=5, max_length=255), AfterValidator(_normalize_email)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(_Request):
    """Request body for POST /auth/register."""

    email: _Email
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    display_name: str = Field(min_length=2, max_length=100)

    @field_validator("display_name")
    @classmethod
    def strip_display_name(cls, value: str) -> str:
        stripped = value.strip()
        if len(stripped) < 2:
            raise ValueError("Display name must be 2-100 characters")
        return stripped


class LoginRequest(_Request):
    """Request body for POST /auth/login. Any non-empty password is accepted here."""

    email: _Email
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)


class RefreshRequest(_Request):
    refresh_token: str = Field(min_length=1, max_length=4096)


class LogoutRequest(_Request):
    """Request body for POST /auth/logout. Omit refreshToken to end every session."""

    refresh_token: Optional[str] = Field(default=None, min_length=1, max_length=4096)


class ChangePasswordRequest(_Request):
    current_password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)
    new_password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)


class ForgotPasswordRequest(_Request):
    email: _Email


class ResetPasswordRequest(_Request):
    token: str = Field(min_length=1, max_length=512)
    new_password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserPublic(_Response):
    """The only user fields that ever leave the server."""

    id: str
    email: str
    display_name: str

    @classmethod
    def from_user(cls, user: User) -> "UserPublic":
        return cls(id=user.id, email=user.email, display_name=user.display_name)


class TokenPairResponse(_Response):
    """Response for POST /auth/refresh."""

    access_token: str
    refresh_token: str


class AuthResponse(_Response):
    """Response for POST /auth/register and POST /auth/login."""

    access_token: str
    refresh_token: str
    user: UserPublic


class MessageResponse(_Response):
    message: str


class ErrorResponse(_Response):
    """Uniform error envelope returned on every 4xx/5xx response."""

    code: str
    message: str
    status_code: int


class HealthResponse(_Response):
    """Response for GET /health."""

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
