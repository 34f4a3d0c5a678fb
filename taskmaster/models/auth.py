"""Auth request and response models with validation."""

import re
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import EmailStr, Field, field_validator

from taskmaster.models.common import CamelModel, StrictCamelModel

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")

# bcrypt hashes at most 72 bytes of input
PASSWORD_MAX_BYTES = 72


def _check_username(v: str) -> str:
    v = v.strip()
    if not USERNAME_PATTERN.match(v):
        raise ValueError(
            "Username can only contain letters, numbers, and underscores"
        )
    return v


def _check_password(v: str) -> str:
    if not v.strip():
        raise ValueError("Password cannot be empty or whitespace only")
    if len(v.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Password cannot exceed {PASSWORD_MAX_BYTES} bytes")
    return v


def _check_name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Name cannot be empty")
    return v


class RegisterRequest(CamelModel):
    """New account details.

    Attributes:
        username: 3-30 chars, letters, digits and underscores
        email: Unique email address (stored lower-cased)
        first_name: Given name (max 50 chars)
        last_name: Family name (max 50 chars)
        password: Plain-text password (at least 6 chars, at most 72 bytes)
    """

    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=6, max_length=72)

    @field_validator("username")
    @classmethod
    def username_valid_chars(cls, v: str) -> str:
        return _check_username(v)

    @field_validator("email")
    @classmethod
    def email_lowercase(cls, v: str) -> str:
        return v.lower()

    @field_validator("first_name", "last_name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        return _check_name(v)

    @field_validator("password")
    @classmethod
    def password_not_empty(cls, v: str) -> str:
        return _check_password(v)


class LoginRequest(CamelModel):
    """Login credentials. ``username`` may also be the account email."""

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshRequest(CamelModel):
    """Body of POST /api/auth/refresh."""

    refresh_token: Optional[str] = None


class LogoutRequest(CamelModel):
    """Body of POST /api/auth/logout. The token is optional."""

    refresh_token: Optional[str] = None


class UpdateProfileRequest(StrictCamelModel):
    """Profile fields a user may change. Unknown keys are rejected."""

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    preferences: Optional[dict[str, Any]] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            raise ValueError("Name cannot be null")
        return _check_name(v)

    @field_validator("email")
    @classmethod
    def email_lowercase(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            raise ValueError("Email cannot be null")
        return v.lower()

    @field_validator("preferences")
    @classmethod
    def preferences_not_null(cls, v: Optional[dict]) -> Optional[dict]:
        if v is None:
            raise ValueError("Preferences cannot be null")
        return v


class ChangePasswordRequest(CamelModel):
    """Current and replacement password."""

    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=72)

    @field_validator("new_password")
    @classmethod
    def password_not_empty(cls, v: str) -> str:
        return _check_password(v)


class UserSummary(CamelModel):
    """Compact user representation returned with a token pair."""

    id: UUID
    username: str
    email: str
    first_name: str
    last_name: str
    preferences: dict[str, Any]


class UserProfile(UserSummary):
    """Full profile returned by /api/auth/me."""

    full_name: str
    last_active: datetime
    created_at: datetime
