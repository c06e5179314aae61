"""Schemas for staff authentication and registration endpoints."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Literal

from pydantic import Field, field_validator

from app.models.user import UserRole
from app.schemas.common import CamelModel, normalize_email

_PASSWORD_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[0-9]"), "Password must contain at least one number"),
    (re.compile(r"[^A-Za-z0-9]"), "Password must contain at least one special character"),
)


class LoginRequest(CamelModel):
    """Password login payload."""

    email: str = Field(min_length=5, max_length=254)
    password: str = Field(min_length=8, max_length=128)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return normalize_email(value)


class RegisterRequest(CamelModel):
    """Account creation from a consumed invitation."""

    token_hash: str = Field(min_length=64, max_length=64, pattern=r"^[0-9a-f]{64}$")
    password: str = Field(min_length=8, max_length=128)

    @field_validator("password")
    @classmethod
    def _enforce_password_policy(cls, value: str) -> str:
        for pattern, message in _PASSWORD_RULES:
            if not pattern.search(value):
                raise ValueError(message)
        return value


class RefreshTokenRequest(CamelModel):
    """Refresh payload; the ``refresh_token`` cookie is used when the body omits it."""

    refresh_token: str | None = Field(default=None, max_length=256)


class TokenPairResponse(CamelModel):
    """Access and refresh token response."""

    access_token: str
    refresh_token: str
    token_type: Literal["bearer"] = "bearer"
    expires_in: int


class UserSummary(CamelModel):
    id: int
    email: str
    role: UserRole


class RegisteredUser(UserSummary):
    created_at: datetime


class RegisterResponse(CamelModel):
    message: str
    user: RegisteredUser


class ProfileResponse(CamelModel):
    message: str
    user: UserSummary
