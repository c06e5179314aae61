"""Schemas for staff invitation endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field, field_validator

from app.models.user import UserRole
from app.schemas.common import CamelModel, normalize_email


class CreateInvitationRequest(CamelModel):
    """Invitation payload."""

    email: str = Field(min_length=5, max_length=254)
    role: UserRole

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return normalize_email(value)


class InvitationSummary(CamelModel):
    id: int
    email: str
    role: UserRole
    created_at: datetime


class CreateInvitationResponse(CamelModel):
    """Created invitation; ``devToken`` only appears in development without email delivery."""

    message: str
    invitation: InvitationSummary
    dev_token: str | None = None


class ConsumeInvitationResponse(CamelModel):
    message: str
    token_hash: str
