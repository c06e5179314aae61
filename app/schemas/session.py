"""Schemas for workshop session endpoints."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Literal

from pydantic import Field, field_validator

from app.core.session_codes import SessionCodeGenerator, get_session_code_generator
from app.models.workshop_session import SessionStatus
from app.schemas.common import CamelModel

_COLOR_HEX_PATTERN = re.compile(r"^#[0-9A-F]{6}$")
_JWT_PATTERN = r"^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+$"


class CreateSessionRequest(CamelModel):
    """Session creation payload."""

    max_participants: int | None = Field(default=None, ge=1)


class CreateSessionResponse(CamelModel):
    """Newly created session."""

    id: int
    code: str
    status: SessionStatus
    max_participants: int
    created_at: datetime


class JoinSessionRequest(CamelModel):
    """Participant join payload."""

    code: str = Field(min_length=1, max_length=64)
    color_hex: str = Field(min_length=7, max_length=7)
    display_name: str | None = Field(default=None, max_length=120)

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        normalized = SessionCodeGenerator.normalize(value)
        generator = get_session_code_generator()
        if not generator.is_valid(normalized):
            raise ValueError(generator.describe_format())
        return normalized

    @field_validator("color_hex")
    @classmethod
    def _normalize_color(cls, value: str) -> str:
        normalized = value.strip().upper()
        if not _COLOR_HEX_PATTERN.match(normalized):
            raise ValueError("colorHex must be a 6-digit hex color like #A1B2C3.")
        return normalized

    @field_validator("display_name")
    @classmethod
    def _normalize_display_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        trimmed = value.strip()
        if not trimmed:
            return None
        if len(trimmed) > 50:
            raise ValueError("displayName must be at most 50 characters.")
        return trimmed


class JoinSessionResponse(CamelModel):
    """Join result carrying the one-time participant credential."""

    participant_id: int
    session_id: int
    code: str
    display_name: str | None
    token: str
    expires_at: datetime


class LeaveSessionRequest(CamelModel):
    """Participant leave payload."""

    token: str = Field(min_length=10, max_length=4096, pattern=_JWT_PATTERN)


class LeaveSessionResponse(CamelModel):
    """Leave success response."""

    left: Literal[True] = True


class UpdateSessionStatusRequest(CamelModel):
    """Status transition payload."""

    status: SessionStatus


class SessionStatusResponse(CamelModel):
    """Session status after a transition."""

    id: int
    status: SessionStatus
    code: str


class SessionOwnerResponse(CamelModel):
    """Session creator summary."""

    id: int
    email: str
    role: str


class SessionDetailsResponse(CamelModel):
    """Session summary with live participant count."""

    id: int
    code: str
    status: SessionStatus
    max_participants: int
    participant_count: int
    created_at: datetime
    created_by: SessionOwnerResponse | None = None


class ParticipantResponse(CamelModel):
    """Participant list entry."""

    id: int
    display_name: str | None
    color_hex: str
    joined_at: datetime
