"""Unit tests for session request normalization."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.schemas.session import (
    CreateSessionRequest,
    JoinSessionRequest,
    JoinSessionResponse,
    LeaveSessionRequest,
)


def test_join_request_normalizes_fields() -> None:
    """Code and color are uppercased; display name is trimmed."""
    payload = JoinSessionRequest.model_validate(
        {"code": " ab-cde ", "colorHex": "#a1b2c3", "displayName": "  Ada  "}
    )

    assert payload.code == "ABCDE"
    assert payload.color_hex == "#A1B2C3"
    assert payload.display_name == "Ada"


def test_join_request_blank_display_name_becomes_none() -> None:
    """Whitespace-only names are treated as absent."""
    payload = JoinSessionRequest.model_validate(
        {"code": "ABCDE", "colorHex": "#FFFFFF", "displayName": "   "}
    )

    assert payload.display_name is None


@pytest.mark.parametrize(
    "body",
    [
        {"code": "AB0DE", "colorHex": "#FFFFFF"},
        {"code": "ABCD", "colorHex": "#FFFFFF"},
        {"code": "ABCDE", "colorHex": "FFFFFF1"},
        {"code": "ABCDE", "colorHex": "#GGGGGG"},
        {"code": "ABCDE", "colorHex": "#FFFFFF", "displayName": "x" * 51},
    ],
)
def test_join_request_rejects_invalid_input(body: dict[str, str]) -> None:
    """Ambiguous code symbols, bad colors and long names are rejected."""
    with pytest.raises(ValidationError):
        JoinSessionRequest.model_validate(body)


def test_create_request_only_requires_positive_capacity() -> None:
    """maxParticipants is optional; the upper bound belongs to the configured service limit."""
    assert CreateSessionRequest.model_validate({}).max_participants is None
    assert CreateSessionRequest.model_validate({"maxParticipants": 12}).max_participants == 12
    with pytest.raises(ValidationError):
        CreateSessionRequest.model_validate({"maxParticipants": 0})
    assert CreateSessionRequest.model_validate({"maxParticipants": 60}).max_participants == 60


def test_leave_request_requires_jwt_shape() -> None:
    """Leave tokens must look like a compact JWS."""
    LeaveSessionRequest.model_validate({"token": "aaaa.bbbb.cccc"})
    with pytest.raises(ValidationError):
        LeaveSessionRequest.model_validate({"token": "short"})
    with pytest.raises(ValidationError):
        LeaveSessionRequest.model_validate({"token": "no-dots-at-all-here"})


def test_responses_serialize_camel_case() -> None:
    """Response bodies use camelCase keys."""
    body = JoinSessionResponse(
        participant_id=1,
        session_id=2,
        token="a.b.c",
        expires_at="2026-10-19T12:00:00Z",
    ).model_dump(by_alias=True)

    assert set(body) == {"participantId", "sessionId", "token", "expiresAt"}
