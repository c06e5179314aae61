"""Unit tests for staff account, invitation, and scenario payloads."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.models.user import UserRole
from app.schemas.auth import LoginRequest, RefreshTokenRequest, RegisterRequest
from app.schemas.invitation import CreateInvitationRequest
from app.schemas.scenario import CreateScenarioRequest, UpdateScenarioRequest

_TOKEN_HASH = "ab" * 32


def test_login_request_normalizes_email() -> None:
    payload = LoginRequest.model_validate(
        {"email": "  Mod@Example.COM ", "password": "whatever1"}
    )

    assert payload.email == "mod@example.com"


def test_invitation_request_rejects_malformed_email() -> None:
    with pytest.raises(ValidationError, match="valid email"):
        CreateInvitationRequest.model_validate({"email": "not-an-email", "role": "MODERATOR"})

    payload = CreateInvitationRequest.model_validate(
        {"email": "New@Example.com", "role": "RESEARCHER"}
    )
    assert payload.email == "new@example.com"
    assert payload.role == UserRole.RESEARCHER


@pytest.mark.parametrize(
    ("password", "message"),
    [
        ("sup3r$ecret", "uppercase"),
        ("SUP3R$ECRET", "lowercase"),
        ("Super$ecret", "number"),
        ("Sup3rSecret", "special character"),
    ],
)
def test_register_request_enforces_password_policy(password: str, message: str) -> None:
    with pytest.raises(ValidationError, match=message):
        RegisterRequest.model_validate({"tokenHash": _TOKEN_HASH, "password": password})


def test_register_request_requires_hex_token_hash() -> None:
    """The token hash is the 64-char lowercase digest handed out by the consume step."""
    accepted = RegisterRequest.model_validate({"tokenHash": _TOKEN_HASH, "password": "Sup3r$ecret"})
    assert accepted.token_hash == _TOKEN_HASH

    for token_hash in (_TOKEN_HASH.upper(), _TOKEN_HASH[:-2], "zz" * 32):
        with pytest.raises(ValidationError):
            RegisterRequest.model_validate({"tokenHash": token_hash, "password": "Sup3r$ecret"})


def test_refresh_request_body_is_optional() -> None:
    assert RefreshTokenRequest.model_validate({}).refresh_token is None


def test_scenario_requests_trim_and_allow_partial_updates() -> None:
    created = CreateScenarioRequest.model_validate(
        {"title": "  Fire drill ", "description": " Evacuate ", "payload": "You smell smoke."}
    )
    assert created.title == "Fire drill"
    assert created.description == "Evacuate"
    assert created.category is None

    with pytest.raises(ValidationError):
        CreateScenarioRequest.model_validate({"title": "   ", "description": "d", "payload": "p"})

    update = UpdateScenarioRequest.model_validate({"category": "safety"})
    assert update.model_dump(exclude_unset=True) == {"category": "safety"}
