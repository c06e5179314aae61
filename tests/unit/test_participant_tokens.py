"""Unit tests for participant credential signing and verification."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from hashlib import sha256

import pytest
from jose import jwt as jose_jwt

from app.core.participant_tokens import (
    ParticipantTokenConfigError,
    ParticipantTokenError,
    ParticipantTokenIssuer,
    get_participant_token_issuer,
)

SECRET = "participant-secret-value"


@pytest.fixture
def issuer() -> ParticipantTokenIssuer:
    """Issuer with an eight-hour default lifetime."""
    return ParticipantTokenIssuer(secret=SECRET, ttl_minutes=480)


def test_sign_embeds_session_and_participant_claims(issuer: ParticipantTokenIssuer) -> None:
    """Signed credential carries sid, pid and Unix-seconds timestamps."""
    signed = issuer.sign(session_id=12, participant_id=34)
    claims = issuer.verify(signed.raw_token)

    assert claims["sid"] == 12
    assert claims["pid"] == 34
    assert isinstance(claims["iat"], int)
    assert claims["exp"] == int(signed.expires_at.timestamp())
    remaining = signed.expires_at - datetime.now(UTC)
    assert timedelta(minutes=479) < remaining <= timedelta(minutes=480)


def test_sign_returns_hash_of_raw_token(issuer: ParticipantTokenIssuer) -> None:
    """Stored hash is the SHA-256 hex digest of the raw credential."""
    signed = issuer.sign(session_id=1, participant_id=2)

    assert signed.token_hash == sha256(signed.raw_token.encode("utf-8")).hexdigest()
    assert signed.token_hash == ParticipantTokenIssuer.hash(signed.raw_token)
    assert len(signed.token_hash) == 64


def test_sign_honors_ttl_override(issuer: ParticipantTokenIssuer) -> None:
    """Per-call TTL override replaces the configured lifetime."""
    signed = issuer.sign(session_id=1, participant_id=2, ttl_minutes=5)

    assert signed.expires_at - datetime.now(UTC) <= timedelta(minutes=5)


def test_verify_rejects_expired_token(issuer: ParticipantTokenIssuer) -> None:
    """Expired credentials fail with invalid_token, not a distinct code."""
    now = int(datetime.now(UTC).timestamp())
    token = jose_jwt.encode(
        {"sid": 1, "pid": 2, "iat": now - 120, "exp": now - 60},
        SECRET,
        algorithm="HS256",
    )

    with pytest.raises(ParticipantTokenError) as exc_info:
        issuer.verify(token)

    assert exc_info.value.code == "invalid_token"


def test_verify_rejects_foreign_signature(issuer: ParticipantTokenIssuer) -> None:
    """Credentials signed with another secret are rejected."""
    other = ParticipantTokenIssuer(secret="another-secret", ttl_minutes=10)
    signed = other.sign(session_id=1, participant_id=2)

    with pytest.raises(ParticipantTokenError):
        issuer.verify(signed.raw_token)


def test_verify_rejects_missing_scoping_claims(issuer: ParticipantTokenIssuer) -> None:
    """A validly signed token without integer sid/pid is not a participant credential."""
    now = int(datetime.now(UTC).timestamp())
    token = jose_jwt.encode(
        {"sid": "1", "iat": now, "exp": now + 60},
        SECRET,
        algorithm="HS256",
    )

    with pytest.raises(ParticipantTokenError):
        issuer.verify(token)


def test_verify_rejects_malformed_input(issuer: ParticipantTokenIssuer) -> None:
    """Garbage input surfaces as invalid_token."""
    with pytest.raises(ParticipantTokenError) as exc_info:
        issuer.verify("not-a-jwt")

    assert exc_info.value.code == "invalid_token"


@pytest.mark.parametrize(("secret", "ttl"), [("", 10), ("   ", 10), (SECRET, 0), (SECRET, True)])
def test_constructor_fails_fast_on_bad_config(secret: str, ttl: int) -> None:
    """Blank secrets and non-positive TTLs are configuration errors."""
    with pytest.raises(ParticipantTokenConfigError):
        ParticipantTokenIssuer(secret=secret, ttl_minutes=ttl)


def test_sign_rejects_bad_ttl_override(issuer: ParticipantTokenIssuer) -> None:
    """Overrides are held to the same TTL rule as configuration."""
    with pytest.raises(ParticipantTokenConfigError):
        issuer.sign(session_id=1, participant_id=2, ttl_minutes=-1)


def test_get_participant_token_issuer_reads_settings(monkeypatch) -> None:
    """Cached issuer uses the JWT secret and configured TTL."""
    monkeypatch.setenv("PARTICIPANT_TOKENS__TTL_MINUTES", "15")
    from app.config import get_settings

    get_settings.cache_clear()
    get_participant_token_issuer.cache_clear()

    signed = get_participant_token_issuer().sign(session_id=1, participant_id=1)

    assert signed.expires_at - datetime.now(UTC) <= timedelta(minutes=15)
