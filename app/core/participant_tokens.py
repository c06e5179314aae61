"""Participant credential signing, verification, and storage hashing."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from hashlib import sha256
from typing import Any

from jose import jwt
from jose.exceptions import JWTError

from app.config import get_settings

PARTICIPANT_TOKEN_ALGORITHM = "HS256"


class ParticipantTokenConfigError(RuntimeError):
    """Raised when the issuer is built without a usable secret or TTL."""


class ParticipantTokenError(Exception):
    """Raised when a presented participant credential cannot be trusted."""

    def __init__(self, detail: str, code: str) -> None:
        super().__init__(detail)
        self.detail = detail
        self.code = code


@dataclass(frozen=True)
class SignedParticipantToken:
    """Signing result; `raw_token` goes to the caller once, `token_hash` to storage."""

    raw_token: str
    token_hash: str
    expires_at: datetime


class ParticipantTokenIssuer:
    """Issue and verify HS256 credentials scoped to (session, participant)."""

    def __init__(self, secret: str, ttl_minutes: int) -> None:
        if not isinstance(secret, str) or not secret.strip():
            raise ParticipantTokenConfigError("Participant token secret is required.")
        if isinstance(ttl_minutes, bool) or not isinstance(ttl_minutes, int) or ttl_minutes <= 0:
            raise ParticipantTokenConfigError(
                f"Participant token TTL must be a positive integer, got: {ttl_minutes!r}"
            )
        self._secret = secret
        self._ttl_minutes = ttl_minutes

    def sign(
        self,
        session_id: int,
        participant_id: int,
        ttl_minutes: int | None = None,
    ) -> SignedParticipantToken:
        """Sign a credential embedding sid, pid and a Unix-seconds exp claim."""
        lifetime = self._ttl_minutes if ttl_minutes is None else ttl_minutes
        if isinstance(lifetime, bool) or not isinstance(lifetime, int) or lifetime <= 0:
            raise ParticipantTokenConfigError(
                f"Participant token TTL must be a positive integer, got: {lifetime!r}"
            )

        issued_at = datetime.now(UTC)
        expires_at = issued_at + timedelta(minutes=lifetime)
        payload = {
            "sid": session_id,
            "pid": participant_id,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        raw_token = jwt.encode(payload, self._secret, algorithm=PARTICIPANT_TOKEN_ALGORITHM)
        return SignedParticipantToken(
            raw_token=raw_token,
            token_hash=self.hash(raw_token),
            expires_at=expires_at,
        )

    def verify(self, raw_token: str) -> dict[str, Any]:
        """Verify signature and expiry; every failure surfaces as invalid_token."""
        try:
            payload = jwt.decode(
                raw_token,
                self._secret,
                algorithms=[PARTICIPANT_TOKEN_ALGORITHM],
                options={"verify_aud": False, "require_exp": True, "require_iat": True},
            )
        except JWTError as exc:
            raise ParticipantTokenError("Invalid token.", "invalid_token") from exc

        session_id = payload.get("sid")
        participant_id = payload.get("pid")
        if not isinstance(session_id, int) or not isinstance(participant_id, int):
            raise ParticipantTokenError("Invalid token.", "invalid_token")
        return payload

    @staticmethod
    def hash(raw_token: str) -> str:
        """SHA-256 hex digest used for storage and lookup."""
        return sha256(raw_token.encode("utf-8")).hexdigest()


@lru_cache
def get_participant_token_issuer() -> ParticipantTokenIssuer:
    """Build and cache the issuer from settings."""
    settings = get_settings()
    return ParticipantTokenIssuer(
        secret=settings.jwt.secret.get_secret_value(),
        ttl_minutes=settings.participant_tokens.ttl_minutes,
    )
