"""Access-token issuance and verification for authenticated principals."""

from __future__ import annotations

import hmac
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Any
from uuid import uuid4

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError

from app.config import get_settings

DEFAULT_JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"


class TokenValidationError(Exception):
    """Raised when JWT validation fails."""

    def __init__(self, detail: str, code: str) -> None:
        super().__init__(detail)
        self.detail = detail
        self.code = code


class JWTService:
    """Service for issuing and verifying HS256 access tokens shared with the auth system."""

    def __init__(
        self,
        secret: str,
        access_token_ttl_seconds: int = 900,
        algorithm: str = DEFAULT_JWT_ALGORITHM,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._access_token_ttl_seconds = access_token_ttl_seconds

    def issue_access_token(
        self,
        user_id: int,
        role: str,
        expires_in_seconds: int | None = None,
        additional_claims: dict[str, Any] | None = None,
    ) -> str:
        """Issue a signed access token with required claims."""
        issued_at = datetime.now(UTC)
        lifetime = (
            self._access_token_ttl_seconds if expires_in_seconds is None else expires_in_seconds
        )
        expires_at = issued_at + timedelta(seconds=lifetime)
        payload: dict[str, Any] = {
            "jti": str(uuid4()),
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "sub": str(user_id),
            "role": role,
            "type": ACCESS_TOKEN_TYPE,
        }
        if additional_claims:
            for key, value in additional_claims.items():
                if key in payload:
                    continue
                payload[key] = value
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify_access_token(self, token: str) -> dict[str, Any]:
        """Verify token signature, expiry, type and required claims."""
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise TokenValidationError("Invalid token.", "invalid_token") from exc
        algorithm = str(header.get("alg", ""))
        if not hmac.compare_digest(algorithm, self._algorithm):
            raise TokenValidationError("Invalid token algorithm.", "invalid_token")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={
                    "verify_aud": False,
                    "require_jti": True,
                    "require_iat": True,
                    "require_exp": True,
                    "require_sub": True,
                },
            )
        except ExpiredSignatureError as exc:
            raise TokenValidationError("Token has expired.", "token_expired") from exc
        except JWTError as exc:
            raise TokenValidationError("Invalid token.", "invalid_token") from exc

        token_type = str(payload.get("type", ""))
        if not hmac.compare_digest(token_type, ACCESS_TOKEN_TYPE):
            raise TokenValidationError("Invalid token type.", "invalid_token")
        if not str(payload.get("sub", "")).isdigit():
            raise TokenValidationError("Invalid token.", "invalid_token")
        if not isinstance(payload.get("role"), str):
            raise TokenValidationError("Invalid token.", "invalid_token")
        return payload


@lru_cache
def get_jwt_service() -> JWTService:
    """Build and cache the JWT service from application settings."""
    settings = get_settings()
    return JWTService(
        secret=settings.jwt.secret.get_secret_value(),
        access_token_ttl_seconds=settings.jwt.access_token_ttl_seconds,
        algorithm=settings.jwt.algorithm,
    )
