"""Staff login, refresh rotation, and logout."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import lru_cache

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.jwt import JWTService, get_jwt_service
from app.core.refresh_tokens import RefreshTokenStore, get_refresh_token_store
from app.models.user import User
from app.services.user_service import UserService, get_user_service

logger = structlog.get_logger(__name__)

INVALID_REFRESH_TOKEN = "Invalid or expired refresh token"


class AuthServiceError(Exception):
    """Raised when a credential cannot be exchanged."""

    def __init__(self, detail: str, code: str, status_code: int) -> None:
        super().__init__(detail)
        self.detail = detail
        self.code = code
        self.status_code = status_code


@dataclass(frozen=True)
class TokenPair:
    """Access token plus the opaque refresh token that can renew it."""

    access_token: str
    refresh_token: str
    expires_in: int


@dataclass(frozen=True)
class LoginResult:
    user: User
    tokens: TokenPair


class AuthService:
    """Exchange staff credentials for tokens and retire refresh tokens."""

    def __init__(
        self,
        jwt_service: JWTService,
        refresh_tokens: RefreshTokenStore,
        user_service: UserService,
        access_token_ttl_seconds: int = 900,
    ) -> None:
        self._jwt = jwt_service
        self._refresh_tokens = refresh_tokens
        self._users = user_service
        self._access_token_ttl_seconds = access_token_ttl_seconds

    async def login(self, db_session: AsyncSession, email: str, password: str) -> LoginResult:
        """Verify a password and open a refresh-token chain."""
        user = await self._users.authenticate_user(
            db_session=db_session, email=email, password=password
        )
        if user is None:
            raise AuthServiceError("Invalid credentials", "invalid_credentials", 401)

        try:
            raw_refresh = await self._refresh_tokens.issue(db_session, user.id)
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()

        logger.info("user_logged_in", user_id=user.id)
        return LoginResult(user=user, tokens=self._token_pair(user, raw_refresh))

    async def refresh(self, db_session: AsyncSession, raw_refresh_token: str) -> TokenPair:
        """Rotate a refresh token; a rotated or revoked token never works twice."""
        if not self._refresh_tokens.is_well_formed(raw_refresh_token):
            raise AuthServiceError("Invalid refresh token format", "bad_request", 400)

        try:
            token_row = await self._refresh_tokens.find_active(
                db_session, raw_refresh_token, for_update=True
            )
            if token_row is None:
                raise AuthServiceError(INVALID_REFRESH_TOKEN, "invalid_token", 401)
            user = await self._users.get_active_user(db_session, token_row.user_id)
            if user is None:
                raise AuthServiceError("User not found or disabled", "invalid_token", 401)
            raw_refresh = await self._refresh_tokens.rotate(db_session, token_row)
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()

        logger.info("refresh_token_rotated", user_id=user.id)
        return self._token_pair(user, raw_refresh)

    async def logout(self, db_session: AsyncSession, raw_refresh_token: str | None) -> bool:
        """Revoke the presented refresh token; unknown or malformed tokens are ignored."""
        if not raw_refresh_token or not self._refresh_tokens.is_well_formed(raw_refresh_token):
            return False
        try:
            revoked = await self._refresh_tokens.revoke(db_session, raw_refresh_token)
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()
        return revoked

    async def logout_all(self, db_session: AsyncSession, user_id: int) -> int:
        """Revoke every active refresh token the user holds."""
        try:
            revoked = await self._refresh_tokens.revoke_all_for_user(db_session, user_id)
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()
        logger.info("user_logged_out_everywhere", user_id=user_id, revoked=revoked)
        return revoked

    async def get_profile(self, db_session: AsyncSession, user_id: int) -> User:
        user = await self._users.get_active_user(db_session, user_id)
        if user is None:
            raise AuthServiceError("User not found or disabled", "invalid_token", 401)
        return user

    async def cleanup_refresh_tokens(
        self,
        db_session: AsyncSession,
        grace_seconds: int,
    ) -> int:
        """Delete expired refresh tokens and those retired more than ``grace_seconds`` ago."""
        older_than = datetime.now(UTC) - timedelta(seconds=grace_seconds)
        try:
            deleted = await self._refresh_tokens.cleanup(db_session, older_than)
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()
        logger.info("refresh_token_cleanup_completed", deleted=deleted)
        return deleted

    def _token_pair(self, user: User, raw_refresh: str) -> TokenPair:
        access_token = self._jwt.issue_access_token(
            user_id=user.id,
            role=user.role.value,
            additional_claims={"email": user.email},
        )
        return TokenPair(
            access_token=access_token,
            refresh_token=raw_refresh,
            expires_in=self._access_token_ttl_seconds,
        )


@lru_cache
def get_auth_service() -> AuthService:
    """Create and cache the auth service."""
    return AuthService(
        jwt_service=get_jwt_service(),
        refresh_tokens=get_refresh_token_store(),
        user_service=get_user_service(),
        access_token_ttl_seconds=get_settings().jwt.access_token_ttl_seconds,
    )
