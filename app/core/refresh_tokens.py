"""Opaque staff refresh tokens persisted as SHA-256 digests.

Like the participant store, methods run on the caller's ``AsyncSession`` and never commit.
"""

from __future__ import annotations

import re
import secrets
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from hashlib import sha256

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models.refresh_token import RefreshToken, RefreshTokenStatus

REFRESH_TOKEN_BYTES = 32
_REFRESH_TOKEN_PATTERN = re.compile(r"^[0-9a-f]{64}$")


class RefreshTokenStore:
    """Issue, look up, rotate, and revoke refresh-token rows."""

    def __init__(self, ttl_hours: int = 8) -> None:
        self._ttl = timedelta(hours=ttl_hours)

    @staticmethod
    def generate() -> str:
        """Return 32 random bytes as 64 lowercase hex characters."""
        return secrets.token_hex(REFRESH_TOKEN_BYTES)

    @staticmethod
    def is_well_formed(raw_token: str) -> bool:
        return bool(_REFRESH_TOKEN_PATTERN.match(raw_token))

    @staticmethod
    def hash(raw_token: str) -> str:
        return sha256(raw_token.encode("utf-8")).hexdigest()

    async def issue(self, db_session: AsyncSession, user_id: int) -> str:
        """Persist a new ACTIVE token for ``user_id`` and return the raw value."""
        raw_token = self.generate()
        db_session.add(
            RefreshToken(
                user_id=user_id,
                token_hash=self.hash(raw_token),
                status=RefreshTokenStatus.ACTIVE,
                expires_at=datetime.now(UTC) + self._ttl,
            )
        )
        await db_session.flush()
        return raw_token

    async def find_active(
        self,
        db_session: AsyncSession,
        raw_token: str,
        for_update: bool = False,
    ) -> RefreshToken | None:
        """Return the ACTIVE, unexpired row for ``raw_token``."""
        statement = select(RefreshToken).where(
            RefreshToken.token_hash == self.hash(raw_token),
            RefreshToken.status == RefreshTokenStatus.ACTIVE,
            RefreshToken.expires_at > datetime.now(UTC),
        )
        if for_update:
            statement = statement.with_for_update()
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()

    async def rotate(self, db_session: AsyncSession, token_row: RefreshToken) -> str:
        """Mark ``token_row`` ROTATED and issue its successor."""
        token_row.status = RefreshTokenStatus.ROTATED
        token_row.revoked_at = datetime.now(UTC)
        return await self.issue(db_session, token_row.user_id)

    async def revoke(self, db_session: AsyncSession, raw_token: str) -> bool:
        """Revoke one ACTIVE token; return False when nothing matched."""
        result = await db_session.execute(
            update(RefreshToken)
            .where(
                RefreshToken.token_hash == self.hash(raw_token),
                RefreshToken.status == RefreshTokenStatus.ACTIVE,
            )
            .values(status=RefreshTokenStatus.REVOKED, revoked_at=datetime.now(UTC))
        )
        return bool(result.rowcount)

    async def revoke_all_for_user(self, db_session: AsyncSession, user_id: int) -> int:
        result = await db_session.execute(
            update(RefreshToken)
            .where(
                RefreshToken.user_id == user_id,
                RefreshToken.status == RefreshTokenStatus.ACTIVE,
            )
            .values(status=RefreshTokenStatus.REVOKED, revoked_at=datetime.now(UTC))
        )
        return int(result.rowcount or 0)

    async def cleanup(self, db_session: AsyncSession, older_than: datetime) -> int:
        """Delete expired tokens and tokens retired before ``older_than``."""
        retired = RefreshToken.status.in_((RefreshTokenStatus.ROTATED, RefreshTokenStatus.REVOKED))
        result = await db_session.execute(
            delete(RefreshToken).where(
                or_(
                    RefreshToken.expires_at < datetime.now(UTC),
                    and_(retired, RefreshToken.revoked_at < older_than),
                    and_(
                        retired,
                        RefreshToken.revoked_at.is_(None),
                        RefreshToken.expires_at < older_than,
                    ),
                )
            )
        )
        return int(result.rowcount or 0)


@lru_cache
def get_refresh_token_store() -> RefreshTokenStore:
    """Create and cache the refresh-token store from settings."""
    return RefreshTokenStore(ttl_hours=get_settings().refresh_tokens.ttl_hours)
