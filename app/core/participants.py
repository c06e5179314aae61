"""Transactional primitives over participants and their session tokens.

Every method runs on the caller's ``AsyncSession`` and never commits, so the lifecycle
service can compose several calls into one atomic unit of work.
"""

from __future__ import annotations

from datetime import UTC, datetime
from functools import lru_cache

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.participant import Participant
from app.models.session_token import SessionToken


class ParticipantStore:
    """Participant and session-token persistence."""

    async def count_participants(self, db_session: AsyncSession, session_id: int) -> int:
        """Count live participants of one session."""
        statement = select(func.count(Participant.id)).where(Participant.session_id == session_id)
        result = await db_session.execute(statement)
        return int(result.scalar_one())

    async def create_participant(
        self,
        db_session: AsyncSession,
        session_id: int,
        color_hex: str,
        display_name: str | None = None,
    ) -> Participant:
        """Insert a participant row and flush so its id is available."""
        participant = Participant(
            session_id=session_id,
            color_hex=color_hex,
            display_name=display_name or None,
        )
        db_session.add(participant)
        await db_session.flush()
        return participant

    async def create_session_token(
        self,
        db_session: AsyncSession,
        participant_id: int,
        token_hash: str,
        expires_at: datetime,
    ) -> SessionToken:
        """Persist the hash of a freshly issued participant credential."""
        token = SessionToken(
            participant_id=participant_id,
            token_hash=token_hash,
            expires_at=expires_at,
            revoked_at=None,
        )
        db_session.add(token)
        await db_session.flush()
        return token

    async def find_participant_by_token(
        self,
        db_session: AsyncSession,
        token_hash: str,
        session_id: int,
    ) -> tuple[Participant, SessionToken] | None:
        """Return the active token and its participant, scoped to one session."""
        statement = (
            select(Participant, SessionToken)
            .join(SessionToken, SessionToken.participant_id == Participant.id)
            .where(
                SessionToken.token_hash == token_hash,
                SessionToken.revoked_at.is_(None),
                SessionToken.expires_at > datetime.now(UTC),
                Participant.session_id == session_id,
            )
            .with_for_update()
        )
        result = await db_session.execute(statement)
        row = result.first()
        if row is None:
            return None
        participant, token = row
        return participant, token

    async def revoke_session_token(self, db_session: AsyncSession, token_hash: str) -> int:
        """Stamp revoked_at on a still-active token; repeated calls touch nothing."""
        statement = (
            update(SessionToken)
            .where(SessionToken.token_hash == token_hash, SessionToken.revoked_at.is_(None))
            .values(revoked_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        result = await db_session.execute(statement)
        return int(result.rowcount or 0)

    async def revoke_all_participant_tokens(self, db_session: AsyncSession, session_id: int) -> int:
        """Revoke every active token held by participants of one session."""
        participant_ids = select(Participant.id).where(Participant.session_id == session_id)
        statement = (
            update(SessionToken)
            .where(
                SessionToken.participant_id.in_(participant_ids),
                SessionToken.revoked_at.is_(None),
            )
            .values(revoked_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        result = await db_session.execute(statement)
        return int(result.rowcount or 0)

    async def delete_participant(self, db_session: AsyncSession, participant_id: int) -> None:
        """Delete one participant; its tokens go with it through the FK cascade."""
        statement = delete(Participant).where(Participant.id == participant_id)
        await db_session.execute(statement.execution_options(synchronize_session=False))

    async def delete_all_participants(self, db_session: AsyncSession, session_id: int) -> int:
        """Delete every participant of one session."""
        statement = delete(Participant).where(Participant.session_id == session_id)
        result = await db_session.execute(statement.execution_options(synchronize_session=False))
        return int(result.rowcount or 0)

    async def get_session_participants(
        self,
        db_session: AsyncSession,
        session_id: int,
    ) -> list[Participant]:
        """List participants in join order."""
        statement = (
            select(Participant)
            .where(Participant.session_id == session_id)
            .order_by(Participant.joined_at.asc(), Participant.id.asc())
        )
        result = await db_session.execute(statement)
        return list(result.scalars().all())

    async def cleanup_expired_session_tokens(
        self,
        db_session: AsyncSession,
        older_than: datetime,
    ) -> int:
        """Delete expired tokens and tokens revoked before the cutoff."""
        statement = delete(SessionToken).where(
            or_(
                SessionToken.expires_at < datetime.now(UTC),
                and_(SessionToken.revoked_at.is_not(None), SessionToken.revoked_at < older_than),
            )
        )
        result = await db_session.execute(statement.execution_options(synchronize_session=False))
        return int(result.rowcount or 0)


@lru_cache
def get_participant_store() -> ParticipantStore:
    """Create and cache the participant store."""
    return ParticipantStore()
