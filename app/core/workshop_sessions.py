"""Transactional primitives over workshop session rows."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.bmc import BmcProfile
from app.models.participant import Participant
from app.models.workshop_session import SESSION_CODE_CONSTRAINT, SessionStatus, WorkshopSession

_UNIQUE_VIOLATION_SQLSTATE = "23505"


@dataclass(frozen=True)
class SessionWithCount:
    """Session row with its live participant count."""

    session: WorkshopSession
    participant_count: int


def _constraint_name(error: BaseException | None) -> str | None:
    """Walk the DBAPI error chain looking for the violated constraint name."""
    seen: set[int] = set()
    while error is not None and id(error) not in seen:
        seen.add(id(error))
        name = getattr(error, "constraint_name", None)
        if isinstance(name, str) and name:
            return name
        error = error.__cause__ or error.__context__
    return None


class SessionStore:
    """Workshop session persistence; callers own commit and rollback."""

    async def create_session(
        self,
        db_session: AsyncSession,
        code: str,
        created_by_id: int | None,
        max_participants: int | None = None,
    ) -> WorkshopSession:
        """Insert a LOBBY session and flush so the code constraint is checked now."""
        session_row = WorkshopSession(
            code=code,
            created_by_id=created_by_id,
            status=SessionStatus.LOBBY,
        )
        if max_participants is not None:
            session_row.max_participants = max_participants
        db_session.add(session_row)
        await db_session.flush()
        await db_session.refresh(session_row)
        return session_row

    @staticmethod
    def is_code_collision(exc: BaseException) -> bool:
        """True only for unique violations on the session code column."""
        if not isinstance(exc, IntegrityError):
            return False
        name = _constraint_name(exc.orig)
        if name is not None:
            return name == SESSION_CODE_CONSTRAINT
        sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
        if sqlstate is not None and sqlstate != _UNIQUE_VIOLATION_SQLSTATE:
            return False
        return SESSION_CODE_CONSTRAINT in str(exc.orig)

    async def find_by_code(
        self,
        db_session: AsyncSession,
        code: str,
        for_update: bool = False,
    ) -> WorkshopSession | None:
        """Fetch a session by its normalized join code."""
        statement = select(WorkshopSession).where(WorkshopSession.code == code)
        if for_update:
            statement = statement.with_for_update()
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()

    async def get_session(
        self,
        db_session: AsyncSession,
        session_id: int,
        for_update: bool = False,
    ) -> WorkshopSession | None:
        """Fetch a bare session row by id."""
        statement = select(WorkshopSession).where(WorkshopSession.id == session_id)
        if for_update:
            statement = statement.with_for_update()
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()

    async def find_by_id(self, db_session: AsyncSession, session_id: int) -> SessionWithCount | None:
        """Fetch a session with its creator and live participant count."""
        participant_count = (
            select(func.count(Participant.id))
            .where(Participant.session_id == WorkshopSession.id)
            .correlate(WorkshopSession)
            .scalar_subquery()
        )
        statement = (
            select(WorkshopSession, participant_count)
            .options(selectinload(WorkshopSession.created_by))
            .where(WorkshopSession.id == session_id)
        )
        result = await db_session.execute(statement)
        row = result.first()
        if row is None:
            return None
        session_row, count = row
        return SessionWithCount(session=session_row, participant_count=int(count or 0))

    async def find_for_owner(
        self,
        db_session: AsyncSession,
        session_id: int,
        owner_id: int,
        for_update: bool = False,
    ) -> WorkshopSession | None:
        """Fetch a session only when the caller created it."""
        statement = select(WorkshopSession).where(
            WorkshopSession.id == session_id,
            WorkshopSession.created_by_id == owner_id,
        )
        if for_update:
            statement = statement.with_for_update()
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()

    async def update_status(
        self,
        db_session: AsyncSession,
        session_row: WorkshopSession,
        status: SessionStatus,
    ) -> WorkshopSession:
        """Persist a new status on an already loaded row."""
        session_row.status = status
        await db_session.flush()
        return session_row

    async def delete_all_bmc_profiles(self, db_session: AsyncSession, session_id: int) -> int:
        """Delete canvas drafts tied to one session."""
        statement = delete(BmcProfile).where(BmcProfile.session_id == session_id)
        result = await db_session.execute(statement.execution_options(synchronize_session=False))
        return int(result.rowcount or 0)

    async def delete_session_row(self, db_session: AsyncSession, session_id: int) -> None:
        """Delete the session row, releasing its code."""
        statement = delete(WorkshopSession).where(WorkshopSession.id == session_id)
        await db_session.execute(statement.execution_options(synchronize_session=False))


@lru_cache
def get_session_store() -> SessionStore:
    """Create and cache the session store."""
    return SessionStore()
