"""Workshop session lifecycle orchestration."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Literal

import structlog
from fastapi import Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.participant_tokens import (
    ParticipantTokenError,
    ParticipantTokenIssuer,
    get_participant_token_issuer,
)
from app.core.participants import ParticipantStore, get_participant_store
from app.core.session_codes import SessionCodeGenerator, get_session_code_generator
from app.core.workshop_sessions import SessionStore, get_session_store
from app.models.user import UserRole
from app.models.workshop_session import SessionStatus, WorkshopSession
from app.services.audit_service import AuditService, get_audit_service

logger = structlog.get_logger(__name__)

ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.LOBBY: frozenset({SessionStatus.RUNNING, SessionStatus.ABANDONED}),
    SessionStatus.RUNNING: frozenset({SessionStatus.ENDED, SessionStatus.ABANDONED}),
    SessionStatus.ENDED: frozenset(),
    SessionStatus.ABANDONED: frozenset(),
}
TERMINAL_STATUSES = frozenset({SessionStatus.ENDED, SessionStatus.ABANDONED})
ELEVATED_VIEW_ROLES = frozenset({UserRole.RESEARCHER, UserRole.ADMIN})

INVALID_PARTICIPANT_TOKEN = "Invalid or expired token"

DeleteOutcome = Literal["deleted", "abandoned"]


class SessionServiceError(Exception):
    """Raised for session lifecycle failures."""

    def __init__(self, detail: str, code: str, status_code: int) -> None:
        super().__init__(detail)
        self.detail = detail
        self.code = code
        self.status_code = status_code


def _not_found(detail: str) -> SessionServiceError:
    return SessionServiceError(detail, "not_found", 404)


def _forbidden(detail: str) -> SessionServiceError:
    return SessionServiceError(detail, "forbidden", 403)


def _bad_request(detail: str) -> SessionServiceError:
    return SessionServiceError(detail, "bad_request", 400)


@dataclass(frozen=True)
class CreatedSession:
    """Session creation result."""

    id: int
    code: str
    status: SessionStatus
    max_participants: int
    created_at: datetime


@dataclass(frozen=True)
class JoinResult:
    """Join result; `token` is handed out exactly once."""

    participant_id: int
    session_id: int
    code: str
    display_name: str | None
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class SessionOwner:
    """Creator summary shown in session details."""

    id: int
    email: str
    role: str


@dataclass(frozen=True)
class SessionDetails:
    """Session summary with live participant count."""

    id: int
    code: str
    status: SessionStatus
    max_participants: int
    participant_count: int
    created_at: datetime
    created_by: SessionOwner | None


@dataclass(frozen=True)
class ParticipantView:
    """Participant entry exposed to owners and researchers."""

    id: int
    display_name: str | None
    color_hex: str
    joined_at: datetime


class SessionService:
    """Create, join, leave, transition, and delete workshop sessions."""

    def __init__(
        self,
        session_store: SessionStore,
        participant_store: ParticipantStore,
        token_issuer: ParticipantTokenIssuer,
        code_generator: SessionCodeGenerator,
        audit_service: AuditService,
        default_max_participants: int = 5,
        max_participants_limit: int = 50,
        code_retry_limit: int = 5,
        revoked_token_grace_seconds: int = 86400,
    ) -> None:
        self._sessions = session_store
        self._participants = participant_store
        self._tokens = token_issuer
        self._codes = code_generator
        self._audit = audit_service
        self._default_max_participants = default_max_participants
        self._max_participants_limit = max_participants_limit
        self._code_retry_limit = code_retry_limit
        self._revoked_token_grace_seconds = revoked_token_grace_seconds

    async def create_session(
        self,
        db_session: AsyncSession,
        owner_id: int,
        max_participants: int | None = None,
        request: Request | None = None,
    ) -> CreatedSession:
        """Create a LOBBY session, retrying only on join-code collisions."""
        capacity = self._default_max_participants if max_participants is None else max_participants
        if capacity < 1 or capacity > self._max_participants_limit:
            raise _bad_request(
                f"maxParticipants must be between 1 and {self._max_participants_limit}."
            )

        for attempt in range(1, self._code_retry_limit + 1):
            code = self._codes.generate()
            try:
                session_row = await self._sessions.create_session(
                    db_session=db_session,
                    code=code,
                    created_by_id=owner_id,
                    max_participants=capacity,
                )
                await db_session.commit()
            except IntegrityError as exc:
                await db_session.rollback()
                if not self._sessions.is_code_collision(exc):
                    raise
                logger.warning("session_code_collision", attempt=attempt)
                continue
            except Exception:
                await db_session.rollback()
                raise

            logger.info(
                "session_created",
                session_id=session_row.id,
                owner_id=owner_id,
                max_participants=session_row.max_participants,
            )
            await self._audit_session_created(owner_id, session_row.id, request)
            return CreatedSession(
                id=session_row.id,
                code=session_row.code,
                status=session_row.status,
                max_participants=session_row.max_participants,
                created_at=session_row.created_at,
            )

        raise SessionServiceError(
            "Unable to generate unique session code after multiple attempts.",
            "conflict",
            409,
        )

    async def update_session_status(
        self,
        db_session: AsyncSession,
        session_id: int,
        new_status: SessionStatus,
        caller_id: int,
    ) -> WorkshopSession:
        """Apply a legal transition on a session the caller owns."""
        try:
            session_row = await self._sessions.find_for_owner(
                db_session=db_session,
                session_id=session_id,
                owner_id=caller_id,
                for_update=True,
            )
            if session_row is None:
                raise _not_found("Session not found or access denied.")

            previous_status = session_row.status
            self.validate_status_transition(previous_status, new_status)
            await self._sessions.update_status(db_session, session_row, new_status)
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()

        logger.info(
            "session_status_changed",
            session_id=session_id,
            previous_status=previous_status.value,
            new_status=new_status.value,
        )
        return session_row

    async def join_by_code(
        self,
        db_session: AsyncSession,
        code: str,
        color_hex: str,
        display_name: str | None = None,
    ) -> JoinResult:
        """Admit a participant to a LOBBY session with free capacity and issue its token."""
        normalized_code = self._codes.normalize(code)
        if not self._codes.is_valid(normalized_code):
            raise _bad_request(self._codes.describe_format())

        try:
            session_row = await self._sessions.find_by_code(
                db_session=db_session,
                code=normalized_code,
                for_update=True,
            )
            if session_row is None:
                raise _not_found("Session not found.")
            if session_row.status != SessionStatus.LOBBY:
                raise _forbidden("Session is not accepting new participants.")

            participant_count = await self._participants.count_participants(
                db_session, session_row.id
            )
            if participant_count >= session_row.max_participants:
                raise _forbidden("Session is full.")

            participant = await self._participants.create_participant(
                db_session=db_session,
                session_id=session_row.id,
                color_hex=color_hex.upper(),
                display_name=display_name,
            )
            signed = self._tokens.sign(session_id=session_row.id, participant_id=participant.id)
            await self._participants.create_session_token(
                db_session=db_session,
                participant_id=participant.id,
                token_hash=signed.token_hash,
                expires_at=signed.expires_at,
            )
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()

        logger.info(
            "participant_joined",
            session_id=session_row.id,
            participant_id=participant.id,
            participant_count=participant_count + 1,
        )
        return JoinResult(
            participant_id=participant.id,
            session_id=session_row.id,
            code=session_row.code,
            display_name=participant.display_name,
            token=signed.raw_token,
            expires_at=signed.expires_at,
        )

    async def leave_session(
        self,
        db_session: AsyncSession,
        session_id: int,
        raw_token: str,
    ) -> int:
        """Revoke the caller's token and remove its participant; returns the participant id."""
        if not raw_token or not raw_token.strip():
            raise _bad_request("Token is required.")
        raw_token = raw_token.strip()

        try:
            session_row = await self._sessions.get_session(
                db_session=db_session,
                session_id=session_id,
                for_update=True,
            )
            if session_row is None or session_row.status != SessionStatus.LOBBY:
                raise _forbidden("Cannot leave session unless it is in LOBBY.")

            try:
                claims = self._tokens.verify(raw_token)
            except ParticipantTokenError as exc:
                raise _forbidden(INVALID_PARTICIPANT_TOKEN) from exc
            if claims.get("sid") != session_id:
                raise _forbidden(INVALID_PARTICIPANT_TOKEN)

            token_hash = self._tokens.hash(raw_token)
            match = await self._participants.find_participant_by_token(
                db_session=db_session,
                token_hash=token_hash,
                session_id=session_id,
            )
            if match is None:
                raise _forbidden(INVALID_PARTICIPANT_TOKEN)

            participant, _token = match
            await self._participants.revoke_session_token(db_session, token_hash)
            await self._participants.delete_participant(db_session, participant.id)
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()

        logger.info("participant_left", session_id=session_id, participant_id=participant.id)
        return participant.id

    async def get_session_details(
        self,
        db_session: AsyncSession,
        session_id: int,
        caller_id: int,
        caller_role: str | None,
    ) -> SessionDetails:
        """Session summary for its owner or an elevated viewer."""
        found = await self._sessions.find_by_id(db_session, session_id)
        if found is None:
            raise _not_found("Session not found.")
        session_row = found.session
        self._ensure_can_view(session_row, caller_id, caller_role)

        owner = session_row.created_by
        return SessionDetails(
            id=session_row.id,
            code=session_row.code,
            status=session_row.status,
            max_participants=session_row.max_participants,
            participant_count=found.participant_count,
            created_at=session_row.created_at,
            created_by=(
                SessionOwner(id=owner.id, email=owner.email, role=owner.role.value)
                if owner is not None
                else None
            ),
        )

    async def get_session_participants(
        self,
        db_session: AsyncSession,
        session_id: int,
        caller_id: int,
        caller_role: str | None,
    ) -> list[ParticipantView]:
        """Participants in join order, for the owner or an elevated viewer."""
        session_row = await self._sessions.get_session(db_session, session_id)
        if session_row is None:
            raise _not_found("Session not found.")
        self._ensure_can_view(session_row, caller_id, caller_role)

        participants = await self._participants.get_session_participants(db_session, session_id)
        return [
            ParticipantView(
                id=participant.id,
                display_name=participant.display_name,
                color_hex=participant.color_hex,
                joined_at=participant.joined_at,
            )
            for participant in participants
        ]

    async def delete_or_abandon_session(
        self,
        db_session: AsyncSession,
        session_id: int,
        owner_id: int,
    ) -> DeleteOutcome:
        """Delete a LOBBY session outright or abandon a RUNNING one."""
        try:
            session_row = await self._sessions.find_for_owner(
                db_session=db_session,
                session_id=session_id,
                owner_id=owner_id,
                for_update=True,
            )
            if session_row is None:
                raise _not_found("Session not found or access denied.")
            if session_row.status in TERMINAL_STATUSES:
                raise _forbidden("Cannot delete a session that has ended or been abandoned.")

            await self._participants.revoke_all_participant_tokens(db_session, session_id)
            removed = await self._participants.delete_all_participants(db_session, session_id)
            if session_row.status == SessionStatus.LOBBY:
                await self._sessions.delete_all_bmc_profiles(db_session, session_id)
                await self._sessions.delete_session_row(db_session, session_id)
                outcome: DeleteOutcome = "deleted"
            else:
                await self._sessions.update_status(
                    db_session, session_row, SessionStatus.ABANDONED
                )
                outcome = "abandoned"
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()

        logger.info(
            f"session_{outcome}",
            session_id=session_id,
            owner_id=owner_id,
            participants_removed=removed,
        )
        return outcome

    async def cleanup_session_tokens(
        self,
        db_session: AsyncSession,
        grace_seconds: int | None = None,
    ) -> int:
        """Sweep expired tokens and tokens revoked longer ago than the grace period."""
        grace = self._revoked_token_grace_seconds if grace_seconds is None else grace_seconds
        older_than = datetime.now(UTC) - timedelta(seconds=grace)
        try:
            deleted = await self._participants.cleanup_expired_session_tokens(
                db_session, older_than
            )
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()

        logger.info("session_tokens_cleaned", deleted=deleted, grace_seconds=grace)
        return deleted

    @staticmethod
    def validate_status_transition(current: SessionStatus, requested: SessionStatus) -> None:
        """Reject every transition outside the fixed lifecycle table."""
        if requested not in ALLOWED_TRANSITIONS[current]:
            raise _forbidden(f"Cannot transition from {current.value} to {requested.value}.")

    @staticmethod
    def _ensure_can_view(
        session_row: WorkshopSession,
        caller_id: int,
        caller_role: str | None,
    ) -> None:
        """Owners and elevated roles may look inside a session."""
        if session_row.created_by_id is not None and session_row.created_by_id == caller_id:
            return
        try:
            role = UserRole(caller_role) if caller_role is not None else None
        except ValueError:
            role = None
        if role not in ELEVATED_VIEW_ROLES:
            raise _forbidden("Access denied.")

    async def _audit_session_created(
        self,
        owner_id: int,
        session_id: int,
        request: Request | None,
    ) -> None:
        """Audit writes are best-effort and never fail session creation."""
        try:
            await self._audit.record_session_created(
                actor_id=owner_id,
                session_id=session_id,
                request=request,
            )
        except Exception as exc:
            logger.warning("audit_write_failed", event_type="session.created", error=str(exc))


@lru_cache
def get_session_service() -> SessionService:
    """Create and cache the session lifecycle service."""
    settings = get_settings()
    return SessionService(
        session_store=get_session_store(),
        participant_store=get_participant_store(),
        token_issuer=get_participant_token_issuer(),
        code_generator=get_session_code_generator(),
        audit_service=get_audit_service(),
        default_max_participants=settings.sessions.default_max_participants,
        max_participants_limit=settings.sessions.max_participants_limit,
        code_retry_limit=settings.sessions.code_retry_limit,
        revoked_token_grace_seconds=settings.cleanup.revoked_token_grace_seconds,
    )
