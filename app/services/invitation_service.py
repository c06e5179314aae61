"""Admin invitations and invitation-based staff registration.

Registration is two-step: opening the emailed link consumes the raw token and hands
back its hash, and the hash plus a password then creates the account.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from hashlib import sha256
from typing import Protocol

import structlog
from fastapi import Request
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models.user import User, UserRole
from app.models.user_invitation import InvitationStatus, UserInvitation
from app.services.audit_service import AuditService, get_audit_service
from app.services.user_service import UserService, get_user_service

logger = structlog.get_logger(__name__)

INVITE_TOKEN_BYTES = 32
# base64url of 32 bytes without padding
_INVITE_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]{43}$")
_TARGET_INVITATION = "user_invitation"

INVITATION_EXPIRED = "This invitation link has expired. Please request a new invitation."
INVITATION_ALREADY_USED = "This invitation link has already been used once."


class InvitationServiceError(Exception):
    """Raised when an invitation cannot be issued, consumed, or redeemed."""

    def __init__(self, detail: str, code: str, status_code: int) -> None:
        super().__init__(detail)
        self.detail = detail
        self.code = code
        self.status_code = status_code


def _bad_request(detail: str) -> InvitationServiceError:
    return InvitationServiceError(detail, "bad_request", 400)


def _conflict(detail: str) -> InvitationServiceError:
    return InvitationServiceError(detail, "conflict", 409)


class InvitationEmailSender(Protocol):
    """Contract for invitation delivery adapters."""

    async def send_invitation_email(self, to_email: str, raw_token: str, role: UserRole) -> None:
        """Deliver the registration link for ``raw_token``."""


class LoggingInvitationEmailSender:
    """Delivery adapter used until a mail transport is wired in; records intent only."""

    async def send_invitation_email(self, to_email: str, raw_token: str, role: UserRole) -> None:
        del raw_token
        logger.warning("invitation_email_not_delivered", to_email=to_email, role=role.value)


@dataclass(frozen=True)
class CreatedInvitation:
    id: int
    email: str
    role: UserRole
    created_at: datetime
    dev_token: str | None = None


class InvitationService:
    """Issue invitations, consume invitation links, and register invited staff."""

    def __init__(
        self,
        user_service: UserService,
        email_sender: InvitationEmailSender,
        audit_service: AuditService,
        expiration_hours: int = 24,
        email_enabled: bool = True,
        expose_dev_token: bool = False,
    ) -> None:
        self._users = user_service
        self._email_sender = email_sender
        self._audit = audit_service
        self._expiration = timedelta(hours=expiration_hours)
        self._email_enabled = email_enabled
        self._expose_dev_token = expose_dev_token

    @staticmethod
    def generate_token() -> str:
        return secrets.token_urlsafe(INVITE_TOKEN_BYTES)

    @staticmethod
    def hash_token(raw_token: str) -> str:
        return sha256(raw_token.encode("utf-8")).hexdigest()

    @staticmethod
    def is_well_formed(raw_token: str) -> bool:
        return bool(_INVITE_TOKEN_PATTERN.match(raw_token))

    def is_expired(self, invitation: UserInvitation, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) > invitation.created_at + self._expiration

    async def create_invite(
        self,
        db_session: AsyncSession,
        email: str,
        role: UserRole,
        admin_id: int,
        request: Request | None = None,
    ) -> CreatedInvitation:
        """Store a PENDING invitation and hand the raw token to the email sender.

        The row is removed again when delivery fails so the admin can retry.
        """
        normalized_email = email.strip().lower()
        if await self._users.get_user_by_email(db_session, normalized_email) is not None:
            raise _conflict("User with this email already exists")

        pending = await db_session.execute(
            select(UserInvitation).where(
                UserInvitation.email == normalized_email,
                UserInvitation.status == InvitationStatus.PENDING,
            )
        )
        if any(not self.is_expired(row) for row in pending.scalars().all()):
            raise _conflict("A pending invitation already exists for this email")

        raw_token = self.generate_token()
        invitation = UserInvitation(
            email=normalized_email,
            role=role,
            token_hash=self.hash_token(raw_token),
            status=InvitationStatus.PENDING,
            created_by_id=admin_id,
        )
        try:
            db_session.add(invitation)
            await db_session.flush()
            await db_session.refresh(invitation)
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()

        if self._email_enabled:
            try:
                await self._email_sender.send_invitation_email(
                    to_email=normalized_email, raw_token=raw_token, role=role
                )
            except Exception:
                await db_session.delete(invitation)
                await db_session.commit()
                logger.error("invitation_email_failed", invitation_id=invitation.id)
                raise

        logger.info("invitation_created", invitation_id=invitation.id, role=role.value)
        await self._audit.record(
            event_type="invitation.created",
            actor_type="user",
            success=True,
            request=request,
            actor_id=admin_id,
            target_id=invitation.id,
            target_type=_TARGET_INVITATION,
            metadata={"role": role.value},
        )
        return CreatedInvitation(
            id=invitation.id,
            email=invitation.email,
            role=invitation.role,
            created_at=invitation.created_at,
            dev_token=raw_token if self._expose_dev_token and not self._email_enabled else None,
        )

    async def consume_invite(
        self,
        db_session: AsyncSession,
        raw_token: str,
        request: Request | None = None,
    ) -> str:
        """Move a PENDING invitation to CONSUMED exactly once and return its token hash."""
        if not self.is_well_formed(raw_token):
            raise _bad_request("Invalid invitation token format")

        token_hash = self.hash_token(raw_token)
        result = await db_session.execute(
            select(UserInvitation).where(UserInvitation.token_hash == token_hash)
        )
        invitation = result.scalar_one_or_none()
        if invitation is None:
            raise _bad_request("Invalid invitation token")

        if self.is_expired(invitation):
            await self._audit_invitation("invitation.expired", invitation.id, request)
            raise _bad_request(INVITATION_EXPIRED)
        if invitation.status == InvitationStatus.CONSUMED:
            raise _bad_request(INVITATION_ALREADY_USED)
        if invitation.status != InvitationStatus.PENDING:
            raise _bad_request("This invitation is no longer valid")

        try:
            consumed = await db_session.execute(
                update(UserInvitation)
                .where(
                    UserInvitation.id == invitation.id,
                    UserInvitation.status == InvitationStatus.PENDING,
                )
                .values(status=InvitationStatus.CONSUMED)
            )
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()
        if not consumed.rowcount:
            raise _bad_request(INVITATION_ALREADY_USED)

        await self._audit_invitation("invitation.consumed", invitation.id, request)
        return token_hash

    async def register(
        self,
        db_session: AsyncSession,
        token_hash: str,
        password: str,
        request: Request | None = None,
    ) -> User:
        """Create the invited account from a CONSUMED invitation."""
        try:
            result = await db_session.execute(
                select(UserInvitation)
                .where(UserInvitation.token_hash == token_hash)
                .with_for_update()
            )
            invitation = result.scalar_one_or_none()
            if invitation is None:
                raise _bad_request("Invalid invitation token")
            if self.is_expired(invitation):
                raise _bad_request(INVITATION_EXPIRED)
            if invitation.status == InvitationStatus.PENDING:
                raise _bad_request(
                    "Please validate your invitation link first by visiting the invite URL"
                )
            if invitation.status != InvitationStatus.CONSUMED:
                raise _bad_request("This invitation has already been used or is no longer valid")
            if await self._users.get_user_by_email(db_session, invitation.email) is not None:
                raise _conflict("Account with this email already exists")

            user = User(
                email=invitation.email,
                role=invitation.role,
                password_hash=self._users.hash_password(password),
                is_active=True,
            )
            db_session.add(user)
            invitation.status = InvitationStatus.ACCEPTED
            await db_session.flush()
            await db_session.refresh(user)
        except IntegrityError as exc:
            await db_session.rollback()
            raise _conflict("Account with this email already exists") from exc
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()

        logger.info("invitation_accepted", invitation_id=invitation.id, user_id=user.id)
        await self._audit.record(
            event_type="invitation.accepted",
            actor_type="user",
            success=True,
            request=request,
            actor_id=user.id,
            target_id=invitation.id,
            target_type=_TARGET_INVITATION,
        )
        return user

    async def _audit_invitation(
        self,
        event_type: str,
        invitation_id: int,
        request: Request | None,
    ) -> None:
        await self._audit.record(
            event_type=event_type,
            actor_type="system",
            success=True,
            request=request,
            target_id=invitation_id,
            target_type=_TARGET_INVITATION,
        )


@lru_cache
def get_invitation_email_sender() -> InvitationEmailSender:
    """Return the configured invitation delivery adapter."""
    return LoggingInvitationEmailSender()


@lru_cache
def get_invitation_service() -> InvitationService:
    """Create and cache the invitation service."""
    settings = get_settings()
    return InvitationService(
        user_service=get_user_service(),
        email_sender=get_invitation_email_sender(),
        audit_service=get_audit_service(),
        expiration_hours=settings.invitations.expiration_hours,
        email_enabled=settings.invitations.email_enabled,
        expose_dev_token=settings.app.environment == "development",
    )
