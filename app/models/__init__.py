"""ORM model exports."""

from app.models.audit_event import AuditActorType, AuditEvent
from app.models.bmc import BmcProfile, SessionRound
from app.models.participant import Participant
from app.models.refresh_token import RefreshToken, RefreshTokenStatus
from app.models.scenario import Scenario
from app.models.session_token import SessionToken
from app.models.user import User, UserRole
from app.models.user_invitation import InvitationStatus, UserInvitation
from app.models.workshop_session import SESSION_CODE_CONSTRAINT, SessionStatus, WorkshopSession

__all__ = [
    "SESSION_CODE_CONSTRAINT",
    "AuditActorType",
    "AuditEvent",
    "BmcProfile",
    "InvitationStatus",
    "Participant",
    "RefreshToken",
    "RefreshTokenStatus",
    "Scenario",
    "SessionRound",
    "SessionStatus",
    "SessionToken",
    "User",
    "UserInvitation",
    "UserRole",
    "WorkshopSession",
]
