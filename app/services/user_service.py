"""Staff account lookup, password verification, and role administration."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

import structlog
from passlib.context import CryptContext
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models.user import User, UserRole

logger = structlog.get_logger(__name__)

LISTABLE_ROLES = (UserRole.MODERATOR, UserRole.RESEARCHER)

# Admins are never downgraded, so the admin count can only grow through this path.
ROLE_TRANSITIONS: dict[UserRole, frozenset[UserRole]] = {
    UserRole.ADMIN: frozenset(),
    UserRole.MODERATOR: frozenset({UserRole.RESEARCHER, UserRole.ADMIN}),
    UserRole.RESEARCHER: frozenset({UserRole.MODERATOR, UserRole.ADMIN}),
}


class UserServiceError(Exception):
    """Raised when user management operations fail validation or authorization."""

    def __init__(self, detail: str, code: str, status_code: int) -> None:
        super().__init__(detail)
        self.detail = detail
        self.code = code
        self.status_code = status_code


@dataclass(frozen=True)
class RoleUpdate:
    """Outcome of a role change request."""

    user: User
    previous_role: UserRole
    changed: bool

    @property
    def message(self) -> str:
        if not self.changed:
            return "Role is already set to the requested value"
        return f"Role updated from {self.previous_role.value} to {self.user.role.value}"


class UserService:
    """Service responsible for staff retrieval, password hashing and role changes."""

    def __init__(self, bcrypt_rounds: int = 12) -> None:
        self._password_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=bcrypt_rounds,
        )

    def hash_password(self, password: str) -> str:
        """Generate a bcrypt hash for the provided password."""
        return str(self._password_context.hash(password))

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a plaintext password against the stored bcrypt hash."""
        return bool(self._password_context.verify(password, password_hash))

    async def get_user_by_email(self, db_session: AsyncSession, email: str) -> User | None:
        statement = select(User).where(func.lower(User.email) == email.strip().lower())
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()

    async def get_active_user(self, db_session: AsyncSession, user_id: int) -> User | None:
        """Fetch a user that is still allowed to sign in."""
        statement = select(User).where(User.id == user_id, User.is_active.is_(True))
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()

    async def authenticate_user(
        self,
        db_session: AsyncSession,
        email: str,
        password: str,
    ) -> User | None:
        """Return the user for valid credentials; disabled accounts never authenticate."""
        user = await self.get_user_by_email(db_session=db_session, email=email)
        if user is None or not user.is_active or user.password_hash is None:
            self._password_context.dummy_verify()
            return None
        if not self.verify_password(password=password, password_hash=user.password_hash):
            return None
        return user

    async def list_users(
        self,
        db_session: AsyncSession,
        role: UserRole | None = None,
        search: str | None = None,
    ) -> list[User]:
        """List active moderators and researchers, newest first.

        ``role`` narrows the listing only when it is a listable role; ``search`` is a
        case-insensitive substring match on email.
        """
        roles = (role,) if role in LISTABLE_ROLES else LISTABLE_ROLES
        statement = select(User).where(User.is_active.is_(True), User.role.in_(roles))
        term = (search or "").strip()
        if term:
            statement = statement.where(User.email.icontains(term, autoescape=True))
        statement = statement.order_by(User.created_at.desc(), User.id.desc())
        result = await db_session.execute(statement)
        return list(result.scalars().all())

    async def update_role(
        self,
        db_session: AsyncSession,
        actor_id: int,
        user_id: int,
        new_role: UserRole,
    ) -> RoleUpdate:
        """Change another user's role under a row lock."""
        try:
            user = await self._get_user_for_update(db_session=db_session, user_id=user_id)
            if user is None:
                raise UserServiceError("User not found", "not_found", 404)
            if not user.is_active:
                raise UserServiceError(
                    "Cannot update role of disabled user", "bad_request", 400
                )
            if user.id == actor_id:
                raise UserServiceError("Cannot change your own role", "forbidden", 403)

            previous_role = user.role
            changed = previous_role != new_role
            if changed and new_role not in ROLE_TRANSITIONS[previous_role]:
                raise UserServiceError(
                    f"Invalid role transition: {previous_role.value} cannot be changed to "
                    f"{new_role.value}. Admins cannot be downgraded.",
                    "bad_request",
                    400,
                )
            if changed:
                user.role = new_role
                await db_session.flush()
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()

        if not changed:
            return RoleUpdate(user=user, previous_role=previous_role, changed=False)
        logger.info(
            "user_role_changed",
            actor_id=actor_id,
            user_id=user_id,
            previous_role=previous_role.value,
            new_role=new_role.value,
        )
        return RoleUpdate(user=user, previous_role=previous_role, changed=True)

    async def _get_user_for_update(self, db_session: AsyncSession, user_id: int) -> User | None:
        statement = select(User).where(User.id == user_id).with_for_update()
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()


@lru_cache
def get_user_service() -> UserService:
    """Create and cache the user service."""
    return UserService(bcrypt_rounds=get_settings().passwords.bcrypt_rounds)
