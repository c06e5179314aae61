"""Unit tests for password handling and role administration."""

from __future__ import annotations

from typing import Any

import pytest

from app.models.user import User, UserRole
from app.services.user_service import ROLE_TRANSITIONS, UserService, UserServiceError


class _FakeDBSession:
    def __init__(self) -> None:
        self.commit_count = 0
        self.rollback_count = 0
        self.flush_count = 0

    async def flush(self) -> None:
        self.flush_count += 1

    async def commit(self) -> None:
        self.commit_count += 1

    async def rollback(self) -> None:
        self.rollback_count += 1


def _service_with_users(*users: User) -> UserService:
    service = UserService(bcrypt_rounds=4)
    by_id = {user.id: user for user in users}
    by_email = {user.email: user for user in users}

    async def _get_for_update(db_session: Any, user_id: int) -> User | None:
        return by_id.get(user_id)

    async def _get_by_email(db_session: Any, email: str) -> User | None:
        return by_email.get(email.strip().lower())

    service._get_user_for_update = _get_for_update  # type: ignore[method-assign]
    service.get_user_by_email = _get_by_email  # type: ignore[method-assign]
    return service


def _user(
    user_id: int,
    role: UserRole,
    active: bool = True,
    password_hash: str | None = None,
) -> User:
    return User(
        id=user_id,
        email=f"user{user_id}@example.com",
        role=role,
        is_active=active,
        password_hash=password_hash,
    )


def test_hash_and_verify_password_round_trip() -> None:
    """bcrypt hashes verify only for the original password."""
    service = UserService(bcrypt_rounds=4)
    password_hash = service.hash_password("Sup3r$ecret")

    assert password_hash.startswith("$2")
    assert service.verify_password("Sup3r$ecret", password_hash)
    assert not service.verify_password("wrong-password", password_hash)


@pytest.mark.asyncio
async def test_authenticate_user_accepts_valid_credentials() -> None:
    """Email lookup is case-insensitive and the password must match."""
    hasher = UserService(bcrypt_rounds=4)
    user = _user(1, UserRole.MODERATOR, password_hash=hasher.hash_password("Sup3r$ecret"))
    service = _service_with_users(user)

    assert await service.authenticate_user(None, " USER1@example.com ", "Sup3r$ecret") is user
    assert await service.authenticate_user(None, "user1@example.com", "nope-nope") is None


@pytest.mark.asyncio
async def test_authenticate_user_rejects_disabled_and_unknown_accounts() -> None:
    """Disabled, password-less and unknown accounts never authenticate."""
    hasher = UserService(bcrypt_rounds=4)
    disabled = _user(
        2, UserRole.MODERATOR, active=False, password_hash=hasher.hash_password("pw-12345")
    )
    no_password = _user(3, UserRole.RESEARCHER)
    service = _service_with_users(disabled, no_password)

    assert await service.authenticate_user(None, "user2@example.com", "pw-12345") is None
    assert await service.authenticate_user(None, "user3@example.com", "pw-12345") is None
    assert await service.authenticate_user(None, "ghost@example.com", "pw-12345") is None


def test_admins_cannot_be_downgraded() -> None:
    """ADMIN has no outgoing transitions; other roles can move up or sideways."""
    assert ROLE_TRANSITIONS[UserRole.ADMIN] == frozenset()
    assert UserRole.ADMIN in ROLE_TRANSITIONS[UserRole.RESEARCHER]
    assert UserRole.RESEARCHER in ROLE_TRANSITIONS[UserRole.MODERATOR]


@pytest.mark.asyncio
async def test_update_role_applies_allowed_transition() -> None:
    """A researcher can be promoted; the change is committed."""
    target = _user(5, UserRole.RESEARCHER)
    service = _service_with_users(target)
    db_session = _FakeDBSession()

    outcome = await service.update_role(
        db_session, actor_id=1, user_id=5, new_role=UserRole.MODERATOR
    )

    assert outcome.changed is True
    assert target.role == UserRole.MODERATOR
    assert outcome.message == "Role updated from RESEARCHER to MODERATOR"
    assert db_session.commit_count == 1


@pytest.mark.asyncio
async def test_update_role_same_role_is_a_no_op() -> None:
    """Requesting the current role reports it without flushing."""
    target = _user(5, UserRole.MODERATOR)
    service = _service_with_users(target)
    db_session = _FakeDBSession()

    outcome = await service.update_role(
        db_session, actor_id=1, user_id=5, new_role=UserRole.MODERATOR
    )

    assert outcome.changed is False
    assert outcome.message == "Role is already set to the requested value"
    assert db_session.flush_count == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("target", "actor_id", "new_role", "status_code", "detail_prefix"),
    [
        (None, 1, UserRole.MODERATOR, 404, "User not found"),
        (
            _user(5, UserRole.MODERATOR, active=False),
            1,
            UserRole.RESEARCHER,
            400,
            "Cannot update role",
        ),
        (_user(1, UserRole.ADMIN), 1, UserRole.MODERATOR, 403, "Cannot change your own role"),
        (_user(5, UserRole.ADMIN), 1, UserRole.MODERATOR, 400, "Invalid role transition"),
    ],
)
async def test_update_role_rejections(
    target: User | None,
    actor_id: int,
    new_role: UserRole,
    status_code: int,
    detail_prefix: str,
) -> None:
    """Missing, disabled, self and admin-downgrade requests are refused and rolled back."""
    service = _service_with_users(*([target] if target is not None else []))
    db_session = _FakeDBSession()

    with pytest.raises(UserServiceError) as exc_info:
        await service.update_role(
            db_session,
            actor_id=actor_id,
            user_id=5 if target is None else target.id,
            new_role=new_role,
        )

    assert exc_info.value.status_code == status_code
    assert exc_info.value.detail.startswith(detail_prefix)
    assert db_session.rollback_count == 1
    assert db_session.commit_count == 0
