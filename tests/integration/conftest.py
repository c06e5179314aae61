"""Shared integration-test fixtures using a Postgres testcontainer."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from typing import Any

import pytest
from alembic import command
from alembic.config import Config
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from testcontainers.postgres import PostgresContainer

from docker.errors import DockerException

INTEGRATION_JWT_SECRET = "integration-shared-hs256-secret"


def _clear_dependency_caches() -> None:
    """Clear all relevant singleton/lru-cache dependencies between test phases."""
    from app.config import get_settings
    from app.core.jwt import get_jwt_service
    from app.core.participant_tokens import get_participant_token_issuer
    from app.core.participants import get_participant_store
    from app.core.refresh_tokens import get_refresh_token_store
    from app.core.session_codes import get_session_code_generator
    from app.core.workshop_sessions import get_session_store
    from app.db.session import get_engine, get_session_factory
    from app.services.audit_service import get_audit_service
    from app.services.auth_service import get_auth_service
    from app.services.invitation_service import (
        get_invitation_email_sender,
        get_invitation_service,
    )
    from app.services.scenario_service import get_scenario_service
    from app.services.session_service import get_session_service
    from app.services.user_service import get_user_service

    get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()
    get_jwt_service.cache_clear()
    get_participant_token_issuer.cache_clear()
    get_participant_store.cache_clear()
    get_session_code_generator.cache_clear()
    get_session_store.cache_clear()
    get_audit_service.cache_clear()
    get_session_service.cache_clear()
    get_refresh_token_store.cache_clear()
    get_user_service.cache_clear()
    get_auth_service.cache_clear()
    get_invitation_email_sender.cache_clear()
    get_invitation_service.cache_clear()
    get_scenario_service.cache_clear()


async def _dispose_async_singletons() -> None:
    """Dispose loop-bound async resources before changing event loops."""
    from app.db.session import dispose_engine, get_engine

    if get_engine.cache_info().currsize:
        await dispose_engine()


def _postgres_async_url(postgres: PostgresContainer) -> str:
    """Return a postgresql+asyncpg URL across testcontainers versions."""
    try:
        # testcontainers>=4 supports explicitly disabling default psycopg2 driver.
        postgres_url = postgres.get_connection_url(driver=None)
    except TypeError:
        postgres_url = postgres.get_connection_url()

    if postgres_url.startswith("postgresql+"):
        postgres_url = "postgresql://" + postgres_url.split("://", 1)[1]

    return postgres_url.replace("postgresql://", "postgresql+asyncpg://", 1)


def _set_env_values(env_values: dict[str, str]) -> Callable[[], None]:
    """Apply env vars and return a restore callback."""
    original = {key: os.environ.get(key) for key in env_values}
    os.environ.update(env_values)

    def _restore() -> None:
        for key, value in original.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value

    return _restore


@pytest.fixture(scope="session")
def integration_env() -> Iterator[dict[str, str]]:
    """Start Postgres and configure app settings for integration tests."""
    try:
        postgres = PostgresContainer("postgres:16")
        postgres.start()
    except DockerException as exc:
        if os.environ.get("CI", "").lower() in {"1", "true", "yes"}:
            pytest.fail(
                f"Docker daemon unavailable in CI for testcontainers-backed integration tests: {exc}"
            )
        pytest.skip(f"Docker daemon unavailable for testcontainers-backed integration tests: {exc}")

    database_url = _postgres_async_url(postgres)
    env_values = {
        "APP__ENVIRONMENT": "development",
        "APP__SERVICE": "workshop-sessions",
        "APP__LOG_LEVEL": "INFO",
        "DATABASE__URL": database_url,
        "JWT__SECRET": INTEGRATION_JWT_SECRET,
        "PARTICIPANT_TOKENS__TTL_MINUTES": "480",
        "SESSION_CODES__LENGTH": "5",
        "SESSIONS__DEFAULT_MAX_PARTICIPANTS": "5",
        "SESSIONS__MAX_PARTICIPANTS_LIMIT": "50",
        "SESSIONS__CODE_RETRY_LIMIT": "5",
        "CLEANUP__REVOKED_TOKEN_GRACE_SECONDS": "86400",
        "PASSWORDS__BCRYPT_ROUNDS": "4",
        "REFRESH_TOKENS__TTL_HOURS": "8",
        "INVITATIONS__EXPIRATION_HOURS": "24",
        "INVITATIONS__EMAIL_ENABLED": "false",
    }

    restore_env = _set_env_values(env_values)
    _clear_dependency_caches()

    alembic_cfg = Config("alembic.ini")
    alembic_cfg.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(alembic_cfg, "head")

    try:
        yield {"database_url": database_url}
    finally:
        try:
            _clear_dependency_caches()
        finally:
            restore_env()
            postgres.stop()


@pytest.fixture(scope="function", autouse=True)
async def reset_state(
    integration_env: dict[str, str],
) -> AsyncIterator[None]:
    """Clear DB tables and isolate async singletons per event loop."""
    del integration_env
    from app.db.session import get_session_factory
    from app.models.audit_event import AuditEvent
    from app.models.scenario import Scenario
    from app.models.user import User
    from app.models.user_invitation import UserInvitation
    from app.models.workshop_session import WorkshopSession

    await _dispose_async_singletons()
    _clear_dependency_caches()

    session_factory = get_session_factory()
    async with session_factory() as session:
        await session.execute(delete(AuditEvent))
        await session.execute(delete(WorkshopSession))
        await session.execute(delete(UserInvitation))
        await session.execute(delete(Scenario))
        await session.execute(delete(User))
        await session.commit()

    try:
        yield
    finally:
        await _dispose_async_singletons()
        _clear_dependency_caches()


@pytest.fixture(scope="function")
async def db_session_factory(
    integration_env: dict[str, str],
    reset_state: None,
) -> async_sessionmaker[AsyncSession]:
    """Expose async session factory bound to integration Postgres."""
    del integration_env, reset_state
    from app.db.session import get_session_factory

    return get_session_factory()


@pytest.fixture(scope="function")
async def db_session(
    db_session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Yield a write-capable async DB session for test seeding and assertions."""
    async with db_session_factory() as session:
        yield session


@pytest.fixture(scope="function")
def app_factory(integration_env: dict[str, str]) -> Callable[[], Any]:
    """Build isolated FastAPI app instances for integration tests."""
    del integration_env
    from app.main import create_app

    def _factory() -> Any:
        return create_app()

    return _factory


@pytest.fixture(scope="function")
async def client(app_factory: Callable[[], Any]) -> AsyncIterator[AsyncClient]:
    """HTTP client bound to a freshly built app."""
    async with AsyncClient(
        transport=ASGITransport(app=app_factory()),
        base_url="http://testserver",
    ) as http_client:
        yield http_client


@pytest.fixture(scope="function")
async def user_factory(
    db_session: AsyncSession,
) -> Callable[..., Awaitable[Any]]:
    """Create staff rows directly, optionally with a bcrypt password."""
    from app.models.user import User, UserRole
    from app.services.user_service import UserService

    hasher = UserService(bcrypt_rounds=4)

    async def _create(
        email: str, role: str, password: str | None = None, is_active: bool = True
    ) -> User:
        user = User(
            email=email,
            role=UserRole(role),
            is_active=is_active,
            password_hash=None if password is None else hasher.hash_password(password),
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create


@pytest.fixture(scope="function")
def auth_headers() -> Callable[[Any], dict[str, str]]:
    """Mint bearer headers for a principal row."""
    from app.core.jwt import JWTService

    service = JWTService(secret=INTEGRATION_JWT_SECRET)

    def _headers(user: Any) -> dict[str, str]:
        token = service.issue_access_token(user_id=user.id, role=user.role.value)
        return {"authorization": f"Bearer {token}"}

    return _headers
