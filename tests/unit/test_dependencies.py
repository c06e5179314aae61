"""Unit tests for bearer-token principal resolution and role gating."""

from __future__ import annotations

from typing import Annotated

import pytest
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient

from app.config import get_settings
from app.core.jwt import JWTService, get_jwt_service
from app.dependencies import Principal, require_role
from app.error_handlers import register_exception_handlers
from app.models.user import UserRole


def _build_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app, environment="development")

    @app.get("/moderated")
    async def moderated(
        principal: Annotated[Principal, Depends(require_role(UserRole.MODERATOR))],
    ) -> dict[str, object]:
        return {"user_id": principal.user_id, "role": principal.role}

    @app.get("/viewable")
    async def viewable(
        principal: Annotated[
            Principal, Depends(require_role(UserRole.MODERATOR, UserRole.RESEARCHER))
        ],
    ) -> dict[str, object]:
        return {"user_id": principal.user_id}

    return app


def _secret() -> str:
    return get_settings().jwt.secret.get_secret_value()


def _bearer(user_id: int, role: str, expires_in_seconds: int | None = None) -> dict[str, str]:
    token = JWTService(secret=_secret()).issue_access_token(
        user_id=user_id,
        role=role,
        expires_in_seconds=expires_in_seconds,
    )
    return {"authorization": f"Bearer {token}"}


async def _get(path: str, headers: dict[str, str] | None = None):
    async with AsyncClient(
        transport=ASGITransport(app=_build_app()),
        base_url="http://testserver",
    ) as client:
        return await client.get(path, headers=headers or {})


@pytest.mark.asyncio
async def test_missing_bearer_token_is_unauthorized() -> None:
    """Requests without Authorization get 401 invalid_token."""
    response = await _get("/moderated")

    assert response.status_code == 401
    assert response.json() == {"detail": "Invalid token.", "code": "invalid_token"}


@pytest.mark.asyncio
async def test_expired_bearer_token_reports_token_expired() -> None:
    """Expired access tokens keep their distinct code."""
    response = await _get("/moderated", headers=_bearer(1, "MODERATOR", expires_in_seconds=-5))

    assert response.status_code == 401
    assert response.json()["code"] == "token_expired"


@pytest.mark.asyncio
async def test_listed_role_passes() -> None:
    """Moderators reach moderator routes."""
    response = await _get("/moderated", headers=_bearer(5, "MODERATOR"))

    assert response.status_code == 200
    assert response.json() == {"user_id": 5, "role": "MODERATOR"}


@pytest.mark.asyncio
async def test_unlisted_role_is_forbidden() -> None:
    """Researchers cannot reach moderator-only routes."""
    response = await _get("/moderated", headers=_bearer(5, "RESEARCHER"))

    assert response.status_code == 403
    assert response.json() == {"detail": "Insufficient role", "code": "forbidden"}


@pytest.mark.asyncio
async def test_admin_bypasses_role_list() -> None:
    """Admins pass every role gate."""
    response = await _get("/moderated", headers=_bearer(1, "ADMIN"))

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_role_claim_is_case_insensitive() -> None:
    """Lowercase role claims are normalized."""
    response = await _get("/viewable", headers=_bearer(9, "researcher"))

    assert response.status_code == 200


def test_jwt_service_dependency_reads_secret() -> None:
    """Cached JWT service verifies tokens signed with the configured secret."""
    token = JWTService(secret=_secret()).issue_access_token(user_id=2, role="ADMIN")

    assert get_jwt_service().verify_access_token(token)["sub"] == "2"
