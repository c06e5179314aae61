"""Shared FastAPI dependency helpers."""

from __future__ import annotations

import hmac
from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.jwt import JWTService, TokenValidationError, get_jwt_service
from app.db.session import get_db_session
from app.models.user import UserRole


@dataclass(frozen=True)
class Principal:
    """Authenticated caller resolved from a bearer access token."""

    user_id: int
    role: str


async def get_database_session() -> AsyncGenerator[AsyncSession, None]:
    """Expose the request-scoped async database session dependency."""
    async for session in get_db_session():
        yield session


def _extract_bearer_token(request: Request) -> str | None:
    """Extract bearer token from Authorization header."""
    authorization = request.headers.get("authorization", "").strip()
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if not hmac.compare_digest(scheme.lower(), "bearer"):
        return None
    stripped = token.strip()
    return stripped or None


def get_current_principal(
    request: Request,
    jwt_service: Annotated[JWTService, Depends(get_jwt_service)],
) -> Principal:
    """Verify the bearer access token and return the calling principal."""
    token = _extract_bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=401,
            detail={"detail": "Invalid token.", "code": "invalid_token"},
        )
    try:
        claims = jwt_service.verify_access_token(token)
    except TokenValidationError as exc:
        raise HTTPException(
            status_code=401,
            detail={"detail": exc.detail, "code": exc.code},
        ) from exc

    principal = Principal(user_id=int(claims["sub"]), role=str(claims["role"]).upper())
    request.state.user = {"user_id": principal.user_id, "role": principal.role}
    return principal


def require_role(*roles: UserRole | str) -> Callable[[Principal], Principal]:
    """Require one of the allowed roles; admins always pass."""
    allowed = {role.value if isinstance(role, UserRole) else str(role) for role in roles}

    def checker(principal: Annotated[Principal, Depends(get_current_principal)]) -> Principal:
        if principal.role == UserRole.ADMIN.value:
            return principal
        if principal.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail={"detail": "Insufficient role", "code": "forbidden"},
            )
        return principal

    return checker
