"""Staff authentication routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.dependencies import Principal, get_current_principal, get_database_session
from app.schemas.auth import (
    LoginRequest,
    ProfileResponse,
    RefreshTokenRequest,
    RegisteredUser,
    RegisterRequest,
    RegisterResponse,
    TokenPairResponse,
    UserSummary,
)
from app.schemas.common import MessageResponse
from app.services.audit_service import AuditService, get_audit_service
from app.services.auth_service import AuthService, AuthServiceError, TokenPair, get_auth_service
from app.services.invitation_service import (
    InvitationService,
    InvitationServiceError,
    get_invitation_service,
)

router = APIRouter(prefix="/auth", tags=["auth"])

REFRESH_COOKIE_NAME = "refresh_token"
REFRESH_COOKIE_PATH = "/auth"
_TARGET_USER = "user"


def _error_response(status_code: int, detail: str, code: str) -> JSONResponse:
    """Build standardized API error response payload."""
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})


def _token_response(tokens: TokenPair) -> JSONResponse:
    """Return the pair in the body and mirror the refresh token into an HttpOnly cookie."""
    settings = get_settings()
    body = TokenPairResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
    )
    response = JSONResponse(content=body.model_dump(mode="json", by_alias=True))
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        tokens.refresh_token,
        max_age=settings.refresh_tokens.ttl_hours * 3600,
        path=REFRESH_COOKIE_PATH,
        httponly=True,
        secure=settings.app.environment != "development",
        samesite="strict",
    )
    return response


def _presented_refresh_token(request: Request, payload: RefreshTokenRequest | None) -> str | None:
    if payload is not None and payload.refresh_token:
        return payload.refresh_token
    return request.cookies.get(REFRESH_COOKIE_NAME)


@router.post("/register", status_code=201, response_model=RegisterResponse)
async def register(
    payload: RegisterRequest,
    request: Request,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    invitation_service: Annotated[InvitationService, Depends(get_invitation_service)],
) -> RegisterResponse | JSONResponse:
    """Create an account from a consumed invitation."""
    try:
        user = await invitation_service.register(
            db_session=db_session,
            token_hash=payload.token_hash,
            password=payload.password,
            request=request,
        )
    except InvitationServiceError as exc:
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)

    return RegisterResponse(
        message="Account created successfully - please login",
        user=RegisteredUser(
            id=user.id, email=user.email, role=user.role, created_at=user.created_at
        ),
    )


@router.post("/login", response_model=TokenPairResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> JSONResponse:
    """Exchange email and password for an access/refresh token pair."""
    try:
        result = await auth_service.login(
            db_session=db_session, email=payload.email, password=payload.password
        )
    except AuthServiceError as exc:
        await audit_service.record(
            event_type="user.login",
            actor_type="user",
            success=False,
            request=request,
            target_type=_TARGET_USER,
            failure_reason=exc.code,
            metadata={"email": payload.email},
        )
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)

    await audit_service.record(
        event_type="user.login",
        actor_type="user",
        success=True,
        request=request,
        actor_id=result.user.id,
        target_id=result.user.id,
        target_type=_TARGET_USER,
    )
    return _token_response(result.tokens)


@router.get("/profile", response_model=ProfileResponse)
async def profile(
    principal: Annotated[Principal, Depends(get_current_principal)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
) -> ProfileResponse | JSONResponse:
    """Return the caller's account."""
    try:
        user = await auth_service.get_profile(db_session=db_session, user_id=principal.user_id)
    except AuthServiceError as exc:
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)
    return ProfileResponse(
        message="Profile accessed successfully",
        user=UserSummary(id=user.id, email=user.email, role=user.role),
    )


@router.post("/refresh", response_model=TokenPairResponse)
async def refresh(
    request: Request,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
    payload: RefreshTokenRequest | None = None,
) -> JSONResponse:
    """Rotate the refresh token and issue a new pair."""
    raw_token = _presented_refresh_token(request, payload)
    if not raw_token:
        return _error_response(status_code=400, detail="Refresh token required", code="bad_request")
    try:
        tokens = await auth_service.refresh(db_session=db_session, raw_refresh_token=raw_token)
    except AuthServiceError as exc:
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)
    return _token_response(tokens)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
    payload: RefreshTokenRequest | None = None,
) -> MessageResponse:
    """Revoke the presented refresh token; always succeeds."""
    await auth_service.logout(
        db_session=db_session,
        raw_refresh_token=_presented_refresh_token(request, payload),
    )
    response.delete_cookie(REFRESH_COOKIE_NAME, path=REFRESH_COOKIE_PATH)
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    request: Request,
    response: Response,
    principal: Annotated[Principal, Depends(get_current_principal)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> MessageResponse:
    """Revoke every refresh token the caller holds."""
    revoked = await auth_service.logout_all(db_session=db_session, user_id=principal.user_id)
    await audit_service.record(
        event_type="user.logout_all",
        actor_type="user",
        success=True,
        request=request,
        actor_id=principal.user_id,
        target_id=principal.user_id,
        target_type=_TARGET_USER,
        metadata={"revoked": revoked},
    )
    response.delete_cookie(REFRESH_COOKIE_NAME, path=REFRESH_COOKIE_PATH)
    return MessageResponse(message="Logged out from all sessions successfully")
