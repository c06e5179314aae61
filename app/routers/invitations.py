"""Staff invitation routes: admin invite and invitation-link consumption."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import Principal, get_database_session, require_role
from app.models.user import UserRole
from app.schemas.invitation import (
    ConsumeInvitationResponse,
    CreateInvitationRequest,
    CreateInvitationResponse,
    InvitationSummary,
)
from app.services.invitation_service import (
    InvitationService,
    InvitationServiceError,
    get_invitation_service,
)

router = APIRouter(prefix="/auth", tags=["invitations"])


def _error_response(status_code: int, detail: str, code: str) -> JSONResponse:
    """Build standardized API error response payload."""
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})


@router.post("/invite", status_code=201, response_model=CreateInvitationResponse)
async def create_invite(
    payload: CreateInvitationRequest,
    request: Request,
    principal: Annotated[Principal, Depends(require_role(UserRole.ADMIN))],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    invitation_service: Annotated[InvitationService, Depends(get_invitation_service)],
) -> CreateInvitationResponse | JSONResponse:
    """Invite a new staff member by email (admin only)."""
    try:
        created = await invitation_service.create_invite(
            db_session=db_session,
            email=payload.email,
            role=payload.role,
            admin_id=principal.user_id,
            request=request,
        )
    except InvitationServiceError as exc:
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)

    return CreateInvitationResponse(
        message=f"Invitation sent successfully to {created.email}",
        invitation=InvitationSummary(
            id=created.id,
            email=created.email,
            role=created.role,
            created_at=created.created_at,
        ),
        dev_token=created.dev_token,
    )


@router.get(
    "/invites/consume",
    response_model=ConsumeInvitationResponse,
)
async def consume_invite(
    request: Request,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    invitation_service: Annotated[InvitationService, Depends(get_invitation_service)],
    token: Annotated[str, Query(min_length=1, max_length=256)],
) -> ConsumeInvitationResponse | JSONResponse:
    """Validate an invitation link once and return the hash used to register."""
    try:
        token_hash = await invitation_service.consume_invite(
            db_session=db_session, raw_token=token, request=request
        )
    except InvitationServiceError as exc:
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)
    return ConsumeInvitationResponse(
        message="Invitation token validated successfully",
        token_hash=token_hash,
    )
