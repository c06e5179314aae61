"""Workshop session routes (create, join, leave, transition, delete)."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import Principal, get_database_session, require_role
from app.models.user import UserRole
from app.schemas.session import (
    CreateSessionRequest,
    CreateSessionResponse,
    JoinSessionRequest,
    JoinSessionResponse,
    LeaveSessionRequest,
    LeaveSessionResponse,
    ParticipantResponse,
    SessionDetailsResponse,
    SessionOwnerResponse,
    SessionStatusResponse,
    UpdateSessionStatusRequest,
)
from app.services.audit_service import AuditService, get_audit_service
from app.services.session_service import (
    SessionService,
    SessionServiceError,
    get_session_service,
)

router = APIRouter(prefix="/sessions", tags=["sessions"])

_TARGET_SESSION = "workshop_session"


def _error_response(status_code: int, detail: str, code: str) -> JSONResponse:
    """Build standardized API error response payload."""
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})


@router.post("", status_code=201, response_model=CreateSessionResponse)
async def create_session(
    request: Request,
    principal: Annotated[Principal, Depends(require_role(UserRole.MODERATOR))],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    session_service: Annotated[SessionService, Depends(get_session_service)],
    payload: CreateSessionRequest | None = None,
) -> CreateSessionResponse | JSONResponse:
    """Create a LOBBY session owned by the caller."""
    try:
        created = await session_service.create_session(
            db_session=db_session,
            owner_id=principal.user_id,
            max_participants=payload.max_participants if payload is not None else None,
            request=request,
        )
    except SessionServiceError as exc:
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)

    return CreateSessionResponse(
        id=created.id,
        code=created.code,
        status=created.status,
        max_participants=created.max_participants,
        created_at=created.created_at,
    )


@router.post("/join", response_model=JoinSessionResponse)
async def join_session(
    payload: JoinSessionRequest,
    request: Request,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    session_service: Annotated[SessionService, Depends(get_session_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> JoinSessionResponse | JSONResponse:
    """Join a LOBBY session by code and receive a participant token."""
    try:
        joined = await session_service.join_by_code(
            db_session=db_session,
            code=payload.code,
            color_hex=payload.color_hex,
            display_name=payload.display_name,
        )
    except SessionServiceError as exc:
        await audit_service.record(
            event_type="participant.joined",
            actor_type="participant",
            success=False,
            request=request,
            target_type=_TARGET_SESSION,
            failure_reason=exc.code,
            metadata={"code": payload.code},
        )
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)

    await audit_service.record(
        event_type="participant.joined",
        actor_type="participant",
        success=True,
        request=request,
        actor_id=joined.participant_id,
        target_id=joined.session_id,
        target_type=_TARGET_SESSION,
    )
    return JoinSessionResponse(
        participant_id=joined.participant_id,
        session_id=joined.session_id,
        code=joined.code,
        display_name=joined.display_name,
        token=joined.token,
        expires_at=joined.expires_at,
    )


@router.get("/{session_id}", response_model=SessionDetailsResponse)
async def get_session_details(
    session_id: int,
    principal: Annotated[
        Principal, Depends(require_role(UserRole.MODERATOR, UserRole.RESEARCHER))
    ],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    session_service: Annotated[SessionService, Depends(get_session_service)],
) -> SessionDetailsResponse | JSONResponse:
    """Return session summary with its live participant count."""
    try:
        details = await session_service.get_session_details(
            db_session=db_session,
            session_id=session_id,
            caller_id=principal.user_id,
            caller_role=principal.role,
        )
    except SessionServiceError as exc:
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)

    owner = details.created_by
    return SessionDetailsResponse(
        id=details.id,
        code=details.code,
        status=details.status,
        max_participants=details.max_participants,
        participant_count=details.participant_count,
        created_at=details.created_at,
        created_by=(
            SessionOwnerResponse(id=owner.id, email=owner.email, role=owner.role)
            if owner is not None
            else None
        ),
    )


@router.patch("/{session_id}/status", response_model=SessionStatusResponse)
async def update_session_status(
    session_id: int,
    payload: UpdateSessionStatusRequest,
    request: Request,
    principal: Annotated[Principal, Depends(require_role(UserRole.MODERATOR))],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    session_service: Annotated[SessionService, Depends(get_session_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> SessionStatusResponse | JSONResponse:
    """Move an owned session along its lifecycle."""
    try:
        session_row = await session_service.update_session_status(
            db_session=db_session,
            session_id=session_id,
            new_status=payload.status,
            caller_id=principal.user_id,
        )
    except SessionServiceError as exc:
        await audit_service.record(
            event_type="session.status_changed",
            actor_type="user",
            success=False,
            request=request,
            actor_id=principal.user_id,
            target_id=session_id,
            target_type=_TARGET_SESSION,
            failure_reason=exc.code,
            metadata={"requested_status": payload.status.value},
        )
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)

    await audit_service.record(
        event_type="session.status_changed",
        actor_type="user",
        success=True,
        request=request,
        actor_id=principal.user_id,
        target_id=session_id,
        target_type=_TARGET_SESSION,
        metadata={"status": session_row.status.value},
    )
    return SessionStatusResponse(
        id=session_row.id,
        status=session_row.status,
        code=session_row.code,
    )


@router.get("/{session_id}/participants", response_model=list[ParticipantResponse])
async def list_session_participants(
    session_id: int,
    principal: Annotated[
        Principal, Depends(require_role(UserRole.MODERATOR, UserRole.RESEARCHER))
    ],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    session_service: Annotated[SessionService, Depends(get_session_service)],
) -> list[ParticipantResponse] | JSONResponse:
    """List participants in join order."""
    try:
        participants = await session_service.get_session_participants(
            db_session=db_session,
            session_id=session_id,
            caller_id=principal.user_id,
            caller_role=principal.role,
        )
    except SessionServiceError as exc:
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)

    return [
        ParticipantResponse(
            id=participant.id,
            display_name=participant.display_name,
            color_hex=participant.color_hex,
            joined_at=participant.joined_at,
        )
        for participant in participants
    ]


@router.post("/{session_id}/leave", response_model=LeaveSessionResponse)
async def leave_session(
    session_id: int,
    payload: LeaveSessionRequest,
    request: Request,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    session_service: Annotated[SessionService, Depends(get_session_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> LeaveSessionResponse | JSONResponse:
    """Leave a LOBBY session with the participant token issued at join."""
    try:
        participant_id = await session_service.leave_session(
            db_session=db_session,
            session_id=session_id,
            raw_token=payload.token,
        )
    except SessionServiceError as exc:
        await audit_service.record(
            event_type="participant.left",
            actor_type="participant",
            success=False,
            request=request,
            target_id=session_id,
            target_type=_TARGET_SESSION,
            failure_reason=exc.code,
        )
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)

    await audit_service.record(
        event_type="participant.left",
        actor_type="participant",
        success=True,
        request=request,
        actor_id=participant_id,
        target_id=session_id,
        target_type=_TARGET_SESSION,
    )
    return LeaveSessionResponse(left=True)


@router.delete("/{session_id}", status_code=204, response_model=None)
async def delete_session(
    session_id: int,
    request: Request,
    principal: Annotated[Principal, Depends(require_role(UserRole.MODERATOR))],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    session_service: Annotated[SessionService, Depends(get_session_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> Response:
    """Delete a LOBBY session or abandon a RUNNING one."""
    try:
        outcome = await session_service.delete_or_abandon_session(
            db_session=db_session,
            session_id=session_id,
            owner_id=principal.user_id,
        )
    except SessionServiceError as exc:
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)

    await audit_service.record(
        event_type=f"session.{outcome}",
        actor_type="user",
        success=True,
        request=request,
        actor_id=principal.user_id,
        target_id=session_id,
        target_type=_TARGET_SESSION,
    )
    return Response(status_code=204)
