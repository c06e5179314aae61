"""Admin user management routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import Principal, get_database_session, require_role
from app.models.user import UserRole
from app.schemas.user import UpdateUserRoleRequest, UpdateUserRoleResponse, UserListItem
from app.services.audit_service import AuditService, get_audit_service
from app.services.user_service import UserService, UserServiceError, get_user_service

router = APIRouter(prefix="/users", tags=["users"])


def _error_response(status_code: int, detail: str, code: str) -> JSONResponse:
    """Build standardized API error response payload."""
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})


@router.get("", response_model=list[UserListItem])
async def list_users(
    _: Annotated[Principal, Depends(require_role(UserRole.ADMIN))],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    user_service: Annotated[UserService, Depends(get_user_service)],
    role: UserRole | None = None,
    search: Annotated[str | None, Query(max_length=254)] = None,
) -> list[UserListItem]:
    """List active moderators and researchers."""
    users = await user_service.list_users(db_session=db_session, role=role, search=search)
    return [
        UserListItem(id=user.id, email=user.email, role=user.role, created_at=user.created_at)
        for user in users
    ]


@router.patch("/{user_id}/role", response_model=UpdateUserRoleResponse)
async def update_user_role(
    user_id: int,
    payload: UpdateUserRoleRequest,
    request: Request,
    principal: Annotated[Principal, Depends(require_role(UserRole.ADMIN))],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    user_service: Annotated[UserService, Depends(get_user_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> UpdateUserRoleResponse | JSONResponse:
    """Change another user's role."""
    try:
        outcome = await user_service.update_role(
            db_session=db_session,
            actor_id=principal.user_id,
            user_id=user_id,
            new_role=payload.role,
        )
    except UserServiceError as exc:
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)

    if outcome.changed:
        await audit_service.record(
            event_type="user.role_changed",
            actor_type="user",
            success=True,
            request=request,
            actor_id=principal.user_id,
            target_id=user_id,
            target_type="user",
            metadata={
                "previous_role": outcome.previous_role.value,
                "new_role": outcome.user.role.value,
            },
        )
    return UpdateUserRoleResponse(
        id=outcome.user.id,
        email=outcome.user.email,
        role=outcome.user.role,
        message=outcome.message,
    )
