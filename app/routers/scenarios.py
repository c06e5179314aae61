"""Scenario catalogue routes for moderators and researchers."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import Principal, get_database_session, require_role
from app.models.scenario import Scenario
from app.models.user import UserRole
from app.schemas.scenario import CreateScenarioRequest, ScenarioResponse, UpdateScenarioRequest
from app.services.audit_service import AuditService, get_audit_service
from app.services.scenario_service import (
    ScenarioService,
    ScenarioServiceError,
    get_scenario_service,
)

router = APIRouter(prefix="/scenarios", tags=["scenarios"])

_TARGET_SCENARIO = "scenario"

StaffPrincipal = Annotated[
    Principal, Depends(require_role(UserRole.MODERATOR, UserRole.RESEARCHER))
]


def _error_response(status_code: int, detail: str, code: str) -> JSONResponse:
    """Build standardized API error response payload."""
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})


def _to_response(scenario: Scenario) -> ScenarioResponse:
    return ScenarioResponse(
        id=scenario.id,
        title=scenario.title,
        description=scenario.description,
        category=scenario.category,
        payload=scenario.payload,
        is_active=scenario.is_active,
        created_at=scenario.created_at,
        updated_at=scenario.updated_at,
    )


async def _audit(
    audit_service: AuditService,
    event_type: str,
    request: Request,
    principal: Principal,
    scenario_id: int,
) -> None:
    await audit_service.record(
        event_type=event_type,
        actor_type="user",
        success=True,
        request=request,
        actor_id=principal.user_id,
        target_id=scenario_id,
        target_type=_TARGET_SCENARIO,
    )


@router.post("", status_code=201, response_model=ScenarioResponse)
async def create_scenario(
    payload: CreateScenarioRequest,
    request: Request,
    principal: StaffPrincipal,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    scenario_service: Annotated[ScenarioService, Depends(get_scenario_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> ScenarioResponse | JSONResponse:
    try:
        scenario = await scenario_service.create_scenario(
            db_session=db_session,
            title=payload.title,
            description=payload.description,
            category=payload.category,
            payload=payload.payload,
        )
    except ScenarioServiceError as exc:
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)
    await _audit(audit_service, "scenario.created", request, principal, scenario.id)
    return _to_response(scenario)


@router.get("", response_model=list[ScenarioResponse])
async def list_scenarios(
    _: StaffPrincipal,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    scenario_service: Annotated[ScenarioService, Depends(get_scenario_service)],
    search: Annotated[str | None, Query(max_length=255)] = None,
    category: Annotated[str | None, Query(max_length=100)] = None,
) -> list[ScenarioResponse]:
    """List active scenarios, newest first."""
    scenarios = await scenario_service.list_scenarios(
        db_session=db_session, search=search, category=category
    )
    return [_to_response(scenario) for scenario in scenarios]


@router.get("/{scenario_id}", response_model=ScenarioResponse)
async def get_scenario(
    scenario_id: int,
    _: StaffPrincipal,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    scenario_service: Annotated[ScenarioService, Depends(get_scenario_service)],
) -> ScenarioResponse | JSONResponse:
    try:
        scenario = await scenario_service.get_scenario(
            db_session=db_session, scenario_id=scenario_id
        )
    except ScenarioServiceError as exc:
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)
    return _to_response(scenario)


@router.patch("/{scenario_id}", response_model=ScenarioResponse)
async def update_scenario(
    scenario_id: int,
    payload: UpdateScenarioRequest,
    request: Request,
    principal: StaffPrincipal,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    scenario_service: Annotated[ScenarioService, Depends(get_scenario_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> ScenarioResponse | JSONResponse:
    """Update the provided fields of a scenario."""
    try:
        scenario = await scenario_service.update_scenario(
            db_session=db_session,
            scenario_id=scenario_id,
            changes=payload.model_dump(exclude_unset=True),
        )
    except ScenarioServiceError as exc:
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)
    await _audit(audit_service, "scenario.updated", request, principal, scenario.id)
    return _to_response(scenario)


@router.patch("/{scenario_id}/archive", response_model=ScenarioResponse)
async def archive_scenario(
    scenario_id: int,
    request: Request,
    principal: StaffPrincipal,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    scenario_service: Annotated[ScenarioService, Depends(get_scenario_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> ScenarioResponse | JSONResponse:
    """Hide a scenario from listings."""
    try:
        scenario = await scenario_service.archive_scenario(
            db_session=db_session, scenario_id=scenario_id
        )
    except ScenarioServiceError as exc:
        return _error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)
    await _audit(audit_service, "scenario.archived", request, principal, scenario.id)
    return _to_response(scenario)
