"""Liveness and readiness probes."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.db.session import get_engine
from app.models.workshop_session import WorkshopSession

router = APIRouter(prefix="/health", tags=["health"])
logger = structlog.get_logger(__name__)


async def check_database_ready() -> bool:
    """Return True once Postgres answers and the session tables are migrated."""
    probe = select(WorkshopSession.id).limit(1)
    try:
        async with get_engine().connect() as connection:
            await connection.execute(probe)
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("postgres_not_ready", error=str(exc))
        return False
    return True


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}


@router.get("/ready")
async def ready(
    database_ready: Annotated[bool, Depends(check_database_ready)],
) -> dict[str, str]:
    if not database_ready:
        raise HTTPException(
            status_code=503,
            detail={"detail": "Service not ready.", "code": "internal_error"},
        )
    return {"status": "ready"}
