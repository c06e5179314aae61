"""Scenario catalogue maintained by moderators and researchers."""

from __future__ import annotations

from functools import lru_cache

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.scenario import Scenario

logger = structlog.get_logger(__name__)

_EDITABLE_FIELDS = ("title", "description", "category", "payload")


class ScenarioServiceError(Exception):
    """Raised for scenario lookups and payload validation failures."""

    def __init__(self, detail: str, code: str, status_code: int) -> None:
        super().__init__(detail)
        self.detail = detail
        self.code = code
        self.status_code = status_code


def _ensure_payload(payload: str) -> None:
    if not payload.strip():
        raise ScenarioServiceError(
            "Scenario payload must be a non-empty prompt", "bad_request", 400
        )


class ScenarioService:
    """Create, edit, list, and archive scenarios."""

    async def create_scenario(
        self,
        db_session: AsyncSession,
        title: str,
        payload: str,
        description: str = "",
        category: str | None = None,
    ) -> Scenario:
        _ensure_payload(payload)
        scenario = Scenario(
            title=title,
            description=description,
            category=category or None,
            payload=payload,
            is_active=True,
        )
        try:
            db_session.add(scenario)
            await db_session.flush()
            await db_session.refresh(scenario)
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()
        logger.info("scenario_created", scenario_id=scenario.id)
        return scenario

    async def update_scenario(
        self,
        db_session: AsyncSession,
        scenario_id: int,
        changes: dict[str, str | None],
    ) -> Scenario:
        """Apply the provided fields only; absent keys keep their stored values."""
        if changes.get("payload") is not None:
            _ensure_payload(str(changes["payload"]))
        try:
            scenario = await self._get(db_session, scenario_id, for_update=True)
            for field_name in _EDITABLE_FIELDS:
                if field_name in changes and changes[field_name] is not None:
                    setattr(scenario, field_name, changes[field_name])
            await db_session.flush()
            await db_session.refresh(scenario)
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()
        return scenario

    async def get_scenario(self, db_session: AsyncSession, scenario_id: int) -> Scenario:
        return await self._get(db_session, scenario_id)

    async def list_scenarios(
        self,
        db_session: AsyncSession,
        search: str | None = None,
        category: str | None = None,
    ) -> list[Scenario]:
        """Active scenarios, newest first, optionally filtered by title substring and category."""
        statement = select(Scenario).where(Scenario.is_active.is_(True))
        if category:
            statement = statement.where(Scenario.category == category)
        term = (search or "").strip()
        if term:
            statement = statement.where(Scenario.title.icontains(term, autoescape=True))
        statement = statement.order_by(Scenario.created_at.desc(), Scenario.id.desc())
        result = await db_session.execute(statement)
        return list(result.scalars().all())

    async def archive_scenario(self, db_session: AsyncSession, scenario_id: int) -> Scenario:
        """Hide a scenario from listings; archiving twice is a no-op."""
        try:
            scenario = await self._get(db_session, scenario_id, for_update=True)
            if scenario.is_active:
                scenario.is_active = False
                await db_session.flush()
                await db_session.refresh(scenario)
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()
        return scenario

    async def _get(
        self,
        db_session: AsyncSession,
        scenario_id: int,
        for_update: bool = False,
    ) -> Scenario:
        statement = select(Scenario).where(Scenario.id == scenario_id)
        if for_update:
            statement = statement.with_for_update()
        result = await db_session.execute(statement)
        scenario = result.scalar_one_or_none()
        if scenario is None:
            raise ScenarioServiceError("Scenario not found", "not_found", 404)
        return scenario


@lru_cache
def get_scenario_service() -> ScenarioService:
    """Create and cache the scenario service."""
    return ScenarioService()
