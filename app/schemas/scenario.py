"""Schemas for scenario catalogue endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field, field_validator

from app.schemas.common import CamelModel


def _strip_required(value: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError("must not be blank")
    return stripped


class CreateScenarioRequest(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    category: str | None = Field(default=None, max_length=100)
    payload: str = Field(min_length=1)

    @field_validator("title", "description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        return _strip_required(value)


class UpdateScenarioRequest(CamelModel):
    """Partial update; omitted fields are left unchanged."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    category: str | None = Field(default=None, max_length=100)
    payload: str | None = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str | None) -> str | None:
        return None if value is None else _strip_required(value)


class ScenarioResponse(CamelModel):
    id: int
    title: str
    description: str
    category: str | None
    payload: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
