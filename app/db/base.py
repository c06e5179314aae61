"""Declarative base shared by ORM models and Alembic autogenerate."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, MetaData, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Deterministic constraint names; code-collision detection matches "uq_workshop_sessions_code".
NAMING_CONVENTION = {
    "pk": "pk_%(table_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "ix": "ix_%(column_0_label)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class CreatedAtMixin:
    """Adds a database-populated ``created_at``."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


def register_models() -> None:
    """Import every model module so ``Base.metadata`` sees all session tables."""
    from app.models import (  # noqa: F401
        audit_event,
        bmc,
        participant,
        refresh_token,
        scenario,
        session_token,
        user,
        user_invitation,
        workshop_session,
    )


register_models()
