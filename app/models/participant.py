"""Participant ORM model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base

if TYPE_CHECKING:
    from app.models.session_token import SessionToken
    from app.models.workshop_session import WorkshopSession


class Participant(Base):
    """Joined attendee of one workshop session."""

    __tablename__ = "participants"
    __table_args__ = (Index("ix_participants_session_id_joined_at", "session_id", "joined_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("workshop_sessions.id", ondelete="CASCADE"), nullable=False
    )
    color_hex: Mapped[str] = mapped_column(String(7), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    session: Mapped[WorkshopSession] = relationship(back_populates="participants")
    tokens: Mapped[list[SessionToken]] = relationship(
        back_populates="participant", passive_deletes=True
    )
