"""Workshop session ORM model."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, CreatedAtMixin

if TYPE_CHECKING:
    from app.models.bmc import BmcProfile, SessionRound
    from app.models.participant import Participant
    from app.models.user import User

SESSION_CODE_CONSTRAINT = "uq_workshop_sessions_code"


class SessionStatus(str, Enum):
    """Lifecycle states of a workshop session."""

    LOBBY = "LOBBY"
    RUNNING = "RUNNING"
    ENDED = "ENDED"
    ABANDONED = "ABANDONED"


class WorkshopSession(Base, CreatedAtMixin):
    """Bounded-capacity workshop instance addressed by a short join code."""

    __tablename__ = "workshop_sessions"
    __table_args__ = (Index("ix_workshop_sessions_created_by_id", "created_by_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    status: Mapped[SessionStatus] = mapped_column(
        SAEnum(
            SessionStatus,
            name="session_status",
            values_callable=lambda enum_type: [item.value for item in enum_type],
        ),
        nullable=False,
        default=SessionStatus.LOBBY,
    )
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    created_by_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    created_by: Mapped[User | None] = relationship(back_populates="sessions")
    participants: Mapped[list[Participant]] = relationship(
        back_populates="session", passive_deletes=True
    )
    bmc_profiles: Mapped[list[BmcProfile]] = relationship(
        back_populates="session", passive_deletes=True
    )
    rounds: Mapped[list[SessionRound]] = relationship(
        back_populates="session", passive_deletes=True
    )
