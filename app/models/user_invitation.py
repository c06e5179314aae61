"""Staff invitation ORM model."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, CreatedAtMixin
from app.models.user import UserRole


class InvitationStatus(str, Enum):
    """PENDING until the link is opened, CONSUMED until registration, then ACCEPTED."""

    PENDING = "PENDING"
    CONSUMED = "CONSUMED"
    ACCEPTED = "ACCEPTED"


class UserInvitation(Base, CreatedAtMixin):
    """Admin-issued invitation; expiry is measured from ``created_at``."""

    __tablename__ = "user_invitations"
    __table_args__ = (Index("ix_user_invitations_email_status", "email", "status"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SAEnum(
            UserRole,
            name="user_role",
            create_type=False,
            values_callable=lambda enum_type: [item.value for item in enum_type],
        ),
        nullable=False,
    )
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    status: Mapped[InvitationStatus] = mapped_column(
        SAEnum(
            InvitationStatus,
            name="invitation_status",
            values_callable=lambda enum_type: [item.value for item in enum_type],
        ),
        nullable=False,
        default=InvitationStatus.PENDING,
    )
    created_by_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
