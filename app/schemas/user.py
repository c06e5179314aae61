"""Schemas for admin user management endpoints."""

from __future__ import annotations

from datetime import datetime

from app.models.user import UserRole
from app.schemas.common import CamelModel


class UserListItem(CamelModel):
    id: int
    email: str
    role: UserRole
    created_at: datetime


class UpdateUserRoleRequest(CamelModel):
    role: UserRole


class UpdateUserRoleResponse(CamelModel):
    id: int
    email: str
    role: UserRole
    message: str
