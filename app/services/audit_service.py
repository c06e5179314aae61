"""Audit service backed by immutable database events."""

from __future__ import annotations

import ipaddress
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from functools import lru_cache
from typing import Any
from uuid import NAMESPACE_URL, UUID, uuid5

import structlog
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import open_db_session
from app.models.audit_event import AuditActorType, AuditEvent

logger = structlog.get_logger(__name__)

SessionOpener = Callable[[], AbstractAsyncContextManager[AsyncSession]]

_REDACTED = "***REDACTED***"
_SENSITIVE_KEY_PARTS = (
    "authorization",
    "cookie",
    "password",
    "secret",
    "token",
)


def _is_sensitive_key(key: str) -> bool:
    """Return True when metadata key likely contains credential material."""
    normalized = key.strip().lower().replace("-", "_")
    return any(part in normalized for part in _SENSITIVE_KEY_PARTS)


def _coerce_ip(value: str | None) -> str | None:
    """Normalize IP address strings to canonical values."""
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def _extract_client_ip(request: Request | None) -> str | None:
    """Extract canonical client IP from forwarding headers or peer address."""
    if request is None:
        return None
    forwarded_for = request.headers.get("x-forwarded-for", "").strip()
    if forwarded_for:
        parsed = _coerce_ip(forwarded_for.split(",")[0].strip())
        if parsed is not None:
            return parsed

    client = request.client
    if client is None:
        return None
    return _coerce_ip(client.host)


def _extract_correlation_id(request: Request | None) -> UUID | None:
    """Resolve request correlation ID into UUID form for storage."""
    if request is None:
        return None
    raw_value = getattr(request.state, "correlation_id", None) or request.headers.get(
        "x-correlation-id"
    )
    if raw_value is None:
        return None
    text = str(raw_value).strip()
    if not text:
        return None
    try:
        return UUID(text)
    except ValueError:
        return uuid5(NAMESPACE_URL, text)


def _sanitize_metadata(metadata: dict[str, Any] | None) -> dict[str, Any] | None:
    """Redact credential-bearing keys and coerce values to JSON-safe primitives."""
    if metadata is None:
        return None
    sanitized: dict[str, Any] = {}
    for key, value in metadata.items():
        if _is_sensitive_key(key):
            sanitized[key] = _REDACTED
        elif isinstance(value, dict):
            sanitized[key] = _sanitize_metadata(value)
        elif value is None or isinstance(value, bool | int | float | str):
            sanitized[key] = value
        else:
            sanitized[key] = str(value)
    return sanitized or None


class AuditService:
    """Persist immutable audit events without affecting the audited operation."""

    def __init__(self, session_opener: SessionOpener = open_db_session) -> None:
        self._open_session = session_opener

    async def record(
        self,
        event_type: str,
        actor_type: str,
        success: bool,
        request: Request | None = None,
        actor_id: int | None = None,
        target_id: int | None = None,
        target_type: str | None = None,
        failure_reason: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Write one append-only audit row in its own transaction and swallow failures."""
        try:
            normalized_actor_type = AuditActorType(actor_type)
        except ValueError:
            normalized_actor_type = AuditActorType.SYSTEM

        try:
            audit_event = AuditEvent(
                event_type=event_type.strip(),
                actor_id=actor_id,
                actor_type=normalized_actor_type,
                target_id=target_id,
                target_type=target_type.strip() if target_type else None,
                ip_address=_extract_client_ip(request),
                user_agent=request.headers.get("user-agent") if request is not None else None,
                correlation_id=_extract_correlation_id(request),
                success=success,
                failure_reason=failure_reason.strip() if failure_reason else None,
                event_metadata=_sanitize_metadata(metadata),
            )
            async with self._open_session() as audit_db:
                audit_db.add(audit_event)
                await audit_db.commit()
        except Exception as exc:
            logger.error(
                "audit_write_failed",
                event_type=event_type,
                actor_type=normalized_actor_type.value,
                success=success,
                error=str(exc),
            )

    async def record_session_created(
        self,
        actor_id: int,
        session_id: int,
        request: Request | None = None,
    ) -> None:
        """Record SESSION_CREATED for the owning principal."""
        await self.record(
            event_type="session.created",
            actor_type=AuditActorType.USER.value,
            success=True,
            request=request,
            actor_id=actor_id,
            target_id=session_id,
            target_type="workshop_session",
        )


@lru_cache
def get_audit_service() -> AuditService:
    """Create and cache audit service dependency."""
    return AuditService()
