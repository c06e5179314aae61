"""Unit tests for DB-backed audit service behavior."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from types import SimpleNamespace
from typing import Any
from uuid import UUID, NAMESPACE_URL, uuid5

from app.services import audit_service as audit_module
from app.services.audit_service import AuditService


class _RequestStub:
    """Minimal request-like object used by audit service unit tests."""

    def __init__(
        self,
        headers: dict[str, str] | None = None,
        client_host: str = "127.0.0.1",
        correlation_id: str | None = None,
    ) -> None:
        self.headers = headers or {}
        self.client = SimpleNamespace(host=client_host)
        self.state = SimpleNamespace(correlation_id=correlation_id)


class _SessionStub:
    """AsyncSession-like stub capturing persisted audit events."""

    def __init__(self, fail_commit: bool = False) -> None:
        self.fail_commit = fail_commit
        self.added: list[Any] = []
        self.commit_calls = 0

    def add(self, value: Any) -> None:
        """Capture ORM object added by the service."""
        self.added.append(value)

    async def commit(self) -> None:
        """Commit or raise configured failure."""
        self.commit_calls += 1
        if self.fail_commit:
            raise RuntimeError("db down")


def _opener(session: _SessionStub):
    @asynccontextmanager
    async def _open() -> AsyncIterator[_SessionStub]:
        yield session

    return _open


class _CaptureLogger:
    """Structlog-like sink for error assertions."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def error(self, event: str, **kwargs: Any) -> None:
        """Capture error event payload."""
        self.calls.append((event, kwargs))


async def test_record_persists_event_and_redacts_sensitive_metadata() -> None:
    """record() stores one audit row with redacted metadata and parsed request fields."""
    session = _SessionStub()
    service = AuditService(session_opener=_opener(session))  # type: ignore[arg-type]
    request = _RequestStub(
        headers={"user-agent": "pytest-agent/1.0", "x-forwarded-for": "10.0.0.8, 172.16.0.1"},
        correlation_id="3f2b8a4e-9a55-4e43-a1f5-3a0a1f3f9c11",
    )

    await service.record(
        event_type="participant.left",
        actor_type="participant",
        success=True,
        request=request,  # type: ignore[arg-type]
        actor_id=17,
        target_id=4,
        target_type="workshop_session",
        metadata={
            "status": "LOBBY",
            "participant_token": "eyJ.raw.token",
            "nested": {"authorization": "Bearer abc", "ok": "value"},
            "when": object(),
        },
    )

    assert session.commit_calls == 1
    assert len(session.added) == 1
    event = session.added[0]
    assert event.event_type == "participant.left"
    assert event.actor_type.value == "participant"
    assert event.actor_id == 17
    assert event.target_id == 4
    assert event.ip_address == "10.0.0.8"
    assert event.user_agent == "pytest-agent/1.0"
    assert event.correlation_id == UUID("3f2b8a4e-9a55-4e43-a1f5-3a0a1f3f9c11")
    assert event.event_metadata["status"] == "LOBBY"
    assert event.event_metadata["participant_token"] == "***REDACTED***"
    assert event.event_metadata["nested"]["authorization"] == "***REDACTED***"
    assert event.event_metadata["nested"]["ok"] == "value"
    assert isinstance(event.event_metadata["when"], str)


async def test_record_derives_uuid_from_opaque_correlation_id() -> None:
    """Non-UUID correlation ids are mapped deterministically."""
    session = _SessionStub()
    service = AuditService(session_opener=_opener(session))  # type: ignore[arg-type]

    await service.record(
        event_type="session.created",
        actor_type="user",
        success=True,
        request=_RequestStub(correlation_id="cid-123", client_host="not-an-ip"),  # type: ignore[arg-type]
    )

    event = session.added[0]
    assert event.correlation_id == uuid5(NAMESPACE_URL, "cid-123")
    assert event.ip_address is None


async def test_record_logs_and_swallows_write_failures(monkeypatch) -> None:
    """record() never raises to callers when audit persistence fails."""
    capture = _CaptureLogger()
    monkeypatch.setattr(audit_module, "logger", capture)
    session = _SessionStub(fail_commit=True)
    service = AuditService(session_opener=_opener(session))  # type: ignore[arg-type]

    await service.record(
        event_type="participant.joined",
        actor_type="invalid-actor",
        success=False,
        failure_reason="forbidden",
    )

    assert session.commit_calls == 1
    assert len(capture.calls) == 1
    event_name, payload = capture.calls[0]
    assert event_name == "audit_write_failed"
    assert payload["event_type"] == "participant.joined"
    assert payload["actor_type"] == "system"
    assert payload["success"] is False


async def test_record_session_created_targets_session() -> None:
    """Session creation audit is attributed to the owning user."""
    session = _SessionStub()
    service = AuditService(session_opener=_opener(session))  # type: ignore[arg-type]

    await service.record_session_created(actor_id=3, session_id=99)

    event = session.added[0]
    assert event.event_type == "session.created"
    assert event.actor_type.value == "user"
    assert event.actor_id == 3
    assert event.target_id == 99
    assert event.target_type == "workshop_session"
    assert event.success is True
