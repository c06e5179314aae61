"""Structured request logging middleware with credential redaction."""

from __future__ import annotations

import re
from time import perf_counter
from typing import Any

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

SENSITIVE_KEYS = {
    "access_token",
    "authorization",
    "cookie",
    "password",
    "secret",
    "set-cookie",
    "token",
}
REDACTED = "***REDACTED***"
_SESSION_PATH = re.compile(r"^/sessions/(\d+)(?:/|$)")

logger = structlog.get_logger(__name__)


def _is_sensitive_key(key: str) -> bool:
    normalized = key.lower().replace("-", "_")
    return normalized in SENSITIVE_KEYS or any(
        marker in normalized for marker in ("token", "password", "secret")
    )


def redact_query(request: Request) -> dict[str, str]:
    """Return query parameters with credential-looking values masked."""
    return {
        key: REDACTED if _is_sensitive_key(key) else value
        for key, value in request.query_params.items()
    }


def target_session_id(path: str) -> int | None:
    """Session id addressed by a ``/sessions/{id}`` route, if any."""
    match = _SESSION_PATH.match(path)
    return int(match.group(1)) if match else None


def _principal_id(request: Request) -> int | None:
    user_state = getattr(request.state, "user", None)
    if isinstance(user_state, dict):
        return user_state.get("user_id")
    return None


def _client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for", "").strip()
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Emit one ``request_completed`` log per request.

    5xx and unhandled failures log at error level, 4xx at warning, everything else at info.
    Participant tokens and bearer credentials never reach the log payload.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        started = perf_counter()
        fields: dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
            "query_params": redact_query(request),
            "session_id": target_session_id(request.url.path),
            "client_ip": _client_ip(request),
        }

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_completed",
                status_code=500,
                duration_ms=round((perf_counter() - started) * 1000, 2),
                principal_id=_principal_id(request),
                **fields,
            )
            raise

        if response.status_code >= 500:
            log_event = logger.error
        elif response.status_code >= 400:
            log_event = logger.warning
        else:
            log_event = logger.info
        log_event(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round((perf_counter() - started) * 1000, 2),
            principal_id=_principal_id(request),
            **fields,
        )
        return response
