"""Correlation ID middleware."""

from __future__ import annotations

import re
from uuid import uuid4

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

CORRELATION_ID_HEADER = "X-Correlation-ID"
MAX_CORRELATION_ID_LENGTH = 128
_ACCEPTED_CORRELATION_ID = re.compile(r"^[A-Za-z0-9._:-]+$")
_CONTEXT_KEYS = ("correlation_id", "http_method", "http_path")


def resolve_correlation_id(raw_value: str | None) -> str:
    """Keep a caller-supplied id when it is short and header-safe, else mint one."""
    candidate = (raw_value or "").strip()
    if (
        candidate
        and len(candidate) <= MAX_CORRELATION_ID_LENGTH
        and _ACCEPTED_CORRELATION_ID.match(candidate)
    ):
        return candidate
    return str(uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Attach a correlation ID and bind request context for session service logs."""

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = resolve_correlation_id(request.headers.get(CORRELATION_ID_HEADER))
        request.state.correlation_id = correlation_id
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            http_method=request.method,
            http_path=request.url.path,
        )

        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars(*_CONTEXT_KEYS)

        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
