"""Global exception handlers enforcing API error response contracts."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

VALID_ERROR_CODES = {
    "not_found",
    "forbidden",
    "conflict",
    "bad_request",
    "invalid_credentials",
    "invalid_token",
    "token_expired",
    "internal_error",
}

_DEFAULT_ERROR_CODE_BY_STATUS: dict[int, str] = {
    400: "bad_request",
    401: "invalid_token",
    403: "forbidden",
    404: "not_found",
    405: "bad_request",
    409: "conflict",
    422: "bad_request",
}

logger = structlog.get_logger(__name__)


def _error_response(status_code: int, detail: str, code: str) -> JSONResponse:
    """Build standardized JSON error payload."""
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})


def _resolve_error_code(status_code: int, raw_code: str | None) -> str:
    """Resolve a valid machine-readable error code."""
    if raw_code in VALID_ERROR_CODES:
        return raw_code
    if status_code >= 500:
        return "internal_error"
    return _DEFAULT_ERROR_CODE_BY_STATUS.get(status_code, "bad_request")


def _extract_detail_and_code(detail: Any) -> tuple[str, str | None]:
    """Normalize exception detail payload into message and optional code."""
    if isinstance(detail, dict):
        raw_detail = detail.get("detail", "Request failed.")
        raw_code = detail.get("code")
        return str(raw_detail), str(raw_code) if raw_code is not None else None
    if isinstance(detail, str):
        return detail, None
    return "Request failed.", None


def _sanitize_detail(detail: str, status_code: int, environment: str) -> str:
    """Hide internal failure details outside development."""
    if environment != "development" and status_code >= 500:
        return "Internal server error."
    return detail


def _extract_user_id(request: Request) -> int | None:
    """Extract the authenticated principal id from request state."""
    user_state = getattr(request.state, "user", None)
    if isinstance(user_state, dict):
        return user_state.get("user_id")
    return None


def _is_session_request_path(path: str) -> bool:
    """Return True for session-related request paths."""
    return path == "/sessions" or path.startswith("/sessions/")


def _log_request_rejection(
    request: Request,
    status_code: int,
    detail: str,
    code: str,
) -> None:
    """Emit a WARNING-level log for rejected session requests."""
    if status_code < 400 or status_code >= 500:
        return
    if not _is_session_request_path(request.url.path):
        return

    correlation_id = getattr(
        request.state,
        "correlation_id",
        request.headers.get("x-correlation-id", "unknown"),
    )
    logger.warning(
        "session_request_rejected",
        correlation_id=correlation_id,
        user_id=_extract_user_id(request),
        status_code=status_code,
        code=code,
        detail=detail,
        path=request.url.path,
        method=request.method,
    )


def register_exception_handlers(app: FastAPI, environment: str) -> None:
    """Register global exception handlers enforcing error shape contract."""

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Normalize framework HTTP exceptions to contract payload."""
        detail, raw_code = _extract_detail_and_code(exc.detail)
        code = _resolve_error_code(exc.status_code, raw_code)
        _log_request_rejection(
            request=request, status_code=exc.status_code, detail=detail, code=code
        )
        return _error_response(status_code=exc.status_code, detail=detail, code=code)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Map request validation errors to 400 bad_request."""
        detail = "Invalid request payload."
        errors = exc.errors()
        if errors:
            message = str(errors[0].get("msg", "validation error"))
            detail = f"Invalid request payload: {message.removeprefix('Value error, ')}"
        code = "bad_request"
        _log_request_rejection(request=request, status_code=400, detail=detail, code=code)
        return _error_response(status_code=400, detail=detail, code=code)

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        """Mask internal errors and enforce contract payload."""
        correlation_id = getattr(
            request.state,
            "correlation_id",
            request.headers.get("x-correlation-id", "unknown"),
        )
        logger.error(
            "unhandled_exception",
            correlation_id=correlation_id,
            path=request.url.path,
            method=request.method,
            error=str(exc),
        )
        detail = _sanitize_detail(str(exc), 500, environment)
        return _error_response(status_code=500, detail=detail, code="internal_error")
