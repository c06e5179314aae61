"""Hardening headers for a JSON-only API."""

from __future__ import annotations

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

API_SECURITY_HEADERS: dict[str, str] = {
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'; base-uri 'none'",
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains",
}

# Responses under these prefixes can carry participant or refresh credentials.
NO_STORE_PREFIXES = ("/sessions", "/auth")


def _carries_credentials(path: str) -> bool:
    return any(path == prefix or path.startswith(f"{prefix}/") for prefix in NO_STORE_PREFIXES)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Stamp security headers on every response, including error responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        for name, value in API_SECURITY_HEADERS.items():
            response.headers[name] = value
        if _carries_credentials(request.url.path):
            response.headers["Cache-Control"] = "no-store"
        return response
