"""OpenTelemetry spans around each HTTP request."""

from __future__ import annotations

from fastapi import Request
from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.middleware.metrics import route_label

TRACER_NAME = "app.middleware.tracing"


def _annotate_route(span: Span, request: Request) -> None:
    """Rename the span after routing and attach the targeted session id."""
    route = route_label(request)
    span.update_name(f"{request.method} {route}")
    span.set_attribute("http.route", route)
    session_id = request.path_params.get("session_id")
    if session_id is not None:
        span.set_attribute("workshop.session_id", str(session_id))


class TracingMiddleware(BaseHTTPMiddleware):
    """Open one server span per request; 5xx and exceptions mark it as an error."""

    def __init__(self, app, tracer_provider: trace.TracerProvider | None = None) -> None:
        super().__init__(app)
        self._tracer = trace.get_tracer(TRACER_NAME, tracer_provider=tracer_provider)

    async def dispatch(self, request: Request, call_next) -> Response:
        with self._tracer.start_as_current_span(
            f"{request.method} {request.url.path}",
            kind=trace.SpanKind.SERVER,
        ) as span:
            span.set_attribute("http.method", request.method)
            span.set_attribute("http.target", request.url.path)
            correlation_id = request.headers.get("x-correlation-id")
            if correlation_id:
                span.set_attribute("correlation_id", correlation_id[:128])
            try:
                response = await call_next(request)
            except Exception as exc:
                _annotate_route(span, request)
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR))
                raise

            _annotate_route(span, request)
            span.set_attribute("http.status_code", response.status_code)
            if response.status_code >= 500:
                span.set_status(Status(StatusCode.ERROR))
            else:
                span.set_status(Status(StatusCode.OK))
            return response
