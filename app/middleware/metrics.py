"""Prometheus text metrics for HTTP traffic, labelled by route template."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from time import perf_counter

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import PlainTextResponse, Response

METRIC_PREFIX = "workshop_sessions_http"
UNMATCHED_ROUTE = "<unmatched>"
PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

LabelKey = tuple[str, str, str]


@dataclass
class _LatencyTotals:
    count: int = 0
    sum_seconds: float = 0.0


class MetricsRegistry:
    """Thread-safe in-process request counters rendered as Prometheus text."""

    def __init__(self) -> None:
        self._requests: dict[LabelKey, int] = {}
        self._latency: dict[LabelKey, _LatencyTotals] = {}
        self._in_flight = 0
        self._lock = Lock()

    def request_started(self) -> None:
        with self._lock:
            self._in_flight += 1

    def record(self, method: str, path: str, status: str, duration_seconds: float) -> None:
        """Count one finished request and add its latency."""
        key = (method, path, status)
        with self._lock:
            self._in_flight = max(self._in_flight - 1, 0)
            self._requests[key] = self._requests.get(key, 0) + 1
            totals = self._latency.setdefault(key, _LatencyTotals())
            totals.count += 1
            totals.sum_seconds += duration_seconds

    def render_prometheus_text(self) -> str:
        """Render counters, latency summaries and the in-flight gauge."""
        requests_total = f"{METRIC_PREFIX}_requests_total"
        duration = f"{METRIC_PREFIX}_request_duration_seconds"
        in_flight = f"{METRIC_PREFIX}_requests_in_flight"

        with self._lock:
            lines = [
                f"# HELP {requests_total} HTTP requests handled, by method, route and status.",
                f"# TYPE {requests_total} counter",
            ]
            for key in sorted(self._requests):
                lines.append(f"{requests_total}{{{_format_labels(*key)}}} {self._requests[key]}")

            lines.append(f"# HELP {duration} Request latency in seconds.")
            lines.append(f"# TYPE {duration} summary")
            for key in sorted(self._latency):
                totals = self._latency[key]
                labels = _format_labels(*key)
                lines.append(f"{duration}_count{{{labels}}} {totals.count}")
                lines.append(f"{duration}_sum{{{labels}}} {totals.sum_seconds}")

            lines.append(f"# HELP {in_flight} Requests currently being served.")
            lines.append(f"# TYPE {in_flight} gauge")
            lines.append(f"{in_flight} {self._in_flight}")

        return "\n".join(lines) + "\n"


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _format_labels(method: str, path: str, status: str) -> str:
    return (
        f'method="{_escape_label(method)}",'
        f'path="{_escape_label(path)}",'
        f'status="{_escape_label(status)}"'
    )


def route_label(request: Request) -> str:
    """Return the matched route template, e.g. ``/sessions/{session_id}``.

    Unmatched paths collapse into one label so scanners cannot grow the series count.
    """
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return template if isinstance(template, str) else UNMATCHED_ROUTE


DEFAULT_METRICS_REGISTRY = MetricsRegistry()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Record every response, counting unhandled exceptions as status 500."""

    def __init__(self, app, registry: MetricsRegistry = DEFAULT_METRICS_REGISTRY) -> None:
        super().__init__(app)
        self._registry = registry

    async def dispatch(self, request: Request, call_next) -> Response:
        started = perf_counter()
        status_code = 500
        self._registry.request_started()
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            self._registry.record(
                method=request.method,
                path=route_label(request),
                status=str(status_code),
                duration_seconds=perf_counter() - started,
            )


def build_metrics_endpoint(registry: MetricsRegistry = DEFAULT_METRICS_REGISTRY):
    """Build the ``GET /metrics`` route handler for one registry."""

    async def metrics_endpoint() -> PlainTextResponse:
        return PlainTextResponse(
            registry.render_prometheus_text(),
            media_type=PROMETHEUS_CONTENT_TYPE,
        )

    return metrics_endpoint
