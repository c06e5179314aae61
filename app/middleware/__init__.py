"""Middleware package exports."""

from app.middleware.correlation_id import CorrelationIdMiddleware
from app.middleware.logging import LoggingMiddleware
from app.middleware.metrics import MetricsMiddleware, MetricsRegistry, build_metrics_endpoint
from app.middleware.security_headers import SecurityHeadersMiddleware
from app.middleware.tracing import TracingMiddleware

__all__ = [
    "CorrelationIdMiddleware",
    "LoggingMiddleware",
    "MetricsMiddleware",
    "MetricsRegistry",
    "SecurityHeadersMiddleware",
    "TracingMiddleware",
    "build_metrics_endpoint",
]
