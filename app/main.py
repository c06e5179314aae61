"""FastAPI application factory."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import configure_structlog, get_settings
from app.db.session import dispose_engine
from app.error_handlers import register_exception_handlers
from app.middleware import (
    CorrelationIdMiddleware,
    LoggingMiddleware,
    MetricsMiddleware,
    SecurityHeadersMiddleware,
    TracingMiddleware,
    build_metrics_endpoint,
)
from app.routers import auth, health, invitations, scenarios, sessions, users


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Release pooled database connections on shutdown."""
    yield
    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_structlog(settings)

    app = FastAPI(title=settings.app.service, lifespan=lifespan)
    app.add_middleware(TracingMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
    register_exception_handlers(app, environment=settings.app.environment)

    app.add_api_route(
        "/metrics", build_metrics_endpoint(), methods=["GET"], include_in_schema=False
    )
    app.include_router(auth.router)
    app.include_router(invitations.router)
    app.include_router(users.router)
    app.include_router(scenarios.router)
    app.include_router(sessions.router)
    app.include_router(health.router)
    return app


app = create_app()
