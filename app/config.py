"""Application settings and logging configuration."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_CONTEXT: dict[str, str] = {"environment": "development", "service": "workshop-sessions"}


class AppSettings(BaseModel):
    """Application identity and runtime settings."""

    environment: Literal["development", "staging", "production"]
    service: str = "workshop-sessions"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = Field(description="Async SQLAlchemy URL using asyncpg driver.")
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    pool_timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("url")
    @classmethod
    def validate_asyncpg_url(cls, value: str) -> str:
        """Ensure SQLAlchemy uses the asyncpg driver."""
        if not value.startswith("postgresql+asyncpg://"):
            raise ValueError("database.url must start with 'postgresql+asyncpg://'.")
        return value


class JWTSettings(BaseModel):
    """Shared secret for access tokens and participant credentials.

    `algorithm` applies to access tokens only.
    """

    algorithm: Literal["HS256", "HS384", "HS512"] = "HS256"
    secret: SecretStr
    access_token_ttl_seconds: int = Field(default=900, ge=1)

    @field_validator("secret")
    @classmethod
    def validate_secret(cls, value: SecretStr) -> SecretStr:
        """Reject blank secrets so signing never runs with an empty key."""
        if not value.get_secret_value().strip():
            raise ValueError("jwt.secret must not be empty.")
        return value


class ParticipantTokenSettings(BaseModel):
    """Participant credential lifetime."""

    ttl_minutes: int = Field(default=480, ge=1)


class SessionCodeSettings(BaseModel):
    """Join-code shape shared by generation and validation."""

    length: int = Field(default=5, ge=1, le=32)


class SessionSettings(BaseModel):
    """Workshop session capacity and creation limits."""

    default_max_participants: int = Field(default=5, ge=1)
    max_participants_limit: int = Field(default=50, ge=1)
    code_retry_limit: int = Field(default=5, ge=1)


class RefreshTokenSettings(BaseModel):
    """Opaque refresh-token lifetime for staff logins."""

    ttl_hours: int = Field(default=8, ge=1)


class PasswordSettings(BaseModel):
    """bcrypt work factor for staff passwords."""

    bcrypt_rounds: int = Field(default=12, ge=4, le=31)


class InvitationSettings(BaseModel):
    """Staff invitation lifetime and delivery switch."""

    expiration_hours: int = Field(default=24, ge=1)
    email_enabled: bool = True


class CleanupSettings(BaseModel):
    """Periodic session-token sweep policy."""

    revoked_token_grace_seconds: int = Field(default=86400, ge=0)


class Settings(BaseSettings):
    """Root application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app: AppSettings
    database: DatabaseSettings
    jwt: JWTSettings
    participant_tokens: ParticipantTokenSettings = ParticipantTokenSettings()
    refresh_tokens: RefreshTokenSettings = RefreshTokenSettings()
    passwords: PasswordSettings = PasswordSettings()
    invitations: InvitationSettings = InvitationSettings()
    session_codes: SessionCodeSettings = SessionCodeSettings()
    sessions: SessionSettings = SessionSettings()
    cleanup: CleanupSettings = CleanupSettings()


def _standard_log_fields(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Inject required structured logging fields."""
    context_vars = structlog.contextvars.get_contextvars()
    event_dict.setdefault("correlation_id", str(context_vars.get("correlation_id", "unknown")))
    event_dict.setdefault("environment", _LOG_CONTEXT["environment"])
    event_dict.setdefault("service", _LOG_CONTEXT["service"])
    event_dict.setdefault("timestamp", datetime.now(UTC).isoformat())
    return event_dict


def configure_structlog(settings: Settings) -> None:
    """Configure structlog for JSON output with required fields."""
    _LOG_CONTEXT["environment"] = settings.app.environment
    _LOG_CONTEXT["service"] = settings.app.service

    log_level = getattr(logging, settings.app.log_level, logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _standard_log_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@lru_cache
def get_settings() -> Settings:
    """Load and cache application settings from environment variables."""
    return Settings()
