"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Quota configuration (priority order, per-backend limits, safety buffer and
search quota) is validated once at load time so a bad deployment fails on
startup rather than on the first admission decision.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


DEFAULT_PRIORITY_ORDER = [
    "gemini-2.5-flash",
    "gemini-2.0-flash",
    "gemini-2.5-flash-lite-preview-06-17",
]


def _default_backend_limits() -> dict[str, "BackendLimits"]:
    return {
        "gemini-2.5-flash": BackendLimits(rpm=10, tpm=250_000, rpd=500),
        "gemini-2.0-flash": BackendLimits(rpm=15, tpm=1_000_000, rpd=1500),
        "gemini-2.5-flash-lite-preview-06-17": BackendLimits(rpm=15, tpm=250_000, rpd=500),
    }


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_quota_settings() -> "QuotaSettings":
    """Build quota settings from environment.

    See _build_app_settings() for rationale about the type ignore.
    """

    return QuotaSettings()  # type: ignore[call-arg]


def _build_messaging_settings() -> "MessagingSettings":
    return MessagingSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class BackendLimits(BaseModel):
    """Provider-imposed limits for a single AI backend."""

    model_config = ConfigDict(frozen=True)

    rpm: int = Field(..., gt=0, description="Requests per minute")
    tpm: int = Field(..., gt=0, description="Tokens per minute")
    rpd: int = Field(..., gt=0, description="Requests per day")


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid API keys for authentication",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class QuotaSettings(BaseSettings):
    """Admission control configuration for AI backends and web search.

    Complex values are read from the environment as JSON, e.g.::

        QUOTA_PRIORITY_ORDER='["gemini-2.5-flash", "gemini-2.0-flash"]'
        QUOTA_BACKEND_LIMITS='{"gemini-2.5-flash": {"rpm": 10, "tpm": 250000, "rpd": 500}}'
    """

    priority_order: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PRIORITY_ORDER),
        description="Backends in selection order, primary first",
    )
    backend_limits: dict[str, BackendLimits] = Field(
        default_factory=_default_backend_limits,
        description="Static rpm/tpm/rpd limits keyed by backend id",
    )
    safety_buffer: float = Field(
        0.8,
        gt=0,
        lt=1,
        description="Fraction of each provider limit used as the admission threshold",
    )
    search_monthly_quota: int = Field(
        2000,
        ge=0,
        description="Free web searches per calendar month (no safety buffer applied)",
    )

    model_config = SettingsConfigDict(
        env_prefix="QUOTA_",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def _check_priority_order(self) -> "QuotaSettings":
        if not self.priority_order:
            raise ValueError("priority_order must contain at least one backend")

        seen: set[str] = set()
        for backend in self.priority_order:
            if not backend:
                raise ValueError("priority_order entries must be non-empty strings")
            if backend in seen:
                raise ValueError(f"priority_order lists '{backend}' more than once")
            seen.add(backend)

        missing = [b for b in self.priority_order if b not in self.backend_limits]
        if missing:
            raise ValueError(f"backend_limits missing for: {', '.join(missing)}")
        return self

    def limits_for(self, backend: str) -> BackendLimits | None:
        return self.backend_limits.get(backend)


class MessagingSettings(BaseSettings):
    """Outgoing message constraints of the chat platform."""

    max_message_length: int = Field(
        2000,
        ge=20,
        description="Maximum characters per delivered message",
    )

    model_config = SettingsConfigDict(
        env_prefix="MESSAGING_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log output: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10_485_760,
        ge=0,
        description="Rotate log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, ge=0, description="Rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used for request correlation",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    quota: QuotaSettings = Field(default_factory=_build_quota_settings)
    messaging: MessagingSettings = Field(default_factory=_build_messaging_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
