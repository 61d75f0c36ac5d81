"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    backend: str
    metric: str
    key: str
    operation: str
    usage: int
    quota: int
    failed_backends: list[str]
    configured_backends: list[str]
    retry_after: float
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class UnknownBackendError(AppError):
    """Raised when a backend id is not present in the quota configuration."""


class CounterStoreError(AppError):
    """Raised when the counter store cannot be read or written."""


class QuotaExhaustedAppError(AppError):
    """Raised when every configured backend is over its admission threshold."""


class SelectionFailedAppError(AppError):
    """Raised when backend selection could not complete because of store failures."""


class SearchQuotaExceededAppError(AppError):
    """Raised when the monthly search quota has been used up."""


class SearchUnavailableAppError(AppError):
    """Raised when search is requested but no search client is configured."""


class BackendAppError(AppError):
    """Raised when a chat or search provider call fails."""
