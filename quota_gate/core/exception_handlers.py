"""Global exception handlers for consistent error responses.

Design:
- AppError subclasses → status code looked up from ``STATUS_BY_ERROR``
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for distributed tracing
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from quota_gate.core.errors import (
    AppError,
    AuthenticationAppError,
    BackendAppError,
    CounterStoreError,
    QuotaExhaustedAppError,
    SearchQuotaExceededAppError,
    SearchUnavailableAppError,
    SelectionFailedAppError,
    UnknownBackendError,
    ValidationAppError,
)
from quota_gate.core.logging import get_request_id

logger = logging.getLogger(__name__)

# Most specific classes first; the first isinstance match wins.
STATUS_BY_ERROR: list[tuple[type[AppError], int]] = [
    (ValidationAppError, 400),
    (AuthenticationAppError, 403),
    (UnknownBackendError, 404),
    (QuotaExhaustedAppError, 429),
    (SearchQuotaExceededAppError, 429),
    (BackendAppError, 502),
    (CounterStoreError, 503),
    (SelectionFailedAppError, 503),
    (SearchUnavailableAppError, 503),
]


def status_code_for(exc: AppError) -> int:
    """Map a domain error to its HTTP status code (400 when unmapped)."""
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    All responses include:
    - error.code: Machine-readable error code
    - error.message: Human-readable message
    - error.request_id: For distributed tracing
    - error.details: Optional structured context

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = status_code_for(exc)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(status_code=status_code, content={"error": error_content})


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic
    message; no stack traces reach the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Example:
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
