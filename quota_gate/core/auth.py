"""API key authentication for the status and operator endpoints.

Keys are validated against a comma-separated list from environment variables.
Operator hooks (counter resets) mutate shared quota state, so they must never
be reachable without a key when authentication is enabled.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Annotated

from fastapi import Header, HTTPException, status

from quota_gate.core.config import settings
from quota_gate.core.errors import AuthenticationAppError

logger = logging.getLogger(__name__)


def _key_fingerprint(api_key: str) -> str:
    """Short, non-reversible fingerprint used in logs instead of the key."""
    return hashlib.sha256(api_key.encode()).hexdigest()[:16]


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> sorted(parse_api_keys("key1, key2 ,key3 "))
        ['key1', 'key2', 'key3']
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()
    return {key.strip() for key in keys_string.split(",") if key.strip()}


def validate_api_key(provided_key: str) -> None:
    """Check a key against the configured keys.

    Args:
        provided_key: API key to validate.

    Raises:
        AuthenticationAppError: If no keys are configured or the key is unknown.
    """
    if not settings.app.api_key_required:
        return

    valid_keys = parse_api_keys(settings.app.api_keys)
    if not valid_keys:
        logger.error(
            "auth.keys_not_configured",
            extra={"auth_required": settings.app.api_key_required},
        )
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    if provided_key not in valid_keys:
        logger.warning(
            "auth.invalid_key",
            extra={"api_key_hash": _key_fingerprint(provided_key) if provided_key else None},
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


async def verify_api_key(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency enforcing the X-API-Key header.

    Usage:
        @router.post("/quota/reset", dependencies=[Depends(verify_api_key)])

    Raises:
        HTTPException: 403 Forbidden if authentication fails.
    """
    if not settings.app.api_key_required:
        logger.debug("auth.skipped", extra={"reason": "auth_required_false"})
        return

    if not x_api_key:
        logger.warning("auth.missing_key", extra={"api_key_present": False})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing API key. Provide X-API-Key header.",
        )

    try:
        validate_api_key(x_api_key)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    logger.debug("auth.success", extra={"api_key_hash": _key_fingerprint(x_api_key)})
