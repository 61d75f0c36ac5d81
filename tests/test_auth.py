"""Unit tests for API key authentication of the quota endpoints."""

import logging
from unittest.mock import patch

import pytest
from fastapi import HTTPException

from quota_gate.core.auth import parse_api_keys, validate_api_key, verify_api_key
from quota_gate.core.errors import AuthenticationAppError


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("operator-key", {"operator-key"}),
        ("k1,k2,k3", {"k1", "k2", "k3"}),
        ("k1 , k2  ,  k3", {"k1", "k2", "k3"}),
        ("k1,k2,k1", {"k1", "k2"}),
        (None, set()),
        ("", set()),
        ("   ,  ,  ", set()),
    ],
)
def test_parse_api_keys(raw, expected) -> None:
    assert parse_api_keys(raw) == expected


class TestValidateAPIKey:
    """Core key validation."""

    @patch("quota_gate.core.auth.settings")
    def test_bypassed_when_auth_disabled(self, mock_settings) -> None:
        mock_settings.app.api_key_required = False

        validate_api_key("anything")
        validate_api_key("")

    @pytest.mark.parametrize("configured", [None, "", " , "])
    @patch("quota_gate.core.auth.settings")
    def test_fails_closed_without_configured_keys(self, mock_settings, configured) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = configured

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("some-key")

        assert exc_info.value.code == "api_keys_not_configured"

    @patch("quota_gate.core.auth.settings")
    def test_accepts_configured_keys(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = " ops-1 , ops-2 "

        validate_api_key("ops-1")
        validate_api_key("ops-2")

    @pytest.mark.parametrize("provided", ["wrong", "", " ops-1 "])
    @patch("quota_gate.core.auth.settings")
    def test_rejects_unknown_keys(self, mock_settings, provided) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "ops-1"

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key(provided)

        assert exc_info.value.code == "invalid_api_key"

    @patch("quota_gate.core.auth.settings")
    def test_rejected_key_is_not_logged_in_clear(self, mock_settings, caplog) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "ops-1"

        with caplog.at_level(logging.WARNING, logger="quota_gate.core.auth"):
            with pytest.raises(AuthenticationAppError):
                validate_api_key("leaked-secret")

        record = next(r for r in caplog.records if r.getMessage() == "auth.invalid_key")
        assert record.api_key_hash != "leaked-secret"
        assert len(record.api_key_hash) == 16


class TestVerifyAPIKeyDependency:
    """FastAPI dependency behaviour."""

    @pytest.mark.asyncio
    @patch("quota_gate.core.auth.settings")
    async def test_bypassed_when_auth_disabled(self, mock_settings) -> None:
        mock_settings.app.api_key_required = False

        await verify_api_key(x_api_key=None)

    @pytest.mark.asyncio
    @patch("quota_gate.core.auth.settings")
    async def test_missing_header_is_403(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "ops-1"

        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(x_api_key=None)

        assert exc_info.value.status_code == 403
        assert "Missing API key" in exc_info.value.detail

    @pytest.mark.asyncio
    @patch("quota_gate.core.auth.settings")
    async def test_invalid_key_is_403(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "ops-1"

        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(x_api_key="wrong")

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "Invalid or missing API key"

    @pytest.mark.asyncio
    @patch("quota_gate.core.auth.settings")
    async def test_unconfigured_keys_is_403(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = None

        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(x_api_key="ops-1")

        assert exc_info.value.status_code == 403
        assert "no valid keys are configured" in exc_info.value.detail

    @pytest.mark.asyncio
    @patch("quota_gate.core.auth.settings")
    async def test_valid_key_passes(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "ops-1,ops-2"

        await verify_api_key(x_api_key="ops-2")
