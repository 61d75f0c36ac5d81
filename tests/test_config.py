"""Tests for quota configuration loading and validation."""

import pytest
from pydantic import ValidationError

from quota_gate.core.config import (
    DEFAULT_PRIORITY_ORDER,
    BackendLimits,
    MessagingSettings,
    QuotaSettings,
)


def _limits() -> BackendLimits:
    return BackendLimits(rpm=10, tpm=1000, rpd=100)


def test_defaults_cover_priority_order() -> None:
    quota = QuotaSettings()

    assert quota.priority_order == DEFAULT_PRIORITY_ORDER
    assert all(quota.limits_for(backend) is not None for backend in quota.priority_order)
    assert quota.safety_buffer == 0.8
    assert quota.search_monthly_quota == 2000


def test_limits_for_unknown_backend_is_none() -> None:
    assert QuotaSettings().limits_for("unknown") is None


def test_empty_priority_order_is_rejected() -> None:
    with pytest.raises(ValidationError, match="at least one backend"):
        QuotaSettings(priority_order=[], backend_limits={"a": _limits()})


def test_duplicate_priority_entry_is_rejected() -> None:
    with pytest.raises(ValidationError, match="more than once"):
        QuotaSettings(priority_order=["a", "a"], backend_limits={"a": _limits()})


def test_empty_priority_entry_is_rejected() -> None:
    with pytest.raises(ValidationError, match="non-empty"):
        QuotaSettings(priority_order=[""], backend_limits={"": _limits()})


def test_priority_entry_without_limits_is_rejected() -> None:
    with pytest.raises(ValidationError, match="backend_limits missing for: b"):
        QuotaSettings(priority_order=["a", "b"], backend_limits={"a": _limits()})


@pytest.mark.parametrize("buffer", [0, 1, 1.5, -0.1])
def test_safety_buffer_must_be_a_fraction(buffer: float) -> None:
    with pytest.raises(ValidationError):
        QuotaSettings(safety_buffer=buffer)


@pytest.mark.parametrize("field", ["rpm", "tpm", "rpd"])
def test_limits_must_be_positive(field: str) -> None:
    values = {"rpm": 10, "tpm": 1000, "rpd": 100, field: 0}

    with pytest.raises(ValidationError):
        BackendLimits(**values)


def test_negative_search_quota_is_rejected() -> None:
    with pytest.raises(ValidationError):
        QuotaSettings(search_monthly_quota=-1)


def test_quota_settings_read_json_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("QUOTA_PRIORITY_ORDER", '["m1", "m2"]')
    monkeypatch.setenv(
        "QUOTA_BACKEND_LIMITS",
        '{"m1": {"rpm": 5, "tpm": 100, "rpd": 50}, "m2": {"rpm": 6, "tpm": 200, "rpd": 60}}',
    )
    monkeypatch.setenv("QUOTA_SAFETY_BUFFER", "0.5")
    monkeypatch.setenv("QUOTA_SEARCH_MONTHLY_QUOTA", "10")

    quota = QuotaSettings()

    assert quota.priority_order == ["m1", "m2"]
    assert quota.limits_for("m2") == BackendLimits(rpm=6, tpm=200, rpd=60)
    assert quota.safety_buffer == 0.5
    assert quota.search_monthly_quota == 10


def test_messaging_settings_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MESSAGING_MAX_MESSAGE_LENGTH", "500")

    assert MessagingSettings().max_message_length == 500


def test_messaging_limit_has_floor() -> None:
    with pytest.raises(ValidationError):
        MessagingSettings(max_message_length=5)
