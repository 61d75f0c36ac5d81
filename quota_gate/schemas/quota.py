"""Pydantic schemas for admission control and quota status."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from quota_gate.core.config import BackendLimits


MINUTE_SECONDS = 60
DAY_SECONDS = 24 * 60 * 60


class Metric(str, Enum):
    """Quota axes tracked per backend."""

    RPM = "rpm"
    TPM = "tpm"
    RPD = "rpd"

    @property
    def window_seconds(self) -> int:
        """Length of the fixed counting window for this metric."""
        if self is Metric.RPD:
            return DAY_SECONDS
        return MINUTE_SECONDS


class MetricValues(BaseModel):
    """One integer per quota axis."""

    rpm: int = 0
    tpm: int = 0
    rpd: int = 0

    def get(self, metric: Metric) -> int:
        return getattr(self, metric.value)


class MetricResets(BaseModel):
    """Next window boundary per quota axis (UTC)."""

    rpm: datetime
    tpm: datetime
    rpd: datetime


class CapacitySnapshot(BaseModel):
    """Point-in-time view of a backend's quota usage.

    Computed per call from the raw counters and the static limits; never
    persisted.
    """

    backend: str = Field(..., description="Backend/model identifier.")
    limits: BackendLimits = Field(..., description="Provider-imposed limits.")
    current: MetricValues = Field(..., description="Usage counted in the current windows.")
    remaining: MetricValues = Field(
        ...,
        description="max(0, limit - current) per metric; never negative.",
    )
    reset_at: MetricResets = Field(..., description="When each counting window rolls over.")
    utilization_percentage: float = Field(
        ...,
        ge=0,
        le=100,
        description="Highest usage across metrics relative to the buffered threshold.",
    )
    can_admit: bool = Field(
        ...,
        description="True iff every metric is below limit * safety_buffer.",
    )
    switch_threshold_percentage: float = Field(
        ...,
        description="Safety buffer expressed as a percentage of the provider limit.",
    )
    last_request_at: datetime | None = Field(
        default=None,
        description="Timestamp of the last recorded usage, if known.",
    )


class UsageAmount(BaseModel):
    """Consumption reported after a successful backend call."""

    requests: int = Field(0, ge=0, description="Requests to add to rpm and rpd.")
    tokens: int = Field(0, ge=0, description="Tokens to add to tpm.")


class SelectionStatus(str, Enum):
    """Outcome kinds of a backend selection scan."""

    SELECTED = "selected"
    NONE_AVAILABLE = "none_available"
    FAILED = "failed"


class SelectionResult(BaseModel):
    """Result of walking the priority order.

    ``NONE_AVAILABLE`` means every candidate was read and found over its
    threshold. ``FAILED`` means no candidate was admissible and at least one
    could not be read from the counter store.
    """

    status: SelectionStatus
    backend: str | None = None
    failed_backends: list[str] = Field(default_factory=list)

    @property
    def selected(self) -> bool:
        return self.status is SelectionStatus.SELECTED


class SelectionRequest(BaseModel):
    preferred: str | None = Field(None, description="Backend to try before the priority order.")
    estimated_tokens: int = Field(
        0,
        ge=0,
        description="Projected token cost of the incoming request (0 = only look at consumed usage).",
    )


class SearchQuotaStatus(BaseModel):
    """Monthly search quota view."""

    month: str = Field(..., description="UTC calendar month, YYYY-MM.")
    usage: int = Field(..., ge=0)
    quota: int = Field(..., ge=0)
    remaining: int = Field(..., ge=0)
    available: bool
