"""Capacity math for a single backend.

Pure functions turning raw counter values and static limits into a
``CapacitySnapshot``. No I/O happens here; the rate limit engine reads the
counters and passes them in.
"""

from __future__ import annotations

from datetime import datetime, timezone

from quota_gate.core.config import BackendLimits
from quota_gate.schemas.quota import (
    CapacitySnapshot,
    Metric,
    MetricResets,
    MetricValues,
)


def window_reset_at(now: float, window_seconds: int) -> datetime:
    """Return the end of the fixed window containing ``now``.

    Args:
        now: UNIX time in seconds.
        window_seconds: Size of the fixed window in seconds.

    Returns:
        UTC datetime of the next window boundary.
    """
    window_start = int(now // window_seconds) * window_seconds
    return datetime.fromtimestamp(window_start + window_seconds, tz=timezone.utc)


def admission_threshold(limit: int, safety_buffer: float) -> float:
    return limit * safety_buffer


def compute_capacity(
    backend: str,
    limits: BackendLimits,
    current: MetricValues,
    *,
    safety_buffer: float,
    now: float,
    estimated_tokens: int = 0,
    last_request_at: datetime | None = None,
) -> CapacitySnapshot:
    """Build a capacity snapshot for one backend.

    A backend is admissible only while every metric is strictly below
    ``limit * safety_buffer``. ``remaining`` is measured against the raw
    provider limit and clamped at zero.

    Args:
        backend: Backend identifier.
        limits: Static provider limits.
        current: Usage counted in the current windows.
        safety_buffer: Fraction (0, 1) of each limit used as the threshold.
        now: UNIX time in seconds, used for reset times.
        estimated_tokens: Projected token cost of the pending request; added
            to tpm for the admission check only.
        last_request_at: Diagnostic timestamp of the last recorded usage.

    Returns:
        CapacitySnapshot for the backend.
    """
    remaining = MetricValues(
        **{
            metric.value: max(0, getattr(limits, metric.value) - current.get(metric))
            for metric in Metric
        }
    )

    utilization = 0.0
    can_admit = True
    for metric in Metric:
        threshold = admission_threshold(getattr(limits, metric.value), safety_buffer)
        used = current.get(metric)
        utilization = max(utilization, used / threshold)

        projected = used + estimated_tokens if metric is Metric.TPM else used
        if projected >= threshold:
            can_admit = False

    return CapacitySnapshot(
        backend=backend,
        limits=limits,
        current=current,
        remaining=remaining,
        reset_at=MetricResets(
            **{metric.value: window_reset_at(now, metric.window_seconds) for metric in Metric}
        ),
        utilization_percentage=round(min(100.0, utilization * 100), 2),
        can_admit=can_admit,
        switch_threshold_percentage=round(safety_buffer * 100, 2),
        last_request_at=last_request_at,
    )
