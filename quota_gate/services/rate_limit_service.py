"""Quota-aware admission control for AI backends.

The engine owns per-backend fixed-window counters (rpm, tpm, rpd) in a shared
counter store and answers two questions for the request path:

- Which backend may serve the next request? (``select_backend``)
- How much has a backend consumed? (``record_usage``)

Selection is a strict first-match scan of the configured priority order; it
never load-balances. All increments go through the store's atomic
``increment`` so concurrent requests cannot lose updates.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, TypeVar

from quota_gate.adapters.counter_store.base import AbstractCounterStore
from quota_gate.core.config import BackendLimits, QuotaSettings
from quota_gate.core.errors import CounterStoreError, UnknownBackendError, ValidationAppError
from quota_gate.schemas.quota import (
    DAY_SECONDS,
    CapacitySnapshot,
    Metric,
    MetricValues,
    SelectionResult,
    SelectionStatus,
)
from quota_gate.services.capacity import compute_capacity

logger = logging.getLogger(__name__)

T = TypeVar("T")


def counter_key(backend: str, metric: Metric) -> str:
    """Build the store key for one backend metric, e.g. ``gemini-2.0-flash:rpm``."""
    return f"{backend}:{metric.value}"


def last_request_key(backend: str) -> str:
    return f"{backend}:last_request"


class RateLimitEngine:
    """Admission controller over a shared counter store.

    Attributes:
        store: Counter store shared by all in-flight requests.
        quota: Validated quota configuration snapshot.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        quota: QuotaSettings,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the engine and build its counter keys.

        Args:
            store: Counter store implementation.
            quota: Quota settings (priority order, limits, safety buffer).
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValidationAppError: If a configured backend id is empty.
        """
        if any(not backend for backend in quota.backend_limits):
            raise ValidationAppError(
                code="invalid_backend_id",
                message="Backend ids in backend_limits must be non-empty",
            )

        self.store = store
        self.quota = quota
        self._clock = clock
        self._keys: dict[str, dict[Metric, str]] = {
            backend: {metric: counter_key(backend, metric) for metric in Metric}
            for backend in quota.backend_limits
        }

        logger.info(
            "quota.engine_created",
            extra={
                "priority_order": list(quota.priority_order),
                "backends": list(self._keys),
                "safety_buffer": quota.safety_buffer,
            },
        )

    @property
    def backends(self) -> list[str]:
        """Configured backend ids in configuration order."""
        return list(self._keys)

    def _limits_or_raise(self, backend: str) -> BackendLimits:
        limits = self.quota.limits_for(backend)
        if limits is None:
            raise UnknownBackendError(
                code="unknown_backend",
                message=f"Unknown backend: '{backend}'",
                details={"backend": backend, "configured_backends": self.backends},
            )
        return limits

    async def _guarded(self, operation: str, key: str, call: Awaitable[T]) -> T:
        """Await a store call, normalising any failure to CounterStoreError."""
        try:
            return await call
        except CounterStoreError:
            raise
        except Exception as exc:
            raise CounterStoreError(
                code="counter_store_failure",
                message=f"Counter store {operation} failed for '{key}': {exc}",
                details={"key": key, "operation": operation},
            ) from exc

    async def _read_last_request(self, backend: str) -> datetime | None:
        key = last_request_key(backend)
        raw = await self._guarded("get_string", key, self.store.get_string(key))
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            logger.warning("quota.bad_last_request_value", extra={"backend": backend})
            return None

    async def initialize(self) -> None:
        """Ensure a counter exists for every configured backend and metric.

        Uses a zero-amount increment, which creates missing keys with their
        window TTL and leaves existing counts untouched.
        """
        for backend, keys in self._keys.items():
            for metric, key in keys.items():
                await self._guarded(
                    "increment",
                    key,
                    self.store.increment(key, 0, metric.window_seconds),
                )
            logger.debug("quota.counters_initialized", extra={"backend": backend})

        logger.info("quota.engine_initialized", extra={"backends": self.backends})

    async def capacity_of(self, backend: str, *, estimated_tokens: int = 0) -> CapacitySnapshot:
        """Read the counters of a backend and compute its capacity.

        Args:
            backend: Backend identifier.
            estimated_tokens: Projected token cost of the pending request.

        Returns:
            CapacitySnapshot for the backend.

        Raises:
            UnknownBackendError: If the backend is not configured.
            CounterStoreError: If a counter cannot be read.
        """
        limits = self._limits_or_raise(backend)

        values: dict[str, int] = {}
        for metric, key in self._keys[backend].items():
            values[metric.value] = await self._guarded(
                "get_counter", key, self.store.get_counter(key)
            )

        return compute_capacity(
            backend,
            limits,
            MetricValues(**values),
            safety_buffer=self.quota.safety_buffer,
            now=self._clock(),
            estimated_tokens=estimated_tokens,
            last_request_at=await self._read_last_request(backend),
        )

    async def can_admit(self, backend: str, *, estimated_tokens: int = 0) -> bool:
        """Return True if the backend may take another request.

        Unknown backends and store failures both yield False; a store failure
        never admits under unknown state.
        """
        if backend not in self._keys:
            logger.warning("quota.unknown_backend", extra={"backend": backend})
            return False

        try:
            snapshot = await self.capacity_of(backend, estimated_tokens=estimated_tokens)
        except CounterStoreError as exc:
            logger.error(
                "quota.capacity_read_failed",
                extra={"backend": backend, "error_code": exc.code, "error_message": exc.message},
            )
            return False

        logger.debug(
            "quota.admission_checked",
            extra={
                "backend": backend,
                "can_admit": snapshot.can_admit,
                "utilization_pct": snapshot.utilization_percentage,
            },
        )
        return snapshot.can_admit

    def _candidates(self, preferred: str | None) -> list[str]:
        order = list(self.quota.priority_order)
        if preferred is None:
            return order
        if preferred not in self._keys:
            logger.warning(
                "quota.preferred_backend_ignored",
                extra={"backend": preferred, "reason": "unknown_backend"},
            )
            return order
        return [preferred] + [backend for backend in order if backend != preferred]

    async def select_backend(
        self,
        preferred: str | None = None,
        *,
        estimated_tokens: int = 0,
    ) -> SelectionResult:
        """Pick the first admissible backend.

        Walks the priority order (with ``preferred`` pinned first when it is a
        configured backend) and stops at the first backend under all of its
        thresholds.

        Args:
            preferred: Optional backend to try first.
            estimated_tokens: Projected token cost of the pending request.

        Returns:
            SelectionResult with status SELECTED, NONE_AVAILABLE, or FAILED
            (nothing admissible and at least one backend unreadable).
        """
        failed: list[str] = []

        for backend in self._candidates(preferred):
            try:
                snapshot = await self.capacity_of(backend, estimated_tokens=estimated_tokens)
            except CounterStoreError as exc:
                failed.append(backend)
                logger.error(
                    "quota.capacity_read_failed",
                    extra={
                        "backend": backend,
                        "error_code": exc.code,
                        "error_message": exc.message,
                    },
                )
                continue

            if snapshot.can_admit:
                logger.info(
                    "quota.backend_selected",
                    extra={
                        "backend": backend,
                        "preferred": preferred,
                        "utilization_pct": snapshot.utilization_percentage,
                        "failed_backends": failed,
                    },
                )
                return SelectionResult(
                    status=SelectionStatus.SELECTED,
                    backend=backend,
                    failed_backends=failed,
                )

        if failed:
            logger.error("quota.selection_failed", extra={"failed_backends": failed})
            return SelectionResult(status=SelectionStatus.FAILED, failed_backends=failed)

        logger.warning("quota.no_backend_available", extra={"preferred": preferred})
        return SelectionResult(status=SelectionStatus.NONE_AVAILABLE)

    async def record_usage(self, backend: str, *, requests: int = 0, tokens: int = 0) -> None:
        """Add consumption to a backend's counters.

        Call exactly once per logical unit of consumption: calling twice
        counts twice.

        Args:
            backend: Backend that served the request.
            requests: Requests to add to rpm and rpd.
            tokens: Tokens to add to tpm.

        Raises:
            ValueError: If an amount is negative.
            UnknownBackendError: If the backend is not configured.
            CounterStoreError: If an increment fails.
        """
        if requests < 0 or tokens < 0:
            raise ValueError("requests and tokens must be >= 0")
        self._limits_or_raise(backend)
        if not requests and not tokens:
            return

        keys = self._keys[backend]
        amounts = {Metric.RPM: requests, Metric.RPD: requests, Metric.TPM: tokens}
        for metric, amount in amounts.items():
            if not amount:
                continue
            key = keys[metric]
            await self._guarded(
                "increment",
                key,
                self.store.increment(key, amount, metric.window_seconds),
            )

        await self._write_last_request(backend)

        logger.debug(
            "quota.usage_recorded",
            extra={"backend": backend, "requests": requests, "tokens": tokens},
        )

    async def _write_last_request(self, backend: str) -> None:
        """Stamp the last-request time; the counters are already committed."""
        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat()
        key = last_request_key(backend)
        try:
            await self._guarded("set_string", key, self.store.set_string(key, now, DAY_SECONDS))
        except CounterStoreError as exc:
            logger.warning(
                "quota.last_request_write_failed",
                extra={"backend": backend, "error_code": exc.code, "error_message": exc.message},
            )

    async def status_of_all(self) -> list[CapacitySnapshot]:
        """Return a snapshot for every configured backend, for display."""
        return [await self.capacity_of(backend) for backend in self._keys]

    async def reset(self, backend: str | None = None) -> None:
        """Delete the counters of one backend, or of every backend.

        Raises:
            UnknownBackendError: If ``backend`` is given but not configured.
        """
        if backend is not None:
            self._limits_or_raise(backend)
        targets = [backend] if backend is not None else self.backends

        for name in targets:
            for key in [*self._keys[name].values(), last_request_key(name)]:
                await self._guarded("delete_key", key, self.store.delete_key(key))

        logger.info("quota.counters_reset", extra={"backends": targets})
