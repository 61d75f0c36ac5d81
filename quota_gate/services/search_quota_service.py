"""Monthly quota gate for the shared web-search capability.

Usage is counted per UTC calendar month under ``search:<YYYY-MM>``. A new
month simply starts a new key; the old one expires on its own. Unlike AI
backends no safety buffer applies: the whole free quota is usable.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, TypeVar

from quota_gate.adapters.counter_store.base import AbstractCounterStore
from quota_gate.core.errors import CounterStoreError
from quota_gate.schemas.quota import DAY_SECONDS, SearchQuotaStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Must outlive the longest calendar month.
SEARCH_USAGE_TTL_SECONDS = 32 * DAY_SECONDS


def month_key(now: float) -> tuple[str, str]:
    """Return ``(YYYY-MM, store key)`` for the UTC month containing ``now``."""
    month = datetime.fromtimestamp(now, tz=timezone.utc).strftime("%Y-%m")
    return month, f"search:{month}"


class SearchQuotaGate:
    """Gate deciding whether another web search fits in this month's quota."""

    def __init__(
        self,
        store: AbstractCounterStore,
        monthly_quota: int,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if monthly_quota < 0:
            raise ValueError("monthly_quota must be >= 0")

        self.store = store
        self.monthly_quota = monthly_quota
        self._clock = clock

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

    async def _read_usage(self) -> tuple[str, int]:
        month, key = month_key(self._clock())
        return month, await self._guarded("get_counter", key, self.store.get_counter(key))

    async def usage(self) -> int:
        """Searches recorded this month; 0 if absent or unreadable."""
        try:
            _, used = await self._read_usage()
        except CounterStoreError as exc:
            logger.error(
                "search_quota.usage_read_failed",
                extra={"error_code": exc.code, "error_message": exc.message},
            )
            return 0
        return used

    async def is_available(self) -> bool:
        """True while usage is strictly below the monthly quota.

        Fails closed: a store failure reports the gate as unavailable, even
        though ``usage()`` would report 0 for the same failure.
        """
        try:
            _, used = await self._read_usage()
        except CounterStoreError as exc:
            logger.error(
                "search_quota.availability_check_failed",
                extra={"error_code": exc.code, "error_message": exc.message},
            )
            return False

        available = used < self.monthly_quota
        logger.debug(
            "search_quota.checked",
            extra={"usage": used, "quota": self.monthly_quota, "available": available},
        )
        if not available:
            logger.warning(
                "search_quota.exhausted",
                extra={"usage": used, "quota": self.monthly_quota},
            )
        return available

    async def record_usage(self) -> int:
        """Count one search against the current month and return the new usage."""
        month, key = month_key(self._clock())
        used = await self._guarded(
            "increment",
            key,
            self.store.increment(key, 1, SEARCH_USAGE_TTL_SECONDS),
        )

        logger.debug("search_quota.usage_recorded", extra={"month": month, "usage": used})
        return used

    async def reset(self) -> None:
        """Delete the current month's counter.

        Raises:
            CounterStoreError: If the counter cannot be deleted.
        """
        month, key = month_key(self._clock())
        await self._guarded("delete_key", key, self.store.delete_key(key))
        logger.info("search_quota.reset", extra={"month": month})

    async def status(self) -> SearchQuotaStatus:
        """Return the current month's usage against the quota.

        Raises:
            CounterStoreError: If the counter cannot be read.
        """
        month, used = await self._read_usage()
        return SearchQuotaStatus(
            month=month,
            usage=used,
            quota=self.monthly_quota,
            remaining=max(0, self.monthly_quota - used),
            available=used < self.monthly_quota,
        )
