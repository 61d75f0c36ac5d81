"""In-memory TTL counter store.

Notes:
- Per-process only: running multiple workers gives each worker its own
  counters, multiplying the effective limits.
- Thread-safe: every operation runs under a lock, so ``increment`` is a single
  atomic read-modify-write and concurrent callers never lose updates.
- Expired keys are evicted lazily on access.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from quota_gate.adapters.counter_store.base import AbstractCounterStore
from quota_gate.core.errors import CounterStoreError

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: int | str
    expires_at: float | None


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store backed by a dict with per-key expiry.

    Attributes:
        clock: Time source returning UNIX time in seconds.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryCounterStore(size={len(self._entries)})"

    def _expires_at(self, ttl_seconds: float | None) -> float | None:
        if ttl_seconds is None:
            return None
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        return self._clock() + ttl_seconds

    def _live_entry_locked(self, key: str) -> _Entry | None:
        """Return the entry for key, evicting it first if it has expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            del self._entries[key]
            logger.debug("counter_store.expired", extra={"key": key})
            return None
        return entry

    @staticmethod
    def _as_counter(key: str, entry: _Entry) -> int:
        if not isinstance(entry.value, int):
            raise CounterStoreError(
                code="counter_type_mismatch",
                message=f"Key '{key}' holds a string, not a counter",
                details={"key": key},
            )
        return entry.value

    async def get_counter(self, key: str) -> int:
        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is None:
                return 0
            return self._as_counter(key, entry)

    async def set_counter(self, key: str, value: int, ttl_seconds: float) -> None:
        if value < 0:
            raise ValueError("value must be >= 0")
        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=self._expires_at(ttl_seconds))

    async def increment(self, key: str, amount: int, ttl_seconds: float) -> int:
        if amount < 0:
            raise ValueError("amount must be >= 0")
        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is None:
                entry = _Entry(value=0, expires_at=self._expires_at(ttl_seconds))
                self._entries[key] = entry
            entry.value = self._as_counter(key, entry) + amount
            return entry.value

    async def has_key(self, key: str) -> bool:
        with self._lock:
            return self._live_entry_locked(key) is not None

    async def delete_key(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    async def get_string(self, key: str) -> str | None:
        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is None:
                return None
            return str(entry.value)

    async def set_string(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=self._expires_at(ttl_seconds))

    def stats(self) -> dict[str, int]:
        """Return lightweight store metrics without exposing values."""

        with self._lock:
            now = self._clock()
            live = sum(
                1
                for entry in self._entries.values()
                if entry.expires_at is None or entry.expires_at > now
            )
            return {"entries": len(self._entries), "live_entries": live}
