"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before any import of ``quota_gate`` so the
module-level settings pick them up.
"""

import os

os.environ["TESTING"] = "true"
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402

from quota_gate.adapters.counter_store.in_memory import InMemoryCounterStore  # noqa: E402
from quota_gate.core.config import BackendLimits, QuotaSettings  # noqa: E402
from quota_gate.services.rate_limit_service import RateLimitEngine  # noqa: E402
from quota_gate.services.search_quota_service import SearchQuotaGate  # noqa: E402


class FakeClock:
    """Deterministic clock shared by the store and the engines."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FailingStore(InMemoryCounterStore):
    """In-memory store whose reads fail for keys of selected backends."""

    def __init__(self, failing_prefixes: set[str], **kwargs) -> None:
        super().__init__(**kwargs)
        self.failing_prefixes = failing_prefixes

    def _should_fail(self, key: str) -> bool:
        return any(key.startswith(prefix) for prefix in self.failing_prefixes)

    async def get_counter(self, key: str) -> int:
        if self._should_fail(key):
            raise ConnectionError("store unreachable")
        return await super().get_counter(key)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=clock)


@pytest.fixture
def quota_settings() -> QuotaSettings:
    return QuotaSettings(
        priority_order=["primary", "fallback"],
        backend_limits={
            "primary": BackendLimits(rpm=15, tpm=1000, rpd=100),
            "fallback": BackendLimits(rpm=10, tpm=5000, rpd=50),
            "spare": BackendLimits(rpm=5, tpm=500, rpd=20),
        },
        safety_buffer=0.8,
        search_monthly_quota=3,
    )


@pytest.fixture
def engine(
    store: InMemoryCounterStore,
    quota_settings: QuotaSettings,
    clock: FakeClock,
) -> RateLimitEngine:
    return RateLimitEngine(store, quota_settings, clock=clock)


@pytest.fixture
def search_gate(store: InMemoryCounterStore, clock: FakeClock) -> SearchQuotaGate:
    return SearchQuotaGate(store, monthly_quota=3, clock=clock)
