"""Counter store adapters.

This package provides a small abstraction layer so the engines can run
against an in-process TTL store and later migrate to Redis or another shared
store without changing the admission logic.
"""

from quota_gate.adapters.counter_store.base import AbstractCounterStore
from quota_gate.adapters.counter_store.in_memory import InMemoryCounterStore

__all__ = [
    "AbstractCounterStore",
    "InMemoryCounterStore",
]
