"""Counter store interface.

The quota engines depend on this abstraction (not the concrete implementation)
so the storage backend can be swapped (e.g., Redis) with minimal changes.

Keys are plain strings built by the engines. Values are non-negative integer
counters with a fixed-window TTL: the window starts when a key is first
written and the key disappears when it elapses.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractCounterStore(ABC):
    """Interface for TTL-capable key -> integer stores.

    Implementations raise ``CounterStoreError`` when the underlying storage
    cannot be reached.
    """

    @abstractmethod
    async def get_counter(self, key: str) -> int:
        """Return the counter value, or 0 when the key is absent or expired."""
        raise NotImplementedError

    @abstractmethod
    async def set_counter(self, key: str, value: int, ttl_seconds: float) -> None:
        """Overwrite a counter and restart its TTL.

        Args:
            key: Counter key.
            value: New non-negative value.
            ttl_seconds: Lifetime of the key from now.
        """
        raise NotImplementedError

    @abstractmethod
    async def increment(self, key: str, amount: int, ttl_seconds: float) -> int:
        """Atomically add ``amount`` to a counter and return the new value.

        The TTL is applied only when the increment creates the key; it is not
        extended for a key that already exists.

        Args:
            key: Counter key.
            amount: Non-negative amount to add.
            ttl_seconds: Lifetime applied when the key is created.

        Returns:
            Counter value after the increment.
        """
        raise NotImplementedError

    @abstractmethod
    async def has_key(self, key: str) -> bool:
        """Return True if the key exists and has not expired."""
        raise NotImplementedError

    @abstractmethod
    async def delete_key(self, key: str) -> bool:
        """Delete a key. Returns True if something was removed."""
        raise NotImplementedError

    @abstractmethod
    async def get_string(self, key: str) -> str | None:
        """Return a diagnostic string value, or None if absent."""
        raise NotImplementedError

    @abstractmethod
    async def set_string(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        """Store a diagnostic string value (e.g. an ISO timestamp)."""
        raise NotImplementedError
