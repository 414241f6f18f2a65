"""
Abstract base class for counter stores.

A counter store holds one fixed-window counter per key. Separating the
store from the limiter allows:
- Testing with the in-memory store (no Redis needed)
- Running several proxy instances against one shared Redis
"""

from abc import ABC, abstractmethod


class CounterStore(ABC):
    """
    Contract for the shared counter backend.

    Implementations must make `increment` atomic: creating the record,
    incrementing it and reading its TTL happen as one unit, so concurrent
    callers on the same key observe consecutive counts with no gaps and
    no duplicates. No in-process locking may stand in for that guarantee.
    """

    @abstractmethod
    async def increment(self, key: str, period: int) -> tuple[int, int]:
        """
        Count one observation of `key` in its current window.

        If no record exists for `key`, one is created with count 0 and
        an expiry of `period` seconds. An existing record keeps its count
        and expiry. The count is then incremented and the remaining TTL read.

        Args:
            key: The rate limit key, e.g. the raw Authorization header value.
            period: Window length in seconds, applied only on creation.

        Returns:
            (count, ttl_seconds): the new count and the seconds left in
            the window.

        Raises:
            StoreError: the backend is unreachable, timed out, or the
                transaction failed.

        Example:
            >>> await store.increment("tok1", period=10)
            (1, 10)
            >>> await store.increment("tok1", period=10)
            (2, 10)
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release connections held by the store."""
        pass
