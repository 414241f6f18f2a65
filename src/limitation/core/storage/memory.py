"""
In-memory counter store for testing and development.

Counters live in a Python dictionary, making this store:
- Fast: No network calls
- Simple: No external dependencies
- Isolated: Each instance is independent

WARNING: Not suitable for production!
- No persistence (counters lost on restart)
- No distribution (one proxy process only)

Use RedisCounterStore for production deployments.
"""

import time
from collections.abc import Callable

from limitation.core.storage.base import CounterStore


class InMemoryCounterStore(CounterStore):
    """
    In-memory implementation of CounterStore.

    `increment` has no suspension point, so under asyncio the whole
    create/increment/read sequence runs without interleaving with other
    tasks. That makes it atomic for concurrent requests in one event loop,
    which is what tests need. It is NOT thread-safe.

    Example:
        >>> store = InMemoryCounterStore()
        >>> await store.increment("tok1", period=10)
        (1, 10)

    Args:
        clock: Returns the current time in seconds. Tests inject a fake
            clock to move past window boundaries without sleeping.
        sweep_every: Drop every expired record after this many increments,
            so keys that are never seen again do not pile up.
    """

    def __init__(self, clock: Callable[[], float] = time.time, sweep_every: int = 1000) -> None:
        if sweep_every <= 0:
            raise ValueError(f"sweep_every must be positive, got {sweep_every}")
        self._clock = clock
        self._sweep_every = sweep_every
        self._increments = 0
        # key -> [count, unix timestamp when the window expires]
        self._counters: dict[str, list[float]] = {}

    def __len__(self) -> int:
        """Records held, including expired ones not swept yet."""
        return len(self._counters)

    def _cleanup_if_expired(self, key: str, now: float) -> None:
        record = self._counters.get(key)
        if record is not None and now >= record[1]:
            del self._counters[key]

    def _sweep(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._counters.items() if now >= expires_at]
        for key in expired:
            del self._counters[key]

    async def increment(self, key: str, period: int) -> tuple[int, int]:
        now = self._clock()
        self._increments += 1
        if self._increments % self._sweep_every == 0:
            self._sweep(now)
        else:
            self._cleanup_if_expired(key, now)

        # SET NX EX
        record = self._counters.setdefault(key, [0, now + period])
        # INCR
        record[0] += 1
        # TTL
        ttl = round(record[1] - now)

        return int(record[0]), ttl

    async def close(self) -> None:
        pass

    # =========================================================================
    # Utility Methods (not part of interface, useful for testing)
    # =========================================================================

    def get_count(self, key: str) -> int:
        """Current count for `key`, 0 if it has no live window."""
        self._cleanup_if_expired(key, self._clock())
        record = self._counters.get(key)
        return int(record[0]) if record else 0

    def keys(self) -> list[str]:
        """All keys with a live window."""
        self._sweep(self._clock())
        return list(self._counters)

    def clear(self) -> None:
        """Drop every counter. Useful for resetting state between tests."""
        self._counters.clear()
