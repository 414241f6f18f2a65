import asyncio

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from limitation.core.errors import StoreError
from limitation.core.storage.base import CounterStore

logger = structlog.get_logger()


class RedisCounterStore(CounterStore):
    """
    Fixed window counters kept in Redis.

    Each window is a plain integer key with a TTL. The whole
    create/increment/read sequence runs inside MULTI/EXEC so no other
    client observes a record that was created but not yet incremented.
    """

    def __init__(self, redis: Redis, key_prefix: str = "limitation:", timeout: float = 1.0):
        self._redis = redis
        self._key_prefix = key_prefix
        self._timeout = timeout

    async def increment(self, key: str, period: int) -> tuple[int, int]:
        redis_key = f"{self._key_prefix}{key}"

        try:
            async with asyncio.timeout(self._timeout):
                async with self._redis.pipeline(transaction=True) as pipe:
                    # NX keeps the expiry of an existing window untouched
                    pipe.set(redis_key, 0, ex=period, nx=True)
                    pipe.incr(redis_key)
                    pipe.ttl(redis_key)
                    _, count, ttl = await pipe.execute()
        except TimeoutError as exc:
            raise StoreError(f"counter store timed out after {self._timeout}s") from exc
        except RedisError as exc:
            raise StoreError(f"counter store failure: {exc}") from exc

        # -1: the key exists without an expiry, -2: it vanished mid-transaction
        if ttl < 0:
            logger.warning("counter_without_expiry", ttl=ttl)
            raise StoreError(f"counter has no usable expiry (ttl={ttl})")

        return int(count), int(ttl)

    async def close(self) -> None:
        await self._redis.aclose()
