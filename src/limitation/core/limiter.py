"""
Fixed window rate limiter.

The limiter turns the raw (count, ttl) pair returned by a counter store into
a decision. A window starts at the first request for a key and lasts
`period` seconds; the first `limit` requests inside it are admitted, every
later one is denied until the window expires.

Example:
    >>> limiter = Limiter(RedisCounterStore(redis), WindowConfig(limit=5, period=10))
    >>> status = await limiter.count("tok1")
    >>> status.remaining
    4
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog

from limitation.core.errors import ClockError, LimitExceeded, StoreError
from limitation.core.storage.base import CounterStore

logger = structlog.get_logger()

DEFAULT_LIMIT = 5000
DEFAULT_PERIOD_SECS = 60 * 60

# Reset value used when the TTL cannot be turned into a timestamp
RESET_UNKNOWN = 0

HEADER_LIMIT = "X-RateLimit-Limit"
HEADER_REMAINING = "X-RateLimit-Remaining"
HEADER_RESET = "X-RateLimit-Reset"


@dataclass(frozen=True)
class WindowConfig:
    """
    Immutable limiter configuration, shared read-only by all requests.

    Attributes:
        limit: Requests admitted per key per window (inclusive).
        period: Window length in seconds.
    """

    limit: int = DEFAULT_LIMIT
    period: int = DEFAULT_PERIOD_SECS

    def __post_init__(self) -> None:
        if self.limit <= 0:
            raise ValueError(f"limit must be positive, got {self.limit}")
        if self.period <= 0:
            raise ValueError(f"period must be positive, got {self.period}")


@dataclass(frozen=True)
class Status:
    """
    Snapshot of a key's window at the time of a check.

    Attributes:
        limit: Maximum number of requests allowed in the window.
        remaining: Requests left in the window, never negative.
        reset_epoch_utc: Unix timestamp (UTC) when the window expires.
            Recomputed on every check, so it may drift by a second
            between calls in the same window.

    Maps to headers:
        X-RateLimit-Limit: {limit}
        X-RateLimit-Remaining: {remaining}
        X-RateLimit-Reset: {reset_epoch_utc}
    """

    limit: int
    remaining: int
    reset_epoch_utc: int

    def headers(self) -> dict[str, str]:
        return {
            HEADER_LIMIT: str(self.limit),
            HEADER_REMAINING: str(self.remaining),
            HEADER_RESET: str(self.reset_epoch_utc),
        }


@dataclass(frozen=True)
class Admit:
    status: Status


@dataclass(frozen=True)
class Deny:
    status: Status


@dataclass(frozen=True)
class Unavailable:
    error: StoreError


Decision = Admit | Deny | Unavailable


def build_status(count: int, limit: int, reset_epoch_utc: int) -> Status:
    return Status(
        limit=limit,
        remaining=max(limit - count, 0),
        reset_epoch_utc=reset_epoch_utc,
    )


def epoch_utc_plus(seconds: int, now: datetime | None = None) -> int:
    """
    Unix timestamp `seconds` from now, rounded to whole seconds.

    Raises:
        ClockError: the result does not fit in a datetime.
    """
    now = now or datetime.now(timezone.utc)
    try:
        return round((now + timedelta(seconds=seconds)).timestamp())
    except OverflowError as exc:
        raise ClockError(f"cannot add {seconds}s to {now.isoformat()}") from exc


class Limiter:
    """
    Fixed window limiter over a shared counter store.

    Holds no per-key state of its own: concurrent checks for the same key
    are serialized only by the store's transaction, so any number of proxy
    instances can share one store.
    """

    def __init__(self, store: CounterStore, config: WindowConfig):
        self.store = store
        self.config = config

    async def count(self, key: str) -> Status:
        """
        Count a request for `key` and return its window status.

        A denied request still consumes a slot: the increment and the
        comparison happen in one round trip.

        Raises:
            LimitExceeded: more than `limit` requests in the window.
            StoreError: the counter store failed. Not retried.
        """
        count, ttl = await self.store.increment(key, self.config.period)

        try:
            reset = epoch_utc_plus(ttl)
        except ClockError as exc:
            logger.warning("reset_timestamp_overflow", ttl=ttl, error=str(exc))
            reset = RESET_UNKNOWN

        status = build_status(count, self.config.limit, reset)

        if count > self.config.limit:
            raise LimitExceeded(status)
        return status

    async def decide(self, key: str) -> Decision:
        """Same as `count`, with every outcome returned as a Decision."""
        try:
            return Admit(await self.count(key))
        except LimitExceeded as exc:
            return Deny(exc.status)
        except StoreError as exc:
            return Unavailable(exc)
