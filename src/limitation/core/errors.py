"""
Exception types for the rate limiting pipeline.

Every failure in the pipeline is a per-request outcome:

- KeyMissing and LimitExceeded are terminal decisions made by the middleware.
- StoreError is handled by the middleware's store failure policy.
- ClockError is absorbed by the limiter (the reset timestamp falls back to 0).
- BackendUnreachable is turned into a 502 by the application's exception handler.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from limitation.core.limiter import Status


class LimitationError(Exception):
    """Base class for all errors raised by this package."""


class KeyMissing(LimitationError):
    """The configured rate limit header is absent from the request."""

    def __init__(self, header: str):
        self.header = header
        super().__init__(f"missing rate limit header '{header}'")


class LimitExceeded(LimitationError):
    """
    The window quota for a key is consumed.

    Carries the fully populated Status so rejections can still emit
    the X-RateLimit-* headers.
    """

    def __init__(self, status: Status):
        self.status = status
        super().__init__(f"rate limit exceeded ({status})")


class StoreError(LimitationError):
    """The counter backend is unreachable or its transaction failed."""


class ClockError(LimitationError):
    """Converting a TTL into a reset timestamp overflowed."""


class BackendUnreachable(LimitationError):
    """The proxied backend could not be reached or returned a transport error."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"backend unreachable at {url}: {reason}")
