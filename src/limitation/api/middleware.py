from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.status import HTTP_403_FORBIDDEN, HTTP_503_SERVICE_UNAVAILABLE
from starlette.types import ASGIApp
import structlog

from limitation.config import StoreFailurePolicy
from limitation.core.errors import KeyMissing
from limitation.core.limiter import Admit, Deny, Limiter, Unavailable

logger = structlog.get_logger()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Gates every request on the fixed window limiter.

    - No key header: 403, nothing is counted.
    - Under the limit: the request proceeds and the response gets
      the X-RateLimit-* headers.
    - Over the limit: 403 with the X-RateLimit-* headers.
    - Counter store down: handled by `failure_policy`.
    """

    def __init__(
        self,
        app: ASGIApp,
        limiter: Limiter,
        header: str,
        failure_policy: StoreFailurePolicy = StoreFailurePolicy.OPEN,
    ):
        super().__init__(app)
        self.limiter = limiter
        self.header = header.lower()
        self.failure_policy = failure_policy

    def key(self, request: Request) -> str:
        value = request.headers.get(self.header)
        if value is None:
            raise KeyMissing(self.header)
        return value

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            path=request.url.path,
            method=request.method,
        )

        try:
            key = self.key(request)
        except KeyMissing:
            logger.info("rate_limit_key_missing", header=self.header)
            return Response(status_code=HTTP_403_FORBIDDEN)

        match await self.limiter.decide(key):
            case Admit(status):
                logger.info(
                    "rate_limit_check",
                    status="allowed",
                    remaining=status.remaining,
                    limit=status.limit,
                )
                response = await call_next(request)
                response.headers.update(status.headers())
                return response

            case Deny(status):
                logger.info(
                    "rate_limit_check",
                    status="denied",
                    remaining=status.remaining,
                    limit=status.limit,
                    reset=status.reset_epoch_utc,
                )
                return Response(status_code=HTTP_403_FORBIDDEN, headers=status.headers())

            case Unavailable(error):
                logger.warning(
                    "counter_store_unavailable",
                    error=str(error),
                    policy=self.failure_policy.value,
                )
                if self.failure_policy == StoreFailurePolicy.CLOSED:
                    return Response(status_code=HTTP_503_SERVICE_UNAVAILABLE)
                return await call_next(request)
