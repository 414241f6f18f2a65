from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
import structlog
import uvicorn
from fastapi import FastAPI, Request, Response
from redis.asyncio import from_url
from starlette.status import HTTP_502_BAD_GATEWAY

from limitation.api.middleware import RateLimitMiddleware
from limitation.api.proxy import Forwarder
from limitation.api.routes import build_router
from limitation.config import Settings, get_settings
from limitation.core.errors import BackendUnreachable
from limitation.core.limiter import Limiter, WindowConfig
from limitation.core.logging import setup_logging
from limitation.core.storage.base import CounterStore
from limitation.core.storage.redis import RedisCounterStore

logger = structlog.get_logger()


async def backend_unreachable_handler(request: Request, exc: BackendUnreachable) -> Response:
    logger.error("backend_unreachable", url=exc.url, reason=exc.reason)
    return Response(status_code=HTTP_502_BAD_GATEWAY)


def create_app(
    settings: Settings | None = None,
    store: CounterStore | None = None,
    client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """
    Build the proxy application.

    Every collaborator is constructed here and handed to the piece that
    uses it. `store` and `client` can be injected (tests use an in-memory
    store and an httpx mock transport); by default a Redis store and a
    pooled httpx client are created from `settings`.
    """
    settings = settings or get_settings()

    # 1. Initialize Infrastructure
    if store is None:
        redis_client = from_url(
            settings.redis_url,
            socket_timeout=settings.store_timeout,
            socket_connect_timeout=settings.store_timeout,
        )
        store = RedisCounterStore(
            redis_client,
            key_prefix=settings.key_prefix,
            timeout=settings.store_timeout,
        )
    if client is None:
        client = httpx.AsyncClient(timeout=settings.backend_timeout)

    # 2. Initialize Core Logic (Dependency Injection)
    limiter = Limiter(store, WindowConfig(limit=settings.rate_limit, period=settings.rate_period))
    forwarder = Forwarder(client, settings.proxy_to)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Application lifecycle manager.
        Closes the Redis pool and the backend HTTP client on shutdown.
        """
        logger.info(
            "limitation_started",
            proxy_to=settings.proxy_to,
            header=settings.header,
            limit=settings.rate_limit,
            period=settings.rate_period,
            store_failure_policy=settings.store_failure_policy.value,
        )
        yield

        await client.aclose()
        await store.close()
        logger.info("limitation_stopped")

    app = FastAPI(
        title=settings.app_name,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    # 3. Inject Middleware
    app.add_middleware(
        RateLimitMiddleware,
        limiter=limiter,
        header=settings.header,
        failure_policy=settings.store_failure_policy,
    )
    app.add_exception_handler(BackendUnreachable, backend_unreachable_handler)
    app.include_router(build_router(forwarder))

    return app


def run() -> None:
    """Console entry point: serve the proxy on the configured bind address."""
    settings = get_settings()
    setup_logging(settings.log_level)
    uvicorn.run(
        create_app(settings),
        host=settings.bind_host,
        port=settings.bind_port,
        log_level=settings.log_level.lower(),
        # Keep the handlers installed by setup_logging
        log_config=None,
    )


if __name__ == "__main__":
    run()
