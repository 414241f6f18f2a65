"""
Reverse proxy forwarding to the backend service.

Admitted requests are replayed against the configured backend with the same
method, path and query string. Bodies are streamed in both directions, so
uploads and downloads of any size pass through without being held in memory.
"""

from collections.abc import AsyncIterator

import httpx
import structlog
from fastapi import Request
from starlette.background import BackgroundTask
from starlette.responses import StreamingResponse

from limitation.core.errors import BackendUnreachable

logger = structlog.get_logger()

# Headers scoped to a single connection (RFC 2616, section 13.5.1)
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

FORWARDED_FOR = "x-forwarded-for"


def is_hop_by_hop(name: str) -> bool:
    return name.lower() in HOP_BY_HOP_HEADERS


async def _relay(response: httpx.Response) -> AsyncIterator[bytes]:
    # Raw bytes: the backend's content encoding is passed through untouched
    try:
        async for chunk in response.aiter_raw():
            yield chunk
    finally:
        await response.aclose()


class Forwarder:
    """
    Sends admitted requests to the backend and relays its responses.

    The httpx client, and with it the connection pool to the backend,
    is shared by all requests.
    """

    def __init__(self, client: httpx.AsyncClient, proxy_to: str):
        self.client = client
        self.proxy_to = httpx.URL(proxy_to)

    def proxy_url(self, request: Request) -> httpx.URL:
        raw_path = request.scope.get("raw_path") or request.url.path.encode("utf-8")
        raw_path = raw_path.split(b"?", 1)[0]
        query = request.scope.get("query_string", b"")
        if query:
            raw_path = raw_path + b"?" + query
        return self.proxy_to.copy_with(raw_path=raw_path)

    def outbound_headers(self, request: Request) -> list[tuple[str, str]]:
        headers = []
        forwarded_for = []
        for name, value in request.headers.items():
            if is_hop_by_hop(name) or name == "host":
                continue
            if name == FORWARDED_FOR:
                forwarded_for.append(value)
                continue
            headers.append((name, value))

        if request.client and request.client.host:
            forwarded_for.append(request.client.host)
        if forwarded_for:
            headers.append((FORWARDED_FOR, ", ".join(forwarded_for)))

        return headers

    async def forward(self, request: Request) -> StreamingResponse:
        """
        Proxy `request` to the backend.

        Raises:
            BackendUnreachable: connecting to or talking with the backend
                failed. Not retried.
        """
        url = self.proxy_url(request)
        has_body = "content-length" in request.headers or "transfer-encoding" in request.headers

        # Not client.build_request: it merges in the client's default Connection header
        outbound = httpx.Request(
            request.method,
            url,
            headers=self.outbound_headers(request),
            content=request.stream() if has_body else None,
        )

        try:
            response = await self.client.send(outbound, stream=True)
        except httpx.TransportError as exc:
            raise BackendUnreachable(str(url), repr(exc)) from exc

        logger.debug(
            "backend_response",
            status_code=response.status_code,
            http_version=response.http_version,
        )

        relayed = StreamingResponse(
            _relay(response),
            status_code=response.status_code,
            background=BackgroundTask(response.aclose),
        )
        # Replaces the defaults so repeated headers (Set-Cookie) survive
        relayed.raw_headers = [
            (name.lower(), value)
            for name, value in response.headers.raw
            if not is_hop_by_hop(name.decode("latin-1"))
        ]
        return relayed
