from fastapi import APIRouter, Request
from starlette.responses import StreamingResponse

from limitation.api.proxy import Forwarder

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def build_router(forwarder: Forwarder) -> APIRouter:
    """Catch-all router: every path and method goes to the backend."""
    router = APIRouter()

    @router.api_route("/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
    async def forward(request: Request) -> StreamingResponse:
        return await forwarder.forward(request)

    return router
