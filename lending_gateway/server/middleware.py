"""aiohttp middlewares: header filtering, access logging, CORS."""
from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Iterable

from aiohttp import web

from ..interfaces.request_filter import RequestFilter

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


class HeaderFilter:
    """Rejects requests carrying any of the given headers."""

    def __init__(self, rejected_headers: Iterable[str]) -> None:
        self.rejected_headers = tuple(h.lower() for h in rejected_headers)

    def __call__(self, request: web.Request) -> bool:
        return any(name in request.headers for name in self.rejected_headers)


def request_filter_middleware(request_filter: RequestFilter):
    """Answer ``400 Bad Request`` to requests the filter rejects."""

    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        if request_filter(request):
            logger.info("Rejected %s %s from %s", request.method, request.path, request.remote)
            return web.Response(status=400, text="Bad Request")
        return await handler(request)

    return middleware


@web.middleware
async def access_log_middleware(
    request: web.Request, handler: Handler
) -> web.StreamResponse:
    started = time.monotonic()
    try:
        response = await handler(request)
    except web.HTTPException as e:
        logger.debug(
            "%s %s %s %.1fms",
            request.method, request.path, e.status, (time.monotonic() - started) * 1000,
        )
        raise
    except Exception:
        logger.exception("Unhandled error for %s %s", request.method, request.path)
        raise

    logger.debug(
        "%s %s %s %.1fms",
        request.method, request.path, response.status, (time.monotonic() - started) * 1000,
    )
    return response


def cors_middleware(origin: str):
    """Allow cross-origin GraphQL requests from ``origin``."""
    headers = {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }

    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        if request.method == "OPTIONS":
            return web.Response(status=204, headers=headers)
        response = await handler(request)
        if not response.prepared:
            response.headers.update(headers)
        return response

    return middleware
