from __future__ import annotations

import uuid
from typing import Awaitable, Callable

from aiohttp import web

from logger import bind_context, reset_context

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

REQUEST_ID_HEADER = "X-Request-Id"
INIT_DATA_HEADER = "X-Telegram-Init-Data"


@web.middleware
async def request_context_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Bind a short request id into the logging context for each request."""

    request_id = uuid.uuid4().hex[:8]
    request["request_id"] = request_id
    tokens = bind_context(request_id=request_id)
    try:
        response = await handler(request)
    finally:
        reset_context(tokens)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        response = web.Response(status=204)
    else:
        response = await handler(request)
    response.headers["Access-Control-Allow-Origin"] = request.app["config"].cors_allow_origin
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = f"Content-Type, {INIT_DATA_HEADER}"
    response.headers["Access-Control-Expose-Headers"] = REQUEST_ID_HEADER
    response.headers["Access-Control-Max-Age"] = "86400"
    return response
