"""Request correlation ID middleware.

Extracts or generates a correlation ID per request so the fetch, parse and
expansion log lines of one dashboard request can be grouped together.
"""

import uuid
from collections.abc import Awaitable, Callable
from contextvars import ContextVar

from aiohttp import web

# Context variable for storing request correlation ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

NO_REQUEST_ID = "no-request-id"


@web.middleware
async def correlation_id_middleware(
    request: web.Request, handler: Callable[[web.Request], Awaitable[web.StreamResponse]]
) -> web.StreamResponse:
    """Extract or generate correlation ID for request tracking.

    Priority: X-Request-ID, then X-Correlation-ID, then a new UUID. The ID is
    stored in a context variable, on the request, and echoed in the response
    headers.
    """
    correlation_id = (
        request.headers.get("X-Request-ID")
        or request.headers.get("X-Correlation-ID")
        or str(uuid.uuid4())
    )

    token = request_id_var.set(correlation_id)
    request["correlation_id"] = correlation_id

    try:
        response = await handler(request)
    finally:
        request_id_var.reset(token)

    response.headers["X-Request-ID"] = correlation_id
    return response


def get_request_id() -> str:
    """Get current request correlation ID, or "no-request-id" outside a request."""
    request_id = request_id_var.get()
    return request_id if request_id else NO_REQUEST_ID
