"""Request ID middleware: one trace id per request.

Learn: The id is taken from X-Request-ID when an upstream proxy already
assigned one, otherwise generated here. It is bound into structlog's
contextvars together with the method and path, so every auth.* and
session.* event logged while serving the request can be correlated,
and it is echoed back on the response.
"""

import uuid
from typing import Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

HEADER = "X-Request-ID"

# Longer incoming ids are replaced rather than logged verbatim
MAX_INCOMING_LENGTH = 128


def resolve_request_id(incoming: Optional[str]) -> str:
    if incoming and len(incoming) <= MAX_INCOMING_LENGTH:
        return incoming
    return uuid.uuid4().hex


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = resolve_request_id(request.headers.get(HEADER))
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        try:
            response: Response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()
        response.headers[HEADER] = request_id
        return response
