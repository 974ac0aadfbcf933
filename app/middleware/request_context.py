"""
RequestContext Middleware - request id and timing for every request.

Each request gets a UUID stored in request.state.request_id, bound into the
structlog context (so every log line emitted while serving it carries the id)
and echoed back in the X-Request-ID response header. A caller-supplied
X-Request-ID is kept only when it is a well-formed UUID.
"""

import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.infrastructure.observability.logging import log_request

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 36


def resolve_request_id(incoming: str | None) -> str:
    """Client-supplied id if it is a UUID, else a fresh one."""
    if incoming and len(incoming) <= MAX_REQUEST_ID_LENGTH:
        try:
            return str(uuid.UUID(incoming))
        except ValueError:
            pass
    return str(uuid.uuid4())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id for logging and log one line per completed request."""

    async def dispatch(self, request: Request, call_next):
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.time()
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        log_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.time() - start_time) * 1000, 2),
            request_id=request_id,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
