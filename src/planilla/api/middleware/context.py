"""Request context middleware: request id and log context per request."""

import re
from typing import Callable
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from planilla.core.logging import bind_contextvars, clear_contextvars

# Client-supplied ids are accepted only in this shape
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{8,64}$")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware that assigns a request id and binds it into structlog.

    Sets:
        request.state.request_id: Client ``X-Request-ID`` if well formed,
            otherwise a new UUID
        X-Request-ID response header: For client correlation
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request within a fresh log context."""
        request_id = self._incoming_request_id(request) or str(uuid4())
        request.state.request_id = request_id

        clear_contextvars()
        bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            clear_contextvars()

        response.headers["X-Request-ID"] = request_id
        return response

    def _incoming_request_id(self, request: Request) -> str | None:
        value = request.headers.get("X-Request-ID")
        if value and _REQUEST_ID_RE.match(value):
            return value
        return None
