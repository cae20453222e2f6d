"""Request logging middleware."""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from planilla.core.logging import get_logger

logger = get_logger("planilla.api.requests")


def get_client_ip(request: Request) -> str | None:
    """Extract client IP from request, considering proxy headers."""
    # Check X-Forwarded-For first (for reverse proxies)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take first IP in the chain (original client)
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that logs every HTTP request with its outcome.

    Uses structured logging rather than the tenant audit log to avoid
    database operations in the middleware layer. Business events are audited
    by the services that perform them.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and log request/response."""
        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000
        self._log_request(request, response, duration_ms)
        return response

    def _log_request(self, request: Request, response: Response, duration_ms: float) -> None:
        """Log the completed request."""
        ctx = getattr(request.state, "tenant_context", None)
        tenant_id = ctx.tenant_id if ctx is not None and ctx.tenant_id else None

        status_code = response.status_code
        if status_code >= 500:
            log = logger.error
        elif status_code >= 400:
            log = logger.warning
        else:
            log = logger.info

        log(
            "http_request",
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=round(duration_ms, 2),
            tenant_id=tenant_id,
            client_ip=get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
