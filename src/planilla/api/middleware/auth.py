"""Authentication middleware for bearer credential validation."""

import re
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from planilla.api.middleware.errors import error_response
from planilla.api.schemas.errors import ErrorCode
from planilla.core.context import UNAUTHENTICATED, resolve_context
from planilla.core.exceptions import AuthenticationError, UnauthorizedAccessError
from planilla.core.logging import bind_contextvars, get_logger
from planilla.core.security import decode_access_token

logger = get_logger(__name__)

# Paths that don't require authentication
SKIP_AUTH_PATHS = {
    "/health",
    "/health/db",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/api/auth/register",
    "/api/auth/login",
    "/api/auth/validate-invite",
    "/api/auth/accept-invite",
}

# Paths that start with these prefixes don't require auth
SKIP_AUTH_PREFIXES = (
    "/docs",
    "/redoc",
    "/api/webhooks/",  # provider webhooks use signature validation
)

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Middleware that verifies the bearer credential and resolves the caller.

    The tenant, role and identity come only from the verified credential;
    request bodies, query strings and other headers are never consulted.

    Sets:
        request.state.tenant_context: The caller's TenantContext
            (UNAUTHENTICATED on public paths)
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and validate authentication."""
        if self._should_skip_auth(request.url.path):
            request.state.tenant_context = UNAUTHENTICATED
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return self._unauthorized_response(request, "Missing Authorization header")

        match = _BEARER_RE.match(auth_header)
        if not match:
            return self._unauthorized_response(request, "Invalid Authorization header format")

        try:
            claims = decode_access_token(request.app.state.settings, match.group(1).strip())
            ctx = resolve_context(claims)
        except (AuthenticationError, UnauthorizedAccessError) as e:
            logger.info("authentication_failed", path=request.url.path, reason=str(e))
            return self._unauthorized_response(request, "Invalid or expired credential")

        if not ctx.is_authenticated:
            return self._unauthorized_response(request, "Credential carries no tenant")

        request.state.tenant_context = ctx
        bind_contextvars(tenant_id=ctx.tenant_id, user_id=ctx.user_id)
        return await call_next(request)

    def _should_skip_auth(self, path: str) -> bool:
        """Check if path should skip authentication."""
        if path in SKIP_AUTH_PATHS:
            return True
        return path.startswith(SKIP_AUTH_PREFIXES)

    def _unauthorized_response(self, request: Request, message: str) -> JSONResponse:
        """Create a 401 unauthorized response."""
        return error_response(
            request,
            401,
            ErrorCode.UNAUTHORIZED.value,
            message,
            headers={"WWW-Authenticate": "Bearer"},
        )
