"""Error handling middleware for mapping exceptions to HTTP responses."""

from datetime import UTC, datetime
from typing import Callable

from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from planilla.api.schemas.errors import APIError, ErrorCode
from planilla.core.exceptions import (
    AuthenticationError,
    ConflictError,
    FeatureNotAvailableError,
    InsufficientRoleError,
    InvitationInvalidError,
    LastOwnerError,
    NotFoundError,
    PlanLimitExceededError,
    SubscriptionInactiveError,
    TenantInactiveError,
    TenantNotFoundError,
    UnauthorizedAccessError,
    ValidationFailedError,
)
from planilla.core.logging import get_logger
from planilla.utils.exceptions import ExternalServiceError

logger = get_logger(__name__)

ErrorMapping = tuple[int, str, str, dict | None]


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware that catches exceptions and returns standardized error responses.

    Maps domain exceptions to appropriate HTTP status codes and formats
    all errors using the APIError schema. Internal detail of unexpected
    exceptions is logged, never returned.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and handle any exceptions."""
        try:
            return await call_next(request)
        except Exception as exc:
            return self._handle_exception(request, exc)

    def _handle_exception(self, request: Request, exc: Exception) -> JSONResponse:
        """Convert exception to JSON error response."""
        status_code, error_code, message, details = map_exception(exc)

        if status_code >= 500:
            logger.exception("request_failed", path=request.url.path, error_code=error_code)
        elif isinstance(exc, InsufficientRoleError):
            logger.info(
                "role_denied",
                path=request.url.path,
                actual=exc.actual,
                required=exc.required,
            )
        else:
            logger.info(
                "request_rejected",
                path=request.url.path,
                status_code=status_code,
                error_code=error_code,
            )

        return error_response(request, status_code, error_code, message, details)


def error_response(
    request: Request,
    status_code: int,
    error_code: str,
    message: str,
    details: dict | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Render an APIError envelope."""
    request_id = get_request_id(request)
    error = APIError(
        error_code=error_code,
        message=message,
        details=details,
        request_id=request_id,
        timestamp=datetime.now(UTC),
    )
    return JSONResponse(
        status_code=status_code,
        content=error.model_dump(mode="json"),
        headers={"X-Request-ID": request_id, **(headers or {})},
    )


def get_request_id(request: Request) -> str:
    """Extract request ID from state or return a placeholder."""
    return str(getattr(request.state, "request_id", "unknown"))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> Response:
    """Exception handler giving FastAPI's request validation errors the APIError shape."""
    return error_response(
        request,
        422,
        ErrorCode.VALIDATION_ERROR.value,
        "Request validation failed",
        {"errors": _jsonable_errors(exc.errors())},
    )


def _jsonable_errors(errors) -> list[dict]:
    # ctx may carry exception instances
    return [
        {key: value for key, value in error.items() if key in ("type", "loc", "msg")}
        for error in errors
    ]


def map_exception(exc: Exception) -> ErrorMapping:
    """Map exception to (status_code, error_code, message, details)."""
    # Authentication errors
    if isinstance(exc, AuthenticationError | UnauthorizedAccessError):
        return (401, ErrorCode.UNAUTHORIZED.value, "Authentication required", None)

    # Role denials stay generic: the required role is not disclosed
    if isinstance(exc, InsufficientRoleError):
        return (
            403,
            ErrorCode.FORBIDDEN.value,
            "You do not have permission for this action",
            None,
        )

    # Tenant errors
    if isinstance(exc, TenantInactiveError | TenantNotFoundError):
        return (403, ErrorCode.TENANT_INACTIVE.value, "Tenant is not active", None)

    # Entitlement errors
    if isinstance(exc, PlanLimitExceededError):
        return (
            409,
            ErrorCode.PLAN_LIMIT_EXCEEDED.value,
            exc.reason,
            {
                "resource": exc.resource,
                "limit": exc.limit,
                "suggested_plan": exc.suggested_plan,
            },
        )

    if isinstance(exc, SubscriptionInactiveError):
        return (
            402,
            ErrorCode.SUBSCRIPTION_INACTIVE.value,
            exc.reason,
            {"status": exc.status, "suggested_plan": exc.suggested_plan},
        )

    if isinstance(exc, FeatureNotAvailableError):
        return (
            402,
            ErrorCode.FEATURE_NOT_AVAILABLE.value,
            exc.reason,
            {"feature": exc.feature, "suggested_plan": exc.suggested_plan},
        )

    # Request errors
    if isinstance(exc, NotFoundError):
        return (404, ErrorCode.NOT_FOUND.value, f"{exc.entity_type} not found", None)

    if isinstance(exc, ValidationFailedError):
        return (
            400,
            ErrorCode.VALIDATION_ERROR.value,
            str(exc),
            {"field": exc.field} if exc.field else None,
        )

    if isinstance(exc, ValidationError):
        return (
            422,
            ErrorCode.VALIDATION_ERROR.value,
            "Request validation failed",
            {"errors": _jsonable_errors(exc.errors())},
        )

    if isinstance(exc, LastOwnerError):
        return (409, ErrorCode.LAST_OWNER.value, str(exc), None)

    if isinstance(exc, ConflictError):
        return (409, ErrorCode.CONFLICT.value, str(exc), None)

    if isinstance(exc, InvitationInvalidError):
        return (400, ErrorCode.INVITATION_INVALID.value, str(exc), None)

    # Provider errors
    if isinstance(exc, ExternalServiceError):
        return (
            502,
            ErrorCode.PROVIDER_ERROR.value,
            "The billing provider is unavailable, please try again later",
            None,
        )

    # Generic exceptions
    return (500, ErrorCode.INTERNAL_ERROR.value, "Internal server error", None)
