"""Error response schemas for API."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Authentication & Authorization
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"

    # Tenant errors
    TENANT_INACTIVE = "tenant_inactive"

    # Entitlement errors
    SUBSCRIPTION_INACTIVE = "subscription_inactive"
    PLAN_LIMIT_EXCEEDED = "plan_limit_exceeded"
    FEATURE_NOT_AVAILABLE = "feature_not_available"

    # Request errors
    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    CONFLICT = "conflict"
    LAST_OWNER = "last_owner"
    INVITATION_INVALID = "invitation_invalid"

    # Provider errors
    PROVIDER_ERROR = "provider_error"

    # System errors
    INTERNAL_ERROR = "internal_error"


class APIError(BaseModel):
    """Standardized API error response format.

    All API errors return this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(
        default=None, description="Additional error context"
    )
    request_id: str = Field(..., description="Request ID for tracing")
    timestamp: datetime = Field(..., description="When the error occurred")

    model_config = {"json_schema_extra": {"example": {
        "error_code": "plan_limit_exceeded",
        "message": (
            "You have reached the limit of 5 employees on the Free plan. "
            "Upgrade to Starter to add more."
        ),
        "details": {"resource": "employees", "limit": 5, "suggested_plan": "Starter"},
        "request_id": "5f0c6c1e-4f57-4d0e-9a43-9d1f0b7c2e11",
        "timestamp": "2026-01-30T12:00:00Z",
    }}}
