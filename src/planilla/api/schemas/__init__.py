"""API request/response schemas."""

from .auth import (
    AcceptInvitationRequest,
    InvitationPreviewResponse,
    LoginRequest,
    RegisterRequest,
    SessionResponse,
)
from .errors import APIError, ErrorCode
from .health import ComponentHealth, HealthDetailResponse, HealthResponse, HealthStatus
from .payroll import (
    DepartmentCreate,
    DepartmentResponse,
    DepartmentUpdate,
    EmployeeCreate,
    EmployeeResponse,
    EmployeeUpdate,
    PayrollRunCreate,
    PayrollRunResponse,
    PositionCreate,
    PositionResponse,
    PositionUpdate,
)
from .subscription import (
    BillingRequestAccepted,
    ChangePlanRequest,
    CheckoutRequest,
    CheckoutResponse,
    PortalRequest,
    PortalResponse,
    SubscriptionResponse,
    WebhookAck,
)
from .tenant import (
    AuditEntryResponse,
    AuditPageResponse,
    InvitationCreateRequest,
    InvitationResponse,
    MemberResponse,
    MemberUpdateRequest,
    TenantResponse,
    UsageResponse,
)

__all__ = [
    # Errors
    "APIError",
    "ErrorCode",
    # Health
    "ComponentHealth",
    "HealthDetailResponse",
    "HealthResponse",
    "HealthStatus",
    # Auth
    "AcceptInvitationRequest",
    "InvitationPreviewResponse",
    "LoginRequest",
    "RegisterRequest",
    "SessionResponse",
    # Tenant
    "AuditEntryResponse",
    "AuditPageResponse",
    "InvitationCreateRequest",
    "InvitationResponse",
    "MemberResponse",
    "MemberUpdateRequest",
    "TenantResponse",
    "UsageResponse",
    # Subscription
    "BillingRequestAccepted",
    "ChangePlanRequest",
    "CheckoutRequest",
    "CheckoutResponse",
    "PortalRequest",
    "PortalResponse",
    "SubscriptionResponse",
    "WebhookAck",
    # Payroll
    "DepartmentCreate",
    "DepartmentResponse",
    "DepartmentUpdate",
    "EmployeeCreate",
    "EmployeeResponse",
    "EmployeeUpdate",
    "PayrollRunCreate",
    "PayrollRunResponse",
    "PositionCreate",
    "PositionResponse",
    "PositionUpdate",
]
