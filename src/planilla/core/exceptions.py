"""Core exceptions for tenant isolation, entitlements and membership."""

from planilla.utils.exceptions import PlanillaError


class AuthenticationError(PlanillaError):
    """Raised when a credential is missing, malformed, expired or unsigned.

    Attributes:
        reason: Why authentication failed (logged, not returned verbatim)
    """

    def __init__(self, reason: str = "Authentication failed"):
        super().__init__(reason)
        self.reason = reason

    def __str__(self) -> str:
        return f"Authentication failed: {self.reason}"


class UnauthorizedAccessError(PlanillaError):
    """Raised when a verified credential carries an invalid tenant claim."""

    def __init__(self, message: str = "Invalid tenant claim"):
        super().__init__(message)


class InsufficientRoleError(PlanillaError):
    """Raised when the actor's role does not satisfy the required role.

    The required role is kept for logging but never rendered in ``__str__``.
    """

    def __init__(self, actual: str, required: str):
        super().__init__("Insufficient permissions")
        self.actual = actual
        self.required = required


class TenantNotFoundError(PlanillaError):
    """Raised when a tenant does not exist.

    Attributes:
        tenant_id: The tenant ID that was not found
    """

    def __init__(self, tenant_id: int):
        super().__init__(f"Tenant not found: {tenant_id}")
        self.tenant_id = tenant_id


class TenantInactiveError(PlanillaError):
    """Raised when a tenant exists but has been deactivated.

    Attributes:
        tenant_id: The tenant ID that is inactive
    """

    def __init__(self, tenant_id: int):
        super().__init__(f"Tenant is inactive: {tenant_id}")
        self.tenant_id = tenant_id


class NotFoundError(PlanillaError):
    """Raised when an entity is absent from the current tenant's scope.

    Used both for truly absent rows and rows owned by another tenant.
    """

    def __init__(self, entity_type: str, entity_id: object):
        super().__init__(f"{entity_type} not found: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationFailedError(PlanillaError):
    """Raised for domain-level input validation failures.

    Attributes:
        field: The offending field, if any
    """

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class ConflictError(PlanillaError):
    """Raised when an operation conflicts with existing state."""

    pass


class LastOwnerError(ConflictError):
    """Raised when an operation would leave a tenant without an active Owner."""

    def __init__(self, tenant_id: int):
        super().__init__("A tenant must keep at least one active owner")
        self.tenant_id = tenant_id


class InvitationInvalidError(PlanillaError):
    """Raised for any invitation that cannot be used.

    The reason is intentionally uniform so callers cannot enumerate tokens.
    """

    def __init__(self):
        super().__init__("Invitation invalid or expired")


class EntitlementError(PlanillaError):
    """Base class for entitlement denials.

    Attributes:
        reason: Human-readable explanation including any upgrade suggestion
        suggested_plan: Next plan name, if an upgrade would help
    """

    def __init__(self, reason: str, suggested_plan: str | None = None):
        super().__init__(reason)
        self.reason = reason
        self.suggested_plan = suggested_plan


class SubscriptionInactiveError(EntitlementError):
    """Raised when the subscription status blocks the operation."""

    def __init__(self, reason: str, status: str | None = None):
        super().__init__(reason)
        self.status = status


class PlanLimitExceededError(EntitlementError):
    """Raised when a plan's resource limit has been reached.

    Attributes:
        resource: The limited resource (employees, users)
        limit: The effective limit that was hit
    """

    def __init__(
        self,
        reason: str,
        resource: str,
        limit: int,
        suggested_plan: str | None = None,
    ):
        super().__init__(reason, suggested_plan)
        self.resource = resource
        self.limit = limit

    def __str__(self) -> str:
        return self.reason


class FeatureNotAvailableError(EntitlementError):
    """Raised when the plan does not include a feature (export, API)."""

    def __init__(self, reason: str, feature: str, suggested_plan: str | None = None):
        super().__init__(reason, suggested_plan)
        self.feature = feature
