"""Tenant context resolution.

A :class:`TenantContext` is built once per request from verified credential
claims and passed explicitly to every service and repository call. There is
no ambient lookup: code that needs the tenant receives the context.

Usage:
    from planilla.core.context import resolve_context

    claims = decode_access_token(settings, token)
    ctx = resolve_context(claims)
    ctx.require_role(TenantRole.ADMIN)
"""

import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from planilla.core.exceptions import (
    AuthenticationError,
    InsufficientRoleError,
    UnauthorizedAccessError,
)
from planilla.core.roles import TenantRole, has_role, parse_role

_INTEGER_RE = re.compile(r"^[+-]?\d+$")


class TenantContext(BaseModel):
    """Immutable identity of the caller within one tenant.

    ``tenant_id == 0`` is the unauthenticated state.

    Attributes:
        tenant_id: Active tenant, positive when authenticated
        role: Caller's role within the tenant
        user_id: External identity reference (credential subject)
        email: Caller's email, for audit records
        plan: Plan name carried by the credential (informational only)
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: int = 0
    role: TenantRole = TenantRole.EMPLOYEE
    user_id: str | None = None
    email: str | None = None
    plan: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.tenant_id > 0 and bool(self.user_id)

    def has_role(self, required: TenantRole) -> bool:
        """Check the caller's role against ``required`` via the role lattice."""
        return has_role(self.role, required)

    def require_role(self, required: TenantRole) -> None:
        """Raise InsufficientRoleError unless the caller satisfies ``required``."""
        if not self.has_role(required):
            raise InsufficientRoleError(actual=self.role.label, required=required.label)


UNAUTHENTICATED = TenantContext()


def parse_tenant_id(value: Any) -> int:
    """Parse the ``tenant_id`` claim.

    Returns 0 when the claim is absent. A present value must be a positive
    integer (or its string form); anything else fails closed.

    Raises:
        UnauthorizedAccessError: If the claim is present but not a positive integer
    """
    if value is None or value == "":
        return 0

    if isinstance(value, bool):
        raise UnauthorizedAccessError("Invalid tenant claim")

    if isinstance(value, int):
        tenant_id = value
    elif isinstance(value, str) and _INTEGER_RE.match(value.strip()):
        tenant_id = int(value.strip())
    else:
        raise UnauthorizedAccessError("Invalid tenant claim")

    if tenant_id <= 0:
        raise UnauthorizedAccessError("Invalid tenant claim")
    return tenant_id


def resolve_context(claims: Mapping[str, Any]) -> TenantContext:
    """Build a TenantContext from verified credential claims.

    Only claims from a signature-verified credential may be passed here;
    request bodies, query strings and headers are never consulted.

    Args:
        claims: Decoded JWT claims

    Returns:
        The caller's context, or ``UNAUTHENTICATED`` when no tenant claim exists

    Raises:
        UnauthorizedAccessError: If the tenant claim is present but invalid
        AuthenticationError: If a tenant is claimed without a subject
    """
    tenant_id = parse_tenant_id(claims.get("tenant_id"))
    if tenant_id == 0:
        return UNAUTHENTICATED

    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject:
        raise AuthenticationError("Credential has no subject")

    email = claims.get("email")
    plan = claims.get("plan")

    return TenantContext(
        tenant_id=tenant_id,
        role=parse_role(claims.get("tenant_role")),
        user_id=subject,
        email=email if isinstance(email, str) else None,
        plan=plan if isinstance(plan, str) else None,
    )
