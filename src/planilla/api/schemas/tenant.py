"""Tenant, membership, invitation, usage and audit schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator

from planilla.core.audit import Page
from planilla.core.membership import MemberView
from planilla.core.roles import TenantRole, parse_role
from planilla.core.tenant import TenantSnapshot
from planilla.db.models.audit import AuditLogEntry
from planilla.db.models.user import Invitation

_ROLE_NAMES = {role.label.lower() for role in TenantRole}


def _role_from_name(value: Any) -> TenantRole:
    """Accept a role by name (case-insensitive); reject anything unknown."""
    if isinstance(value, TenantRole):
        return value
    if not isinstance(value, str) or value.strip().lower() not in _ROLE_NAMES:
        raise ValueError(f"role must be one of: {', '.join(r.label for r in TenantRole)}")
    return parse_role(value)


class TenantResponse(BaseModel):
    id: int
    name: str
    subdomain: str
    ruc: str | None
    dv: str | None
    email: str | None
    is_active: bool
    plan: str | None
    subscription_status: str | None
    trial_ends_at: datetime | None
    created_at: datetime | None

    @classmethod
    def from_snapshot(cls, snapshot: TenantSnapshot) -> "TenantResponse":
        tenant, subscription = snapshot.tenant, snapshot.subscription
        return cls(
            id=tenant.id,
            name=tenant.name,
            subdomain=tenant.subdomain,
            ruc=tenant.ruc,
            dv=tenant.dv,
            email=tenant.email,
            is_active=tenant.is_active,
            plan=subscription.plan if subscription else None,
            subscription_status=subscription.status if subscription else None,
            trial_ends_at=subscription.trial_ends_at if subscription else None,
            created_at=tenant.created_at,
        )


class MemberResponse(BaseModel):
    id: int
    user_id: str
    email: str | None
    role: str
    is_active: bool
    joined_at: datetime
    last_login_at: datetime | None

    @classmethod
    def from_view(cls, view: MemberView) -> "MemberResponse":
        member = view.member
        return cls(
            id=member.id,
            user_id=member.user_id,
            email=view.email,
            role=member.role_enum.label,
            is_active=member.is_active,
            joined_at=member.joined_at,
            last_login_at=member.last_login_at,
        )


class MemberUpdateRequest(BaseModel):
    """Change a member's role and/or active flag."""

    role: TenantRole | None = None
    is_active: bool | None = None

    @field_validator("role", mode="before")
    @classmethod
    def _parse_role(cls, value: Any) -> TenantRole | None:
        return None if value is None else _role_from_name(value)


class InvitationCreateRequest(BaseModel):
    email: EmailStr
    role: TenantRole = Field(..., description="Owner, Admin, Manager, Accountant or Employee")

    @field_validator("role", mode="before")
    @classmethod
    def _parse_role(cls, value: Any) -> TenantRole:
        return _role_from_name(value)


class InvitationResponse(BaseModel):
    id: int
    email: str
    role: str
    expires_at: datetime
    created_at: datetime
    is_revoked: bool
    accepted_at: datetime | None
    token: str | None = None
    invitation_url: str | None = None

    @classmethod
    def from_model(
        cls, invitation: Invitation, *, frontend_url: str | None = None
    ) -> "InvitationResponse":
        """Render an invitation; the token is only revealed with a frontend url."""
        token = url = None
        if frontend_url:
            token = invitation.token
            url = f"{frontend_url.rstrip('/')}/accept-invite?token={token}"
        return cls(
            id=invitation.id,
            email=invitation.email,
            role=invitation.role_enum.label,
            expires_at=invitation.expires_at,
            created_at=invitation.created_at,
            is_revoked=invitation.is_revoked,
            accepted_at=invitation.accepted_at,
            token=token,
            invitation_url=url,
        )


class UsageResponse(BaseModel):
    employees_count: int
    max_employees: int
    users_count: int
    max_users: int
    companies_count: int
    max_companies: int


class AuditEntryResponse(BaseModel):
    id: int
    action: str
    actor_user_id: str | None
    actor_email: str | None
    entity_type: str | None
    entity_id: str | None
    details: dict[str, Any]
    ip_address: str | None
    created_at: datetime

    @classmethod
    def from_model(cls, entry: AuditLogEntry) -> "AuditEntryResponse":
        return cls(
            id=entry.id,
            action=entry.action,
            actor_user_id=entry.actor_user_id,
            actor_email=entry.actor_email,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            details=entry.details or {},
            ip_address=entry.ip_address,
            created_at=entry.created_at,
        )


class AuditPageResponse(BaseModel):
    items: list[AuditEntryResponse]
    total_count: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def from_page(cls, page: Page[AuditLogEntry]) -> "AuditPageResponse":
        return cls(
            items=[AuditEntryResponse.from_model(entry) for entry in page.items],
            total_count=page.total_count,
            page=page.page,
            page_size=page.page_size,
            total_pages=page.total_pages,
        )
