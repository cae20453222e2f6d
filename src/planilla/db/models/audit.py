"""Tenant audit log models."""

from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, PortableJSON, TenantScopedMixin, UTCDateTime


class AuditAction(str, Enum):
    """Actions recorded in a tenant's audit log."""

    # Tenant lifecycle
    TENANT_REGISTERED = "tenant.registered"

    # Membership
    USER_LOGIN = "user.login"
    INVITATION_CREATED = "invitation.created"
    INVITATION_ACCEPTED = "invitation.accepted"
    INVITATION_REVOKED = "invitation.revoked"
    MEMBER_ROLE_CHANGED = "member.role_changed"
    MEMBER_DEACTIVATED = "member.deactivated"
    MEMBER_REMOVED = "member.removed"

    # Business data
    EMPLOYEE_CREATED = "employee.created"
    EMPLOYEE_UPDATED = "employee.updated"
    EMPLOYEE_DEACTIVATED = "employee.deactivated"
    EMPLOYEE_DELETED = "employee.deleted"

    # Billing
    CHECKOUT_STARTED = "billing.checkout_started"
    CANCEL_REQUESTED = "billing.cancel_requested"
    PLAN_CHANGE_REQUESTED = "billing.plan_change_requested"
    SUBSCRIPTION_SYNCED = "billing.subscription_synced"


class AuditLogEntry(Base, TenantScopedMixin):
    """Immutable, append-only record of an action inside a tenant."""

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    actor_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    details: Mapped[dict] = mapped_column(PortableJSON(), nullable=False, default=dict)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)  # IPv6 support
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_audit_log_tenant_created", "tenant_id", "created_at"),
        Index("idx_audit_log_action", "action"),
    )

    def __repr__(self) -> str:
        return f"<AuditLogEntry(id={self.id}, tenant_id={self.tenant_id}, action={self.action})>"
