"""Database models for Planilla."""

from .audit import AuditAction, AuditLogEntry
from .base import Base, PortableJSON, TenantScopedMixin, TimestampMixin, UTCDateTime
from .billing import WebhookEvent, WebhookEventStatus
from .payroll import (
    Department,
    Employee,
    PayrollConfig,
    PayrollHeader,
    PayrollStatus,
    Position,
)
from .tenant import Subscription, Tenant
from .user import Invitation, TenantUser, User

__all__ = [
    # Base
    "Base",
    "PortableJSON",
    "TenantScopedMixin",
    "TimestampMixin",
    "UTCDateTime",
    # Tenant directory
    "Tenant",
    "Subscription",
    "User",
    "TenantUser",
    "Invitation",
    # Payroll
    "Department",
    "Position",
    "Employee",
    "PayrollHeader",
    "PayrollStatus",
    "PayrollConfig",
    # Billing
    "WebhookEvent",
    "WebhookEventStatus",
    # Audit
    "AuditAction",
    "AuditLogEntry",
]
