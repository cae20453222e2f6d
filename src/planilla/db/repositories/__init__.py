"""Database repositories.

Tenant-owned models are only reachable through ``TenantScopedRepository``
subclasses; ``CrossTenantAccess`` is the single unscoped escape hatch.
"""

from .base import BaseRepository
from .directory import InvitationRepository, TenantUserRepository, UserRepository
from .payroll import (
    AuditLogRepository,
    DepartmentRepository,
    EmployeeRepository,
    PayrollConfigRepository,
    PayrollHeaderRepository,
    PositionRepository,
)
from .scoped import CrossTenantAccess, TenantScopedRepository, require_tenant_id

__all__ = [
    "BaseRepository",
    "TenantScopedRepository",
    "CrossTenantAccess",
    "require_tenant_id",
    "UserRepository",
    "TenantUserRepository",
    "InvitationRepository",
    "DepartmentRepository",
    "PositionRepository",
    "EmployeeRepository",
    "PayrollHeaderRepository",
    "PayrollConfigRepository",
    "AuditLogRepository",
]
