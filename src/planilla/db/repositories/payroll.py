"""Repositories for tenant-owned payroll and HR records."""

from planilla.db.models.audit import AuditLogEntry
from planilla.db.models.payroll import (
    Department,
    Employee,
    PayrollConfig,
    PayrollHeader,
    Position,
)

from .scoped import TenantScopedRepository


class DepartmentRepository(TenantScopedRepository[Department]):
    async def get_by_code(self, tenant_id: int, code: str) -> Department | None:
        return await self.find_one(tenant_id, Department.code == code)


class PositionRepository(TenantScopedRepository[Position]):
    pass


class EmployeeRepository(TenantScopedRepository[Employee]):
    async def count_active(self, tenant_id: int) -> int:
        """Active employees, the quantity limited by the plan."""
        return await self.count(tenant_id, Employee.is_active.is_(True))


class PayrollHeaderRepository(TenantScopedRepository[PayrollHeader]):
    pass


class PayrollConfigRepository(TenantScopedRepository[PayrollConfig]):
    async def get_for_year(self, tenant_id: int, year: int) -> PayrollConfig | None:
        return await self.find_one(tenant_id, PayrollConfig.effective_year == year)


class AuditLogRepository(TenantScopedRepository[AuditLogEntry]):
    pass
