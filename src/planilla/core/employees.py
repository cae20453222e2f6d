"""Employee records of the caller's tenant.

Creating an employee consumes a plan slot, so it runs under the tenant's
write lock and re-checks the employee limit there. Deactivating one frees
the slot again.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from planilla.core.audit import AuditLogger
from planilla.core.context import TenantContext
from planilla.core.entitlements import EntitlementGatekeeper
from planilla.core.exceptions import ConflictError, ValidationFailedError
from planilla.core.logging import get_logger
from planilla.core.roles import TenantRole
from planilla.core.tenant import TenantService
from planilla.db.models.audit import AuditAction
from planilla.db.models.payroll import Employee
from planilla.db.repositories import (
    DepartmentRepository,
    EmployeeRepository,
    PositionRepository,
)

logger = get_logger(__name__)


@dataclass
class EmployeeData:
    first_name: str
    last_name: str
    id_number: str
    base_salary: Decimal
    hire_date: date
    department_id: int | None = None
    position_id: int | None = None


class EmployeeService:
    """Tenant-scoped employee lifecycle with plan enforcement."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.employees = EmployeeRepository(db)
        self.departments = DepartmentRepository(db)
        self.positions = PositionRepository(db)
        self.tenants = TenantService(db)
        self.gatekeeper = EntitlementGatekeeper(db)
        self.audit = AuditLogger(db)

    async def list_employees(
        self,
        ctx: TenantContext,
        *,
        active_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Employee]:
        ctx.require_role(TenantRole.ACCOUNTANT)
        criteria = [Employee.is_active.is_(True)] if active_only else []
        return await self.employees.list(
            ctx.tenant_id,
            *criteria,
            limit=limit,
            offset=offset,
            order_by=(Employee.last_name, Employee.first_name, Employee.id),
        )

    async def get_employee(self, ctx: TenantContext, employee_id: int) -> Employee:
        ctx.require_role(TenantRole.ACCOUNTANT)
        return await self.employees.get_or_raise(ctx.tenant_id, employee_id)

    async def create_employee(
        self,
        ctx: TenantContext,
        data: EmployeeData,
        *,
        ip_address: str | None = None,
    ) -> Employee:
        """Add an active employee.

        Raises:
            InsufficientRoleError: Caller is below Manager
            SubscriptionInactiveError: Subscription state denies writes
            PlanLimitExceededError: The plan's employee limit is reached
            ConflictError: The id number is already registered
            NotFoundError: Department or position is not the tenant's
        """
        ctx.require_role(TenantRole.MANAGER)
        await self.tenants.lock_tenant(ctx.tenant_id)
        self.gatekeeper.enforce(await self.gatekeeper.can_create_employee(ctx.tenant_id))

        if await self.employees.find_one(ctx.tenant_id, Employee.id_number == data.id_number):
            raise ConflictError(f"An employee with id number {data.id_number} already exists")
        await self._check_references(ctx, data.department_id, data.position_id)

        employee = await self.employees.create(
            ctx.tenant_id,
            Employee(
                first_name=data.first_name,
                last_name=data.last_name,
                id_number=data.id_number,
                base_salary=data.base_salary,
                hire_date=data.hire_date,
                department_id=data.department_id,
                position_id=data.position_id,
                is_active=True,
            ),
        )
        await self.audit.log(
            ctx,
            AuditAction.EMPLOYEE_CREATED,
            entity_type="employee",
            entity_id=employee.id,
            ip_address=ip_address,
        )
        logger.info("employee_created", tenant_id=ctx.tenant_id, employee_id=employee.id)
        return employee

    async def update_employee(
        self,
        ctx: TenantContext,
        employee_id: int,
        values: dict[str, Any],
        *,
        ip_address: str | None = None,
    ) -> Employee:
        ctx.require_role(TenantRole.MANAGER)
        await self.gatekeeper.require_writable(ctx.tenant_id)
        if "is_active" in values:
            raise ValidationFailedError("Use the deactivate endpoint", field="is_active")
        await self._check_references(ctx, values.get("department_id"), values.get("position_id"))

        employee = await self.employees.update_by_id(ctx.tenant_id, employee_id, values)
        await self.audit.log(
            ctx,
            AuditAction.EMPLOYEE_UPDATED,
            entity_type="employee",
            entity_id=employee_id,
            details={"fields": sorted(values)},
            ip_address=ip_address,
        )
        return employee

    async def deactivate_employee(
        self, ctx: TenantContext, employee_id: int, *, ip_address: str | None = None
    ) -> Employee:
        """Mark an employee inactive; they stop counting against the plan."""
        ctx.require_role(TenantRole.MANAGER)
        await self.gatekeeper.require_writable(ctx.tenant_id)
        employee = await self.employees.update_by_id(
            ctx.tenant_id, employee_id, {"is_active": False}
        )
        await self.audit.log(
            ctx,
            AuditAction.EMPLOYEE_DEACTIVATED,
            entity_type="employee",
            entity_id=employee_id,
            ip_address=ip_address,
        )
        logger.info("employee_deactivated", tenant_id=ctx.tenant_id, employee_id=employee_id)
        return employee

    async def delete_employee(
        self, ctx: TenantContext, employee_id: int, *, ip_address: str | None = None
    ) -> None:
        ctx.require_role(TenantRole.ADMIN)
        await self.gatekeeper.require_writable(ctx.tenant_id)
        await self.employees.delete_by_id(ctx.tenant_id, employee_id)
        await self.audit.log(
            ctx,
            AuditAction.EMPLOYEE_DELETED,
            entity_type="employee",
            entity_id=employee_id,
            ip_address=ip_address,
        )
        logger.info("employee_deleted", tenant_id=ctx.tenant_id, employee_id=employee_id)

    async def _check_references(
        self,
        ctx: TenantContext,
        department_id: int | None,
        position_id: int | None,
    ) -> None:
        # Foreign ids must belong to the same tenant
        if department_id is not None:
            await self.departments.get_or_raise(ctx.tenant_id, department_id)
        if position_id is not None:
            await self.positions.get_or_raise(ctx.tenant_id, position_id)
