"""Tests for tenant-scoped data access."""

from datetime import date
from decimal import Decimal

import pytest

from planilla.core.exceptions import NotFoundError, UnauthorizedAccessError
from planilla.db.models.payroll import Department, Employee, PayrollConfig
from planilla.db.models.tenant import Tenant
from planilla.db.repositories import (
    CrossTenantAccess,
    DepartmentRepository,
    EmployeeRepository,
    TenantScopedRepository,
    require_tenant_id,
)


def _employee(id_number: str, **kwargs) -> Employee:
    return Employee(
        first_name=kwargs.pop("first_name", "Ana"),
        last_name="Pérez",
        id_number=id_number,
        base_salary=Decimal("1200.00"),
        hire_date=date(2024, 1, 15),
        **kwargs,
    )


@pytest.mark.asyncio
class TestTenantScopedRepository:
    """Rows of one tenant are invisible through another tenant's id."""

    async def test_get_other_tenants_row_is_none(self, db_session, make_tenant):
        a = await make_tenant(db_session, "Acme")
        b = await make_tenant(db_session, "Beta")
        repo = EmployeeRepository(db_session)
        employee = await repo.create(a.tenant.id, _employee("8-111-111"))

        assert await repo.get(a.tenant.id, employee.id) is not None
        assert await repo.get(b.tenant.id, employee.id) is None

    async def test_get_or_raise_reports_not_found(self, db_session, make_tenant):
        a = await make_tenant(db_session, "Acme")
        b = await make_tenant(db_session, "Beta")
        repo = EmployeeRepository(db_session)
        employee = await repo.create(a.tenant.id, _employee("8-111-111"))

        with pytest.raises(NotFoundError) as exc_info:
            await repo.get_or_raise(b.tenant.id, employee.id)
        assert exc_info.value.entity_type == "Employee"

    async def test_list_and_count_are_scoped(self, db_session, make_tenant):
        a = await make_tenant(db_session, "Acme")
        b = await make_tenant(db_session, "Beta")
        repo = EmployeeRepository(db_session)
        await repo.create(a.tenant.id, _employee("1"))
        await repo.create(a.tenant.id, _employee("2"))
        await repo.create(b.tenant.id, _employee("3"))

        assert {e.id_number for e in await repo.list(a.tenant.id)} == {"1", "2"}
        assert await repo.count(a.tenant.id) == 2
        assert await repo.count(b.tenant.id) == 1

    async def test_create_overwrites_tenant_id(self, db_session, make_tenant):
        a = await make_tenant(db_session, "Acme")
        b = await make_tenant(db_session, "Beta")
        repo = EmployeeRepository(db_session)

        employee = await repo.create(a.tenant.id, _employee("1", tenant_id=b.tenant.id))

        assert employee.tenant_id == a.tenant.id

    async def test_update_other_tenants_row_is_not_found(self, db_session, make_tenant):
        a = await make_tenant(db_session, "Acme")
        b = await make_tenant(db_session, "Beta")
        repo = EmployeeRepository(db_session)
        employee = await repo.create(a.tenant.id, _employee("1"))

        with pytest.raises(NotFoundError):
            await repo.update_by_id(b.tenant.id, employee.id, {"first_name": "Mallory"})

        unchanged = await repo.get(a.tenant.id, employee.id, refresh=True)
        assert unchanged.first_name == "Ana"

    async def test_update_cannot_move_row_to_another_tenant(self, db_session, make_tenant):
        a = await make_tenant(db_session, "Acme")
        b = await make_tenant(db_session, "Beta")
        repo = EmployeeRepository(db_session)
        employee = await repo.create(a.tenant.id, _employee("1"))

        updated = await repo.update_by_id(
            a.tenant.id, employee.id, {"tenant_id": b.tenant.id, "first_name": "Eva"}
        )

        assert updated.tenant_id == a.tenant.id
        assert updated.first_name == "Eva"

    async def test_delete_other_tenants_row_is_not_found(self, db_session, make_tenant):
        a = await make_tenant(db_session, "Acme")
        b = await make_tenant(db_session, "Beta")
        repo = EmployeeRepository(db_session)
        employee = await repo.create(a.tenant.id, _employee("1"))

        with pytest.raises(NotFoundError):
            await repo.delete_by_id(b.tenant.id, employee.id)
        assert await repo.exists(a.tenant.id, employee.id)

    async def test_same_code_allowed_in_different_tenants(self, db_session, make_tenant):
        a = await make_tenant(db_session, "Acme")
        b = await make_tenant(db_session, "Beta")
        repo = DepartmentRepository(db_session)
        await repo.create(a.tenant.id, Department(name="Finance", code="FIN"))
        await repo.create(b.tenant.id, Department(name="Finanzas", code="FIN"))

        assert (await repo.get_by_code(a.tenant.id, "FIN")).name == "Finance"
        assert (await repo.get_by_code(b.tenant.id, "FIN")).name == "Finanzas"

    @pytest.mark.parametrize("tenant_id", [0, -1, None, "1", True])
    async def test_missing_tenant_scope_rejected(self, db_session, tenant_id):
        with pytest.raises(UnauthorizedAccessError):
            await EmployeeRepository(db_session).list(tenant_id)


class TestRepositoryBinding:
    def test_unscoped_model_cannot_be_bound(self):
        with pytest.raises(TypeError):

            class TenantRepository(TenantScopedRepository[Tenant]):
                pass

    def test_model_extracted_from_generic(self):
        assert EmployeeRepository.model is Employee

    def test_require_tenant_id(self):
        assert require_tenant_id(4) == 4
        with pytest.raises(UnauthorizedAccessError):
            require_tenant_id(0)


@pytest.mark.asyncio
class TestCrossTenantAccess:
    async def test_reason_required(self, db_session):
        with pytest.raises(ValueError):
            CrossTenantAccess(db_session, reason="")

    async def test_active_tenant_ids(self, db_session, make_tenant):
        a = await make_tenant(db_session, "Acme")
        b = await make_tenant(db_session, "Beta")
        b.tenant.is_active = False
        await db_session.flush()

        access = CrossTenantAccess(db_session, reason="test")

        assert await access.active_tenant_ids() == [a.tenant.id]

    async def test_add_all_requires_tenant(self, db_session):
        access = CrossTenantAccess(db_session, reason="test")
        with pytest.raises(UnauthorizedAccessError):
            await access.add_all([PayrollConfig(tenant_id=0, effective_year=2026, rates={})])
