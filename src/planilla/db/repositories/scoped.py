"""Tenant-scoped data access.

Every read and write against a tenant-owned table goes through
:class:`TenantScopedRepository`. Each method takes the resolved tenant id as
its first, required argument and folds it into the statement itself, so a
forgotten ``WHERE`` clause cannot leak rows across tenants and an id owned by
another tenant is indistinguishable from an absent one.

Usage:
    from planilla.db.repositories import EmployeeRepository

    repo = EmployeeRepository(db)
    employee = await repo.get_or_raise(ctx.tenant_id, employee_id)

Jobs that must operate on every tenant (seeding, maintenance) use
:class:`CrossTenantAccess` instead. It is the only unscoped path and it is
not wired into any request dependency.
"""

from collections.abc import Sequence
from typing import Any, Generic, TypeVar

from sqlalchemy import ColumnElement, Select, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from planilla.core.exceptions import NotFoundError, UnauthorizedAccessError
from planilla.core.logging import get_logger
from planilla.db.models.base import Base, TenantScopedMixin
from planilla.db.models.tenant import Tenant

logger = get_logger(__name__)

ModelType = TypeVar("ModelType", bound=Base)

_PROTECTED_COLUMNS = frozenset({"id", "tenant_id"})


def require_tenant_id(tenant_id: int) -> int:
    """Validate a tenant id before it reaches a query.

    Raises:
        UnauthorizedAccessError: If the id is not a positive integer
    """
    if isinstance(tenant_id, bool) or not isinstance(tenant_id, int) or tenant_id <= 0:
        raise UnauthorizedAccessError("Tenant scope is required")
    return tenant_id


class TenantScopedRepository(Generic[ModelType]):
    """Generic repository whose every statement is filtered by tenant.

    Subclasses bind a model that carries ``TenantScopedMixin``; binding any
    other model fails at class definition time.

    Type Parameters:
        ModelType: The tenant-owned SQLAlchemy model class

    Attributes:
        model: The model class
        db: The database session
    """

    model: type[ModelType]

    def __init__(self, db: AsyncSession):
        self.db = db

    def __init_subclass__(cls, **kwargs):
        """Extract model type from the generic parameter."""
        super().__init_subclass__(**kwargs)
        for base in getattr(cls, "__orig_bases__", []):
            args = getattr(base, "__args__", None)
            if args and isinstance(args[0], type) and issubclass(args[0], Base):
                if not issubclass(args[0], TenantScopedMixin):
                    raise TypeError(
                        f"{args[0].__name__} has no tenant_id column and cannot be "
                        "served by a tenant-scoped repository"
                    )
                cls.model = args[0]
                break

    @property
    def entity_name(self) -> str:
        return self.model.__name__

    def _scoped(self, tenant_id: int) -> Select:
        """Base select for the model restricted to one tenant."""
        return select(self.model).where(self.model.tenant_id == require_tenant_id(tenant_id))

    async def get(
        self,
        tenant_id: int,
        pk: int,
        *,
        for_update: bool = False,
        refresh: bool = False,
    ) -> ModelType | None:
        """Get a record by id within the tenant.

        Args:
            tenant_id: Owning tenant
            pk: Primary key value
            for_update: Lock the row until the transaction ends
            refresh: Overwrite any stale instance in the identity map

        Returns:
            Model instance or None if absent or owned by another tenant
        """
        stmt = self._scoped(tenant_id).where(self.model.id == pk)
        if for_update:
            stmt = stmt.with_for_update()
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_raise(
        self,
        tenant_id: int,
        pk: int,
        *,
        for_update: bool = False,
        refresh: bool = False,
    ) -> ModelType:
        """Get a record by id within the tenant or raise NotFoundError."""
        obj = await self.get(tenant_id, pk, for_update=for_update, refresh=refresh)
        if obj is None:
            raise NotFoundError(self.entity_name, pk)
        return obj

    async def list(
        self,
        tenant_id: int,
        *criteria: ColumnElement[bool],
        limit: int = 100,
        offset: int = 0,
        order_by: Any = None,
    ) -> list[ModelType]:
        """List records of the tenant matching additional criteria.

        Extra criteria are AND-ed with the tenant predicate.
        """
        stmt = self._scoped(tenant_id).where(*criteria)
        if order_by is None:
            order_by = (self.model.id,)
        elif not isinstance(order_by, tuple | list):
            order_by = (order_by,)
        stmt = stmt.order_by(*order_by)
        stmt = stmt.limit(min(limit, 1000)).offset(offset)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def find_one(
        self, tenant_id: int, *criteria: ColumnElement[bool]
    ) -> ModelType | None:
        """Get the first record of the tenant matching criteria."""
        stmt = self._scoped(tenant_id).where(*criteria).limit(1)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def count(self, tenant_id: int, *criteria: ColumnElement[bool]) -> int:
        """Count records of the tenant matching criteria.

        Pending changes are flushed first so the count observes writes made
        earlier in the same transaction.
        """
        await self.db.flush()
        stmt = (
            select(func.count(self.model.id))
            .where(self.model.tenant_id == require_tenant_id(tenant_id))
            .where(*criteria)
        )
        result = await self.db.execute(stmt)
        return result.scalar() or 0

    async def exists(self, tenant_id: int, pk: int) -> bool:
        return await self.count(tenant_id, self.model.id == pk) > 0

    async def create(self, tenant_id: int, obj: ModelType) -> ModelType:
        """Persist a new record owned by the tenant.

        Any tenant id already set on the object is overwritten.
        """
        obj.tenant_id = require_tenant_id(tenant_id)
        self.db.add(obj)
        await self.db.flush()
        return obj

    async def update_by_id(
        self, tenant_id: int, pk: int, values: dict[str, Any]
    ) -> ModelType:
        """Update a record in a single tenant-filtered statement.

        The ownership check and the mutation are one ``UPDATE ... WHERE
        id = :pk AND tenant_id = :tenant``; a row of another tenant is
        reported as not found.

        Raises:
            NotFoundError: If no row of the tenant has that id
        """
        values = {k: v for k, v in values.items() if k not in _PROTECTED_COLUMNS}
        if not values:
            return await self.get_or_raise(tenant_id, pk)

        stmt = (
            update(self.model)
            .where(
                self.model.id == pk,
                self.model.tenant_id == require_tenant_id(tenant_id),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError(self.entity_name, pk)
        return await self.get_or_raise(tenant_id, pk, refresh=True)

    async def delete_by_id(self, tenant_id: int, pk: int) -> None:
        """Delete a record in a single tenant-filtered statement.

        Raises:
            NotFoundError: If no row of the tenant has that id
        """
        stmt = (
            delete(self.model)
            .where(
                self.model.id == pk,
                self.model.tenant_id == require_tenant_id(tenant_id),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError(self.entity_name, pk)


class CrossTenantAccess:
    """Explicit, logged bypass of tenant scoping.

    For administrative and seeding jobs that must touch every tenant, e.g.
    provisioning default payroll configuration. Request handlers never
    construct this; a test asserts the API package does not import it.

    Example:
        access = CrossTenantAccess(session, reason="seed payroll config")
        for tenant_id in await access.active_tenant_ids():
            ...
    """

    def __init__(self, db: AsyncSession, *, reason: str):
        if not reason:
            raise ValueError("Cross-tenant access requires a reason")
        self.db = db
        self.reason = reason
        logger.warning("cross_tenant_access_opened", reason=reason)

    async def active_tenant_ids(self) -> list[int]:
        """Ids of every active tenant, ascending."""
        stmt = select(Tenant.id).where(Tenant.is_active.is_(True)).order_by(Tenant.id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def tenant_ids_with(
        self, model: type[TenantScopedMixin], *criteria: ColumnElement[bool]
    ) -> set[int]:
        """Distinct tenant ids that own at least one matching row of ``model``."""
        stmt = select(model.tenant_id).where(*criteria).distinct()
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def add_all(self, objs: Sequence[TenantScopedMixin]) -> None:
        """Insert rows that already carry their owning tenant id."""
        for obj in objs:
            require_tenant_id(obj.tenant_id)
            self.db.add(obj)
        await self.db.flush()
