"""Base repository for models that are not owned by a tenant.

Tenant-owned models use ``TenantScopedRepository`` instead; this generic
repository is for directory-level records such as users.

Usage:
    class UserRepository(BaseRepository[User, str]):
        pass

    repo = UserRepository(db_session)
    user = await repo.get(user_id)
"""

from typing import Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from planilla.db.models.base import Base, TenantScopedMixin

ModelType = TypeVar("ModelType", bound=Base)
PKType = TypeVar("PKType", bound=int | str)


class BaseRepository(Generic[ModelType, PKType]):
    """Generic repository for SQLAlchemy models.

    Type Parameters:
        ModelType: The SQLAlchemy model class
        PKType: The type of the primary key (int or str)
    """

    model: type[ModelType]

    def __init__(self, db: AsyncSession):
        self.db = db

    def __init_subclass__(cls, **kwargs):
        """Extract model type from generic parameter."""
        super().__init_subclass__(**kwargs)
        for base in getattr(cls, "__orig_bases__", []):
            args = getattr(base, "__args__", None)
            if args and isinstance(args[0], type) and issubclass(args[0], Base):
                if issubclass(args[0], TenantScopedMixin):
                    raise TypeError(
                        f"{args[0].__name__} is tenant-owned; use TenantScopedRepository"
                    )
                cls.model = args[0]
                break

    async def get(self, pk: PKType) -> ModelType | None:
        """Get a single record by primary key."""
        return await self.db.get(self.model, pk)

    async def count(self) -> int:
        """Count total records."""
        result = await self.db.execute(select(func.count()).select_from(self.model))
        return result.scalar() or 0

    async def create(self, obj: ModelType) -> ModelType:
        """Add a record and flush so generated keys are populated."""
        self.db.add(obj)
        await self.db.flush()
        return obj
