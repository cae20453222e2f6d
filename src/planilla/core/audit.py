"""Tenant audit log service."""

import math
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from planilla.core.context import TenantContext
from planilla.db.models.audit import AuditAction, AuditLogEntry
from planilla.db.repositories import AuditLogRepository

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of a paged query."""

    items: list[T]
    total_count: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total_count / self.page_size)


class AuditLogger:
    """Service for appending and querying a tenant's audit log.

    Entries are immutable and always written under the caller's tenant.
    Entries are flushed, not committed: they land or roll back together with
    the operation they describe.
    """

    def __init__(self, db: AsyncSession):
        """Initialize audit logger with database session.

        Args:
            db: Async SQLAlchemy session for database operations
        """
        self.db = db
        self.repo = AuditLogRepository(db)

    async def log(
        self,
        ctx: TenantContext,
        action: AuditAction | str,
        *,
        entity_type: str | None = None,
        entity_id: object | None = None,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
    ) -> AuditLogEntry:
        """Append an entry to the caller's tenant audit log.

        Args:
            ctx: Caller context; its tenant owns the entry
            action: What happened
            entity_type: Kind of entity affected (employee, invitation, ...)
            entity_id: Id of the entity affected
            details: Structured details (must be JSON serializable)
            ip_address: Client IP address

        Returns:
            Created AuditLogEntry instance
        """
        if isinstance(action, AuditAction):
            action = action.value

        entry = AuditLogEntry(
            actor_user_id=ctx.user_id,
            actor_email=ctx.email,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            details=details or {},
            ip_address=ip_address,
        )
        return await self.repo.create(ctx.tenant_id, entry)

    async def query(
        self,
        ctx: TenantContext,
        *,
        page: int = 1,
        page_size: int = 50,
        action: AuditAction | str | None = None,
    ) -> Page[AuditLogEntry]:
        """Page through the caller's tenant audit log, newest first."""
        if isinstance(action, AuditAction):
            action = action.value

        page = max(page, 1)
        page_size = min(max(page_size, 1), 200)
        criteria = [AuditLogEntry.action == action] if action else []

        total = await self.repo.count(ctx.tenant_id, *criteria)
        items = await self.repo.list(
            ctx.tenant_id,
            *criteria,
            limit=page_size,
            offset=(page - 1) * page_size,
            order_by=(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc()),
        )
        return Page(items=items, total_count=total, page=page, page_size=page_size)
