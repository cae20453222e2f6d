"""Tenant directory service.

Owns tenant and subscription records: creation at signup, fresh reads of
the caller's tenant, deactivation, and the per-tenant write lock used to
serialize limit-affecting operations.
"""

import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from planilla.core.context import TenantContext
from planilla.core.exceptions import ConflictError, TenantInactiveError, TenantNotFoundError
from planilla.core.logging import get_logger
from planilla.core.plans import PLAN_CATALOG, SubscriptionPlan, SubscriptionStatus
from planilla.db.models.tenant import Subscription, Tenant

logger = get_logger(__name__)

_SUBDOMAIN_STRIP = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class TenantSnapshot:
    """A tenant together with its subscription, read in one go."""

    tenant: Tenant
    subscription: Subscription | None


def slugify_subdomain(name: str) -> str:
    """Derive a subdomain candidate from a company name."""
    slug = _SUBDOMAIN_STRIP.sub("-", name.lower()).strip("-")
    return slug[:60] or "tenant"


class TenantService:
    """Service for managing tenants and their subscriptions."""

    def __init__(self, db: AsyncSession):
        """Initialize tenant service with database session.

        Args:
            db: Async SQLAlchemy session for database operations
        """
        self.db = db

    async def create_tenant(
        self,
        name: str,
        *,
        ruc: str | None = None,
        dv: str | None = None,
        email: str | None = None,
        trial_days: int = 14,
        now: datetime | None = None,
    ) -> TenantSnapshot:
        """Create a tenant with a Professional trial subscription.

        Args:
            name: Company name
            ruc: Tax id
            dv: Tax id check digit
            email: Contact email
            trial_days: Length of the trial
            now: Clock override

        Returns:
            The new tenant and its subscription

        Raises:
            ConflictError: If the tax id pair is already registered
        """
        now = now or datetime.now(UTC)

        if ruc and await self._tax_id_taken(ruc, dv):
            raise ConflictError("A company with this RUC/DV is already registered")

        tenant = Tenant(
            name=name,
            subdomain=await self._unique_subdomain(slugify_subdomain(name)),
            ruc=ruc or None,
            dv=dv or None,
            email=email,
            is_active=True,
        )
        self.db.add(tenant)
        await self.db.flush()

        plan = SubscriptionPlan.PROFESSIONAL
        subscription = Subscription(
            tenant_id=tenant.id,
            plan=plan.value,
            status=SubscriptionStatus.TRIALING.value,
            trial_ends_at=now + timedelta(days=trial_days),
            monthly_price=PLAN_CATALOG[plan].monthly_price,
        )
        self.db.add(subscription)
        await self.db.flush()

        logger.info(
            "tenant_created",
            tenant_id=tenant.id,
            subdomain=tenant.subdomain,
            plan=plan.value,
        )
        return TenantSnapshot(tenant=tenant, subscription=subscription)

    async def get_tenant(self, tenant_id: int) -> Tenant | None:
        """Get a tenant by ID."""
        result = await self.db.execute(
            select(Tenant).where(Tenant.id == tenant_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_tenant_or_raise(self, tenant_id: int) -> Tenant:
        """Get a tenant by ID, raising if not found.

        Raises:
            TenantNotFoundError: If tenant does not exist
        """
        tenant = await self.get_tenant(tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        return tenant

    async def get_subscription(self, tenant_id: int) -> Subscription | None:
        """Read the tenant's subscription, bypassing the identity map."""
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_current_tenant(self, ctx: TenantContext) -> TenantSnapshot:
        """Fresh read of the caller's tenant and subscription.

        Never served from a per-request cache, so a subscription cancelled
        mid-flight by a webhook is observed.

        Raises:
            TenantNotFoundError: If the tenant does not exist
        """
        tenant = await self.get_tenant_or_raise(ctx.tenant_id)
        subscription = await self.get_subscription(ctx.tenant_id)
        return TenantSnapshot(tenant=tenant, subscription=subscription)

    async def validate_tenant_active(self, tenant_id: int) -> Tenant:
        """Validate that a tenant exists and is active.

        Raises:
            TenantNotFoundError: If tenant does not exist
            TenantInactiveError: If tenant is deactivated
        """
        tenant = await self.get_tenant_or_raise(tenant_id)
        if not tenant.is_active:
            raise TenantInactiveError(tenant_id)
        return tenant

    async def lock_tenant(self, tenant_id: int) -> None:
        """Take the tenant's write lock for the rest of the transaction.

        Implemented as a version bump on the tenant row: PostgreSQL holds the
        row lock, SQLite its database write lock, until commit or rollback.
        Concurrent limit checks for the same tenant therefore run one after
        the other and each observes the other's committed writes.

        Raises:
            TenantNotFoundError: If tenant does not exist
        """
        result = await self.db.execute(
            update(Tenant)
            .where(Tenant.id == tenant_id)
            .values(lock_version=Tenant.lock_version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise TenantNotFoundError(tenant_id)

    async def deactivate_tenant(self, tenant_id: int) -> Tenant:
        """Soft-delete a tenant.

        Raises:
            TenantNotFoundError: If tenant does not exist
        """
        tenant = await self.get_tenant_or_raise(tenant_id)
        if tenant.is_active:
            tenant.is_active = False
            await self.db.flush()
            logger.warning("tenant_deactivated", tenant_id=tenant_id)
        return tenant

    async def _tax_id_taken(self, ruc: str, dv: str | None) -> bool:
        result = await self.db.execute(
            select(Tenant.id).where(Tenant.ruc == ruc, Tenant.dv == (dv or None)).limit(1)
        )
        return result.first() is not None

    async def _unique_subdomain(self, base: str) -> str:
        result = await self.db.execute(
            select(Tenant.subdomain).where(
                (Tenant.subdomain == base) | Tenant.subdomain.like(f"{base}-%")
            )
        )
        taken = set(result.scalars().all())
        if base not in taken:
            return base
        suffix = 2
        while f"{base}-{suffix}" in taken:
            suffix += 1
        return f"{base}-{suffix}"
