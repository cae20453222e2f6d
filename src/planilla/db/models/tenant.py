"""Tenant directory models: tenants and their subscriptions."""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from planilla.core.plans import (
    PLAN_CATALOG,
    SubscriptionPlan,
    SubscriptionStatus,
    effective_limit,
)

from .base import Base, TimestampMixin, UTCDateTime


class Tenant(Base, TimestampMixin):
    """An isolated customer account (company).

    Tenants are soft-deactivated via ``is_active`` and never hard-deleted
    while referenced data exists.
    """

    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    subdomain: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    # Panamanian tax id (RUC) and check digit (DV)
    ruc: Mapped[str | None] = mapped_column(String(30), nullable=True)
    dv: Mapped[str | None] = mapped_column(String(4), nullable=True)

    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Bumped by TenantService.lock_tenant to serialize limit-affecting writes
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("ruc", "dv", name="uq_tenants_ruc_dv"),)

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, subdomain={self.subdomain}, active={self.is_active})>"


class Subscription(Base, TimestampMixin):
    """Billing state of a tenant (1:1 with Tenant)."""

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tenants.id"), nullable=False, unique=True
    )
    plan: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubscriptionPlan.FREE.value
    )
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=SubscriptionStatus.ACTIVE.value
    )

    trial_ends_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    next_billing_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    current_period_end: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    monthly_price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )

    custom_max_employees: Mapped[int | None] = mapped_column(Integer, nullable=True)
    custom_max_users: Mapped[int | None] = mapped_column(Integer, nullable=True)

    @property
    def plan_enum(self) -> SubscriptionPlan:
        return SubscriptionPlan(self.plan)

    @property
    def status_enum(self) -> SubscriptionStatus:
        return SubscriptionStatus(self.status)

    @property
    def max_employees(self) -> int:
        return effective_limit(
            PLAN_CATALOG[self.plan_enum].max_employees, self.custom_max_employees
        )

    @property
    def max_users(self) -> int:
        return effective_limit(PLAN_CATALOG[self.plan_enum].max_users, self.custom_max_users)

    def is_active_or_trialing(self) -> bool:
        """True while the subscription may perform mutating operations.

        A subscription scheduled to cancel stays usable until the provider
        reports the final cancellation.
        """
        return self.status in (
            SubscriptionStatus.ACTIVE.value,
            SubscriptionStatus.TRIALING.value,
            SubscriptionStatus.CANCELED_AT_PERIOD_END.value,
        )

    def is_trial_expired(self, now: datetime | None = None) -> bool:
        if self.status != SubscriptionStatus.TRIALING.value or self.trial_ends_at is None:
            return False
        return self.trial_ends_at <= (now or datetime.now(UTC))

    def __repr__(self) -> str:
        return (
            f"<Subscription(tenant_id={self.tenant_id}, plan={self.plan}, "
            f"status={self.status})>"
        )
