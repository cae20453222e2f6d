"""Subscription management on behalf of the caller's tenant.

Checkout, portal, cancel and plan change only talk to the provider. The local
subscription row changes when the provider's webhook arrives, never here, so
a provider timeout leaves local state exactly as it was.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from planilla.billing.gateway import BillingGateway, CheckoutSession
from planilla.config.settings import Settings
from planilla.core.audit import AuditLogger
from planilla.core.context import TenantContext
from planilla.core.entitlements import EntitlementGatekeeper, TenantUsage
from planilla.core.exceptions import ConflictError, ValidationFailedError
from planilla.core.logging import get_logger
from planilla.core.plans import (
    SubscriptionPlan,
    SubscriptionStatus,
    get_plan_limits,
)
from planilla.core.roles import TenantRole
from planilla.core.tenant import TenantService
from planilla.db.models.audit import AuditAction
from planilla.db.models.tenant import Subscription

logger = get_logger(__name__)


@dataclass(frozen=True)
class SubscriptionStatusView:
    """Plan, status, limits, usage and features of the caller's tenant."""

    plan: SubscriptionPlan
    status: SubscriptionStatus
    trial_ends_at: datetime | None
    next_billing_date: datetime | None
    current_period_end: datetime | None
    monthly_price: Decimal
    usage: TenantUsage
    can_export_excel: bool
    can_export_pdf: bool
    can_use_api: bool
    has_audit_log: bool
    has_billing_account: bool


class SubscriptionService:
    """Owner-facing billing operations."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        gateway: BillingGateway | None = None,
    ):
        self.db = db
        self.settings = settings
        self.gateway = gateway or BillingGateway(settings)
        self.tenants = TenantService(db)
        self.gatekeeper = EntitlementGatekeeper(db)
        self.audit = AuditLogger(db)

    async def get_status(self, ctx: TenantContext) -> SubscriptionStatusView:
        snapshot = await self.tenants.get_current_tenant(ctx)
        subscription = snapshot.subscription
        plan = subscription.plan_enum if subscription else SubscriptionPlan.FREE
        status = subscription.status_enum if subscription else SubscriptionStatus.ACTIVE
        limits = get_plan_limits(plan)

        # Trials get every feature of the trial plan
        trialing = status == SubscriptionStatus.TRIALING
        return SubscriptionStatusView(
            plan=plan,
            status=status,
            trial_ends_at=subscription.trial_ends_at if subscription else None,
            next_billing_date=subscription.next_billing_date if subscription else None,
            current_period_end=subscription.current_period_end if subscription else None,
            monthly_price=(
                subscription.monthly_price
                if subscription and subscription.monthly_price is not None
                else limits.monthly_price
            ),
            usage=await self.gatekeeper.get_usage(ctx.tenant_id),
            can_export_excel=trialing or limits.can_export_excel,
            can_export_pdf=trialing or limits.can_export_pdf,
            can_use_api=trialing or limits.can_use_api,
            has_audit_log=trialing or limits.has_audit_log,
            has_billing_account=bool(subscription and subscription.stripe_customer_id),
        )

    async def create_checkout(
        self,
        ctx: TenantContext,
        plan: SubscriptionPlan,
        *,
        success_url: str | None = None,
        cancel_url: str | None = None,
        ip_address: str | None = None,
    ) -> CheckoutSession:
        """Open a hosted checkout for a paid plan.

        Raises:
            InsufficientRoleError: Caller is not the Owner
            ValidationFailedError: Free plan, or no price configured for the plan
            ExternalServiceError: Provider failure or timeout
        """
        ctx.require_role(TenantRole.OWNER)
        price_id = self._price_for(plan)
        snapshot = await self.tenants.get_current_tenant(ctx)
        subscription = self._require_subscription(snapshot.subscription)

        customer_id = subscription.stripe_customer_id
        if not customer_id:
            customer_id = await self.gateway.create_customer(
                email=snapshot.tenant.email or ctx.email,
                name=snapshot.tenant.name,
                tenant_id=ctx.tenant_id,
            )
            subscription.stripe_customer_id = customer_id
            await self.db.flush()
            logger.info("billing_customer_created", tenant_id=ctx.tenant_id)

        base = self.settings.frontend_url.rstrip("/")
        success_url = success_url or f"{base}/billing/success?session_id={{CHECKOUT_SESSION_ID}}"
        session = await self.gateway.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            tenant_id=ctx.tenant_id,
            plan=plan.value,
            success_url=success_url,
            cancel_url=cancel_url or f"{base}/billing/cancel",
        )
        await self.audit.log(
            ctx,
            AuditAction.CHECKOUT_STARTED,
            entity_type="subscription",
            entity_id=subscription.id,
            details={"plan": plan.value},
            ip_address=ip_address,
        )
        logger.info("checkout_session_created", tenant_id=ctx.tenant_id, plan=plan.value)
        return session

    async def create_portal(self, ctx: TenantContext, *, return_url: str | None = None) -> str:
        """Open the provider's self-service portal.

        Raises:
            InsufficientRoleError: Caller is not the Owner
            ValidationFailedError: The tenant has no billing account yet
            ExternalServiceError: Provider failure or timeout
        """
        ctx.require_role(TenantRole.OWNER)
        subscription = await self.tenants.get_subscription(ctx.tenant_id)
        if subscription is None or not subscription.stripe_customer_id:
            raise ValidationFailedError("No billing account exists for this tenant")

        return await self.gateway.create_portal_session(
            customer_id=subscription.stripe_customer_id,
            return_url=return_url or f"{self.settings.frontend_url.rstrip('/')}/billing",
        )

    async def cancel(self, ctx: TenantContext, *, ip_address: str | None = None) -> None:
        """Ask the provider to cancel at the end of the current period.

        Raises:
            InsufficientRoleError: Caller is not the Owner
            ValidationFailedError: No paid subscription to cancel
            ExternalServiceError: Provider failure or timeout
        """
        ctx.require_role(TenantRole.OWNER)
        subscription = await self._paid_subscription(ctx)
        await self.gateway.cancel_at_period_end(
            subscription.stripe_subscription_id, tenant_id=ctx.tenant_id
        )
        await self.audit.log(
            ctx,
            AuditAction.CANCEL_REQUESTED,
            entity_type="subscription",
            entity_id=subscription.id,
            ip_address=ip_address,
        )
        logger.info("subscription_cancel_requested", tenant_id=ctx.tenant_id)

    async def change_plan(
        self,
        ctx: TenantContext,
        plan: SubscriptionPlan,
        *,
        ip_address: str | None = None,
    ) -> None:
        """Ask the provider to move the subscription to another paid plan.

        Raises:
            InsufficientRoleError: Caller is not the Owner
            ValidationFailedError: No paid subscription, or target has no price
            ConflictError: Already on that plan
            ExternalServiceError: Provider failure or timeout
        """
        ctx.require_role(TenantRole.OWNER)
        price_id = self._price_for(plan)
        subscription = await self._paid_subscription(ctx)
        if subscription.plan_enum == plan:
            raise ConflictError(f"The subscription is already on the {plan.value} plan")

        await self.gateway.change_subscription_price(
            subscription.stripe_subscription_id,
            price_id=price_id,
            tenant_id=ctx.tenant_id,
            plan=plan.value,
        )
        await self.audit.log(
            ctx,
            AuditAction.PLAN_CHANGE_REQUESTED,
            entity_type="subscription",
            entity_id=subscription.id,
            details={"from": subscription.plan, "to": plan.value},
            ip_address=ip_address,
        )
        logger.info(
            "subscription_plan_change_requested",
            tenant_id=ctx.tenant_id,
            plan=plan.value,
        )

    # -------------------------------------------------------------------------

    def _price_for(self, plan: SubscriptionPlan) -> str:
        if plan == SubscriptionPlan.FREE:
            raise ValidationFailedError("The Free plan has no checkout", field="plan")
        price_id = self.settings.get_price_id(plan.value)
        if not price_id:
            logger.error("stripe_price_missing", plan=plan.value)
            raise ValidationFailedError(f"No price is configured for {plan.value}", field="plan")
        return price_id

    async def _paid_subscription(self, ctx: TenantContext) -> Subscription:
        subscription = self._require_subscription(
            await self.tenants.get_subscription(ctx.tenant_id)
        )
        if not subscription.stripe_subscription_id:
            raise ValidationFailedError("There is no paid subscription for this tenant")
        return subscription

    @staticmethod
    def _require_subscription(subscription: Subscription | None) -> Subscription:
        if subscription is None:
            raise ValidationFailedError("There is no subscription for this tenant")
        return subscription
