"""Entitlement gatekeeper.

Decides whether a tenant may write at all, create employees, invite users,
export reports or use the API, based on its subscription status, its plan
and live resource counts.

Resolution order for every check:
    1. tenant exists and is active
    2. subscription exists, otherwise Free-plan limits apply
    3. subscription status is usable (PastDue, Canceled, expired trial deny)
    4. live count compared against the effective limit (``current >= limit`` denies)

Checks never raise: any unexpected error is logged and reported as a denial.
``enforce`` turns a denial into the matching exception for the API layer.

Usage:
    gatekeeper = EntitlementGatekeeper(db)
    decision = await gatekeeper.can_create_employee(ctx.tenant_id)
    gatekeeper.enforce(decision)
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from planilla.core.exceptions import (
    FeatureNotAvailableError,
    PlanLimitExceededError,
    SubscriptionInactiveError,
)
from planilla.core.logging import get_logger
from planilla.core.plans import (
    PLAN_CATALOG,
    PlanLimits,
    SubscriptionPlan,
    SubscriptionStatus,
    effective_limit,
    next_plan,
)
from planilla.core.tenant import TenantService
from planilla.db.models.tenant import Subscription
from planilla.db.repositories import (
    EmployeeRepository,
    InvitationRepository,
    TenantUserRepository,
)

logger = get_logger(__name__)


class DenialKind(str, Enum):
    """Why an entitlement check denied."""

    TENANT = "tenant"
    STATUS = "status"
    LIMIT = "limit"
    FEATURE = "feature"
    ERROR = "error"


class ExportFormat(str, Enum):
    EXCEL = "excel"
    PDF = "pdf"


@dataclass(frozen=True)
class EntitlementDecision:
    """Outcome of an entitlement check.

    Attributes:
        allowed: Whether the operation may proceed
        reason: Human-readable explanation on denial
        kind: Category of denial
        suggested_plan: Plan that would lift the denial, if any
        limit: Effective limit for limit denials
        status: Subscription status at evaluation time
    """

    allowed: bool
    reason: str | None = None
    kind: DenialKind | None = None
    suggested_plan: SubscriptionPlan | None = None
    limit: int | None = None
    status: str | None = None
    resource: str | None = field(default=None, compare=False)

    @classmethod
    def allow(cls, status: str | None = None) -> "EntitlementDecision":
        return cls(allowed=True, status=status)


class TenantUsage(BaseModel):
    """Current resource usage against the effective limits."""

    tenant_id: int
    employees_count: int
    max_employees: int
    users_count: int
    max_users: int
    companies_count: int
    max_companies: int


@dataclass(frozen=True)
class _Entitlement:
    """Resolved plan and limits for one tenant."""

    plan: SubscriptionPlan
    limits: PlanLimits
    subscription: Subscription | None

    @property
    def max_employees(self) -> int:
        override = self.subscription.custom_max_employees if self.subscription else None
        return effective_limit(self.limits.max_employees, override)

    @property
    def max_users(self) -> int:
        override = self.subscription.custom_max_users if self.subscription else None
        return effective_limit(self.limits.max_users, override)


def _upgrade_message(
    resource: str, limit: int, plan: SubscriptionPlan
) -> tuple[str, SubscriptionPlan | None]:
    upgrade = next_plan(plan)
    if upgrade is None:
        return (
            f"You have reached the limit of {limit} {resource} for your plan. "
            "Please contact support to increase your limits.",
            None,
        )
    return (
        f"You have reached the limit of {limit} {resource} on the {plan.value} plan. "
        f"Upgrade to {upgrade.value} to add more.",
        upgrade,
    )


def _feature_upgrade(
    plan: SubscriptionPlan, feature: str
) -> tuple[str, SubscriptionPlan | None]:
    plans = list(SubscriptionPlan)
    for candidate in plans[plans.index(plan) + 1 :]:
        limits = PLAN_CATALOG[candidate]
        if _feature_enabled(limits, feature):
            return (
                f"{feature} is not included in the {plan.value} plan. "
                f"Upgrade to {candidate.value} to enable it.",
                candidate,
            )
    return f"{feature} is not included in your plan.", None


def _feature_enabled(limits: PlanLimits, feature: str) -> bool:
    return {
        "Excel export": limits.can_export_excel,
        "PDF export": limits.can_export_pdf,
        "API access": limits.can_use_api,
    }[feature]


class EntitlementGatekeeper:
    """Evaluates plan entitlements for a tenant.

    Counts are live queries within the caller's transaction, so a resource
    created earlier in the same request is included.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.tenants = TenantService(db)
        self.employees = EmployeeRepository(db)
        self.members = TenantUserRepository(db)
        self.invitations = InvitationRepository(db)

    async def can_create_employee(self, tenant_id: int) -> EntitlementDecision:
        """Check the active employee count against the plan limit."""

        async def check(entitlement: _Entitlement) -> EntitlementDecision:
            return self._limit_decision(
                "employees",
                await self.employees.count_active(tenant_id),
                entitlement.max_employees,
                entitlement,
            )

        return await self._guarded("create_employee", tenant_id, check)

    async def can_invite_user(
        self, tenant_id: int, *, exclude_invitation_id: int | None = None
    ) -> EntitlementDecision:
        """Check active users plus pending invitations against the plan limit.

        Args:
            tenant_id: Tenant to evaluate
            exclude_invitation_id: Pending invitation whose slot is being consumed
                (acceptance), not counted twice
        """

        async def check(entitlement: _Entitlement) -> EntitlementDecision:
            return await self._check_users(tenant_id, entitlement, exclude_invitation_id)

        return await self._guarded("invite_user", tenant_id, check)

    async def can_export_reports(
        self, tenant_id: int, fmt: ExportFormat = ExportFormat.EXCEL
    ) -> EntitlementDecision:
        """Check whether the plan includes report export in ``fmt``."""
        feature = "PDF export" if fmt == ExportFormat.PDF else "Excel export"

        async def check(entitlement: _Entitlement) -> EntitlementDecision:
            return self._check_feature(entitlement, feature)

        return await self._guarded("export_reports", tenant_id, check)

    async def can_use_api(self, tenant_id: int) -> EntitlementDecision:
        """Check whether the plan includes API access."""

        async def check(entitlement: _Entitlement) -> EntitlementDecision:
            return self._check_feature(entitlement, "API access")

        return await self._guarded("use_api", tenant_id, check)

    async def can_modify_data(self, tenant_id: int) -> EntitlementDecision:
        """Check that the subscription state permits any write at all."""

        async def check(entitlement: _Entitlement) -> EntitlementDecision:
            subscription = entitlement.subscription
            return EntitlementDecision.allow(subscription.status if subscription else None)

        return await self._guarded("modify_data", tenant_id, check)

    async def require_writable(self, tenant_id: int) -> None:
        """Raise unless the tenant may write.

        Raises:
            SubscriptionInactiveError: PastDue, Canceled, expired trial, or
                the check itself failed
        """
        self.enforce(await self.can_modify_data(tenant_id))

    async def get_usage(self, tenant_id: int) -> TenantUsage:
        """Current counts and effective limits for the usage dashboard."""
        subscription = await self.tenants.get_subscription(tenant_id)
        entitlement = self._resolve(tenant_id, subscription)
        now = datetime.now(UTC)
        users = await self.members.count_active(tenant_id)
        pending = await self.invitations.count_pending(tenant_id, now)
        return TenantUsage(
            tenant_id=tenant_id,
            employees_count=await self.employees.count_active(tenant_id),
            max_employees=entitlement.max_employees,
            users_count=users + pending,
            max_users=entitlement.max_users,
            companies_count=1,
            max_companies=entitlement.limits.max_companies,
        )

    @staticmethod
    def enforce(decision: EntitlementDecision) -> None:
        """Raise the exception matching a denial; no-op when allowed.

        Raises:
            SubscriptionInactiveError: Tenant or subscription state denies
            PlanLimitExceededError: A resource limit is reached
            FeatureNotAvailableError: The plan lacks the feature
        """
        if decision.allowed:
            return
        suggested = decision.suggested_plan.value if decision.suggested_plan else None
        reason = decision.reason or "Operation not permitted by your subscription"
        if decision.kind == DenialKind.LIMIT:
            raise PlanLimitExceededError(
                reason,
                resource=decision.resource or "resources",
                limit=decision.limit or 0,
                suggested_plan=suggested,
            )
        if decision.kind == DenialKind.FEATURE:
            raise FeatureNotAvailableError(
                reason, feature=decision.resource or "feature", suggested_plan=suggested
            )
        raise SubscriptionInactiveError(reason, status=decision.status)

    # -------------------------------------------------------------------------

    async def _guarded(self, operation: str, tenant_id: int, check) -> EntitlementDecision:
        """Run steps 1-3 then ``check``; any unexpected error denies."""
        try:
            tenant = await self.tenants.get_tenant(tenant_id)
            if tenant is None or not tenant.is_active:
                return EntitlementDecision(
                    allowed=False,
                    reason="Tenant not found or inactive",
                    kind=DenialKind.TENANT,
                )

            subscription = await self.tenants.get_subscription(tenant_id)
            status_denial = self._check_status(subscription)
            if status_denial is not None:
                return status_denial

            decision = await check(self._resolve(tenant_id, subscription))
        except Exception as e:
            logger.exception(
                "entitlement_check_failed",
                tenant_id=tenant_id,
                operation=operation,
                error_type=type(e).__name__,
            )
            return EntitlementDecision(
                allowed=False,
                reason="Unable to verify your subscription. Please try again later.",
                kind=DenialKind.ERROR,
            )

        if not decision.allowed:
            logger.info(
                "entitlement_denied",
                tenant_id=tenant_id,
                operation=operation,
                kind=decision.kind.value if decision.kind else None,
            )
        return decision

    def _resolve(self, tenant_id: int, subscription: Subscription | None) -> _Entitlement:
        if subscription is None:
            logger.warning("subscription_missing_using_free_limits", tenant_id=tenant_id)
            plan = SubscriptionPlan.FREE
        else:
            plan = subscription.plan_enum
        return _Entitlement(plan=plan, limits=PLAN_CATALOG[plan], subscription=subscription)

    @staticmethod
    def _check_status(subscription: Subscription | None) -> EntitlementDecision | None:
        if subscription is None:
            return None

        status = subscription.status
        if status == SubscriptionStatus.PAST_DUE.value:
            return EntitlementDecision(
                allowed=False,
                reason="Your subscription payment is past due. Please update your payment method.",
                kind=DenialKind.STATUS,
                status=status,
            )
        if status == SubscriptionStatus.CANCELED.value:
            return EntitlementDecision(
                allowed=False,
                reason=(
                    "Your subscription has been canceled. "
                    "Please subscribe to a plan to continue."
                ),
                kind=DenialKind.STATUS,
                status=status,
            )
        if subscription.is_trial_expired():
            return EntitlementDecision(
                allowed=False,
                reason="Your trial has expired. Please choose a plan to continue.",
                kind=DenialKind.STATUS,
                status=status,
            )
        if not subscription.is_active_or_trialing():
            return EntitlementDecision(
                allowed=False,
                reason="Your subscription is not active.",
                kind=DenialKind.STATUS,
                status=status,
            )
        return None

    async def _check_users(
        self,
        tenant_id: int,
        entitlement: _Entitlement,
        exclude_invitation_id: int | None,
    ) -> EntitlementDecision:
        now = datetime.now(UTC)
        active = await self.members.count_active(tenant_id)
        pending = await self.invitations.count_pending(
            tenant_id, now, exclude_id=exclude_invitation_id
        )
        return self._limit_decision(
            "users", active + pending, entitlement.max_users, entitlement
        )

    @staticmethod
    def _limit_decision(
        resource: str, current: int, limit: int, entitlement: _Entitlement
    ) -> EntitlementDecision:
        status = entitlement.subscription.status if entitlement.subscription else None
        if current >= limit:
            reason, upgrade = _upgrade_message(resource, limit, entitlement.plan)
            return EntitlementDecision(
                allowed=False,
                reason=reason,
                kind=DenialKind.LIMIT,
                suggested_plan=upgrade,
                limit=limit,
                status=status,
                resource=resource,
            )
        return EntitlementDecision.allow(status)

    @staticmethod
    def _check_feature(entitlement: _Entitlement, feature: str) -> EntitlementDecision:
        subscription = entitlement.subscription
        if subscription is None:
            reason, upgrade = _feature_upgrade(SubscriptionPlan.FREE, feature)
            return EntitlementDecision(
                allowed=False,
                reason=reason,
                kind=DenialKind.FEATURE,
                suggested_plan=upgrade,
                resource=feature,
            )

        # A trial grants every feature regardless of plan
        if subscription.status == SubscriptionStatus.TRIALING.value:
            return EntitlementDecision.allow(subscription.status)

        if _feature_enabled(entitlement.limits, feature):
            return EntitlementDecision.allow(subscription.status)

        reason, upgrade = _feature_upgrade(entitlement.plan, feature)
        return EntitlementDecision(
            allowed=False,
            reason=reason,
            kind=DenialKind.FEATURE,
            suggested_plan=upgrade,
            status=subscription.status,
            resource=feature,
        )
