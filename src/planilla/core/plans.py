"""Subscription plan catalog.

Static mapping from plan to resource limits, feature flags and price. The
catalog is configuration: it never touches the database.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

# Stand-in for "unlimited" so limit comparisons stay plain integer math
UNLIMITED = 1_000_000


class SubscriptionPlan(str, Enum):
    """Subscription tiers, in upgrade order."""

    FREE = "Free"
    STARTER = "Starter"
    PROFESSIONAL = "Professional"
    ENTERPRISE = "Enterprise"


class SubscriptionStatus(str, Enum):
    """Billing state of a subscription."""

    ACTIVE = "Active"
    TRIALING = "Trialing"
    PAST_DUE = "PastDue"
    CANCELED = "Canceled"
    CANCELED_AT_PERIOD_END = "CanceledAtPeriodEnd"
    INCOMPLETE = "Incomplete"


@dataclass(frozen=True)
class PlanLimits:
    """Limits and features granted by a plan."""

    max_employees: int
    max_users: int
    max_companies: int
    can_export_excel: bool
    can_export_pdf: bool
    can_use_api: bool
    has_audit_log: bool
    monthly_price: Decimal


PLAN_CATALOG: dict[SubscriptionPlan, PlanLimits] = {
    SubscriptionPlan.FREE: PlanLimits(
        max_employees=5,
        max_users=1,
        max_companies=1,
        can_export_excel=False,
        can_export_pdf=False,
        can_use_api=False,
        has_audit_log=False,
        monthly_price=Decimal("0.00"),
    ),
    SubscriptionPlan.STARTER: PlanLimits(
        max_employees=25,
        max_users=3,
        max_companies=1,
        can_export_excel=True,
        can_export_pdf=False,
        can_use_api=False,
        has_audit_log=False,
        monthly_price=Decimal("29.00"),
    ),
    SubscriptionPlan.PROFESSIONAL: PlanLimits(
        max_employees=100,
        max_users=10,
        max_companies=3,
        can_export_excel=True,
        can_export_pdf=True,
        can_use_api=True,
        has_audit_log=True,
        monthly_price=Decimal("79.00"),
    ),
    SubscriptionPlan.ENTERPRISE: PlanLimits(
        max_employees=UNLIMITED,
        max_users=UNLIMITED,
        max_companies=UNLIMITED,
        can_export_excel=True,
        can_export_pdf=True,
        can_use_api=True,
        has_audit_log=True,
        monthly_price=Decimal("199.00"),
    ),
}

_PLAN_ORDER = list(SubscriptionPlan)

PAID_PLANS = tuple(plan for plan in _PLAN_ORDER if plan is not SubscriptionPlan.FREE)


def get_plan_limits(plan: SubscriptionPlan) -> PlanLimits:
    """Get the limits for a plan."""
    return PLAN_CATALOG[plan]


def next_plan(plan: SubscriptionPlan) -> SubscriptionPlan | None:
    """Get the next plan up, or None for Enterprise."""
    index = _PLAN_ORDER.index(plan)
    if index + 1 < len(_PLAN_ORDER):
        return _PLAN_ORDER[index + 1]
    return None


def effective_limit(plan_default: int, override: int | None) -> int:
    """Apply a per-subscription override when it is positive."""
    if override is not None and override > 0:
        return override
    return plan_default


def parse_plan(value: str | None) -> SubscriptionPlan | None:
    """Parse a plan name case-insensitively, returning None when unknown."""
    if not value:
        return None
    for plan in SubscriptionPlan:
        if plan.value.lower() == value.strip().lower():
            return plan
    return None
