"""Subscription and billing schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from planilla.billing.service import SubscriptionStatusView
from planilla.core.plans import SubscriptionPlan, parse_plan


def _plan_from_name(value: object) -> SubscriptionPlan:
    plan = parse_plan(value) if isinstance(value, str) else None
    if plan is None:
        raise ValueError(f"plan must be one of: {', '.join(p.value for p in SubscriptionPlan)}")
    return plan


class SubscriptionResponse(BaseModel):
    plan: str
    status: str
    trial_ends_at: datetime | None
    next_billing_date: datetime | None
    current_period_end: datetime | None
    monthly_price: Decimal

    max_employees: int
    max_users: int
    current_employees: int
    current_users: int

    can_export_excel: bool
    can_export_pdf: bool
    can_use_api: bool
    has_audit_log: bool
    has_billing_account: bool

    @classmethod
    def from_view(cls, view: SubscriptionStatusView) -> "SubscriptionResponse":
        return cls(
            plan=view.plan.value,
            status=view.status.value,
            trial_ends_at=view.trial_ends_at,
            next_billing_date=view.next_billing_date,
            current_period_end=view.current_period_end,
            monthly_price=view.monthly_price,
            max_employees=view.usage.max_employees,
            max_users=view.usage.max_users,
            current_employees=view.usage.employees_count,
            current_users=view.usage.users_count,
            can_export_excel=view.can_export_excel,
            can_export_pdf=view.can_export_pdf,
            can_use_api=view.can_use_api,
            has_audit_log=view.has_audit_log,
            has_billing_account=view.has_billing_account,
        )


class CheckoutRequest(BaseModel):
    plan: SubscriptionPlan
    success_url: str | None = Field(default=None, max_length=2000)
    cancel_url: str | None = Field(default=None, max_length=2000)

    @field_validator("plan", mode="before")
    @classmethod
    def _parse_plan(cls, value: object) -> SubscriptionPlan:
        return _plan_from_name(value)


class CheckoutResponse(BaseModel):
    session_id: str
    url: str


class PortalRequest(BaseModel):
    return_url: str | None = Field(default=None, max_length=2000)


class PortalResponse(BaseModel):
    url: str


class ChangePlanRequest(BaseModel):
    plan: SubscriptionPlan

    @field_validator("plan", mode="before")
    @classmethod
    def _parse_plan(cls, value: object) -> SubscriptionPlan:
        return _plan_from_name(value)


class BillingRequestAccepted(BaseModel):
    """Provider accepted the request; local state follows via webhook."""

    status: str = "pending"
    message: str


class WebhookAck(BaseModel):
    received: bool = True
    outcome: str
