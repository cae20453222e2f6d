"""Subscription endpoints.

- GET /api/subscription - Plan, status, limits, usage and features
- POST /api/subscription/checkout - Hosted checkout for a paid plan (Owner)
- POST /api/subscription/portal - Provider billing portal (Owner)
- POST /api/subscription/cancel - Cancel at period end (Owner)
- POST /api/subscription/change-plan - Switch paid plan (Owner)

Cancel and change-plan only reach the provider; the local subscription is
updated when the provider's webhook confirms the change.
"""

from fastapi import APIRouter, status

from planilla.api.dependencies import ActiveContext, AppSettings, ClientAddress, DbSession
from planilla.api.schemas.errors import APIError
from planilla.api.schemas.subscription import (
    BillingRequestAccepted,
    ChangePlanRequest,
    CheckoutRequest,
    CheckoutResponse,
    PortalRequest,
    PortalResponse,
    SubscriptionResponse,
)
from planilla.billing import SubscriptionService

router = APIRouter(prefix="/subscription", tags=["subscription"])

_PROVIDER_ERRORS = {
    403: {"model": APIError, "description": "Only the Owner manages billing"},
    502: {"model": APIError, "description": "Billing provider unavailable"},
}


@router.get("", response_model=SubscriptionResponse, summary="Current subscription")
async def get_subscription(
    ctx: ActiveContext, db: DbSession, settings: AppSettings
) -> SubscriptionResponse:
    view = await SubscriptionService(db, settings).get_status(ctx)
    return SubscriptionResponse.from_view(view)


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    summary="Start a checkout for a paid plan",
    responses=_PROVIDER_ERRORS,
)
async def create_checkout(
    body: CheckoutRequest,
    ctx: ActiveContext,
    db: DbSession,
    settings: AppSettings,
    client_ip: ClientAddress,
) -> CheckoutResponse:
    session = await SubscriptionService(db, settings).create_checkout(
        ctx,
        body.plan,
        success_url=body.success_url,
        cancel_url=body.cancel_url,
        ip_address=client_ip,
    )
    # Keeps the provider customer id even if the checkout is abandoned
    await db.commit()
    return CheckoutResponse(session_id=session.session_id, url=session.url)


@router.post(
    "/portal",
    response_model=PortalResponse,
    summary="Open the billing portal",
    responses=_PROVIDER_ERRORS,
)
async def create_portal(
    body: PortalRequest, ctx: ActiveContext, db: DbSession, settings: AppSettings
) -> PortalResponse:
    url = await SubscriptionService(db, settings).create_portal(ctx, return_url=body.return_url)
    return PortalResponse(url=url)


@router.post(
    "/cancel",
    response_model=BillingRequestAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Cancel at the end of the billing period",
    responses=_PROVIDER_ERRORS,
)
async def cancel_subscription(
    ctx: ActiveContext,
    db: DbSession,
    settings: AppSettings,
    client_ip: ClientAddress,
) -> BillingRequestAccepted:
    await SubscriptionService(db, settings).cancel(ctx, ip_address=client_ip)
    await db.commit()
    return BillingRequestAccepted(
        message="Cancellation requested; it takes effect at the end of the billing period"
    )


@router.post(
    "/change-plan",
    response_model=BillingRequestAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Change to another paid plan",
    responses={**_PROVIDER_ERRORS, 409: {"model": APIError, "description": "Already on plan"}},
)
async def change_plan(
    body: ChangePlanRequest,
    ctx: ActiveContext,
    db: DbSession,
    settings: AppSettings,
    client_ip: ClientAddress,
) -> BillingRequestAccepted:
    await SubscriptionService(db, settings).change_plan(ctx, body.plan, ip_address=client_ip)
    await db.commit()
    return BillingRequestAccepted(
        message=f"Plan change to {body.plan.value} requested; it applies once confirmed"
    )
