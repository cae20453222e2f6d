"""Billing provider webhook endpoint.

- POST /api/webhooks/stripe - Receive a signed Stripe event

Unauthenticated: the Stripe-Signature header is the credential. Each event id
is applied at most once; a redelivery of a processed event is acknowledged
without side effects. A failed event answers 500 so the provider retries it.
"""

from fastapi import APIRouter, Request, Response, status

from planilla.api.dependencies import AppSettings, DbSession
from planilla.api.schemas.errors import APIError
from planilla.api.schemas.subscription import WebhookAck
from planilla.billing import BillingGateway, WebhookOutcome, WebhookProcessor

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/stripe",
    response_model=WebhookAck,
    summary="Receive a Stripe webhook",
    responses={
        400: {"model": APIError, "description": "Missing or invalid signature"},
        500: {"model": WebhookAck, "description": "Event failed; provider should retry"},
    },
)
async def receive_stripe_webhook(
    request: Request,
    response: Response,
    db: DbSession,
    settings: AppSettings,
) -> WebhookAck:
    payload = await request.body()
    event = BillingGateway(settings).construct_event(
        payload, request.headers.get("Stripe-Signature")
    )

    outcome = await WebhookProcessor(db, settings).process(event)
    if outcome == WebhookOutcome.FAILED:
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return WebhookAck(outcome=outcome.value)
