"""Stripe gateway.

The stripe SDK is synchronous; every call runs in a worker thread under a
bounded timeout. Provider errors and timeouts surface as
``ExternalServiceError`` with a generic message; provider detail goes to the
log only.
"""

import asyncio
import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import stripe

from planilla.config.settings import Settings
from planilla.core.exceptions import ValidationFailedError
from planilla.core.logging import get_logger, log_external_call
from planilla.utils.exceptions import ExternalServiceError

logger = get_logger(__name__)

SERVICE_NAME = "stripe"


@dataclass(frozen=True)
class CheckoutSession:
    """Hosted checkout session created at the provider."""

    session_id: str
    url: str


class BillingGateway:
    """Async facade over the Stripe API for one configured account."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def is_configured(self) -> bool:
        return self.settings.STRIPE_SECRET_KEY is not None

    async def create_customer(self, *, email: str | None, name: str, tenant_id: int) -> str:
        customer = await self._call(
            "create_customer",
            stripe.Customer.create,
            email=email,
            name=name,
            metadata={"tenant_id": str(tenant_id)},
        )
        return customer["id"]

    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        tenant_id: int,
        plan: str,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        """Start a subscription checkout.

        The tenant id and plan travel as metadata on both the session and the
        subscription it creates, so webhooks can attribute events.
        """
        metadata = {"tenant_id": str(tenant_id), "plan": plan}
        session = await self._call(
            "create_checkout_session",
            stripe.checkout.Session.create,
            mode="subscription",
            customer=customer_id,
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            subscription_data={"metadata": metadata},
        )
        return CheckoutSession(session_id=session["id"], url=session["url"])

    async def create_portal_session(self, *, customer_id: str, return_url: str) -> str:
        session = await self._call(
            "create_portal_session",
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=return_url,
        )
        return session["url"]

    async def cancel_at_period_end(self, subscription_id: str, *, tenant_id: int) -> None:
        await self._call(
            "cancel_at_period_end",
            stripe.Subscription.modify,
            subscription_id,
            cancel_at_period_end=True,
            metadata={"tenant_id": str(tenant_id)},
        )

    async def change_subscription_price(
        self, subscription_id: str, *, price_id: str, tenant_id: int, plan: str
    ) -> None:
        """Swap the subscription's single item to a new price, with proration."""
        subscription = await self._call(
            "retrieve_subscription", stripe.Subscription.retrieve, subscription_id
        )
        items = subscription["items"]["data"]
        if not items:
            raise ExternalServiceError("change_subscription_price")

        await self._call(
            "change_subscription_price",
            stripe.Subscription.modify,
            subscription_id,
            items=[{"id": items[0]["id"], "price": price_id}],
            proration_behavior="create_prorations",
            cancel_at_period_end=False,
            metadata={"tenant_id": str(tenant_id), "plan": plan},
        )

    def construct_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """Verify a webhook delivery and return the event as a plain dict.

        Raises:
            ValidationFailedError: Missing or invalid signature, or bad payload
            ExternalServiceError: Webhook secret is not configured
        """
        secret = self.settings.STRIPE_WEBHOOK_SECRET
        if secret is None:
            logger.error("stripe_webhook_secret_missing")
            raise ExternalServiceError("construct_event")
        if not signature:
            raise ValidationFailedError("Missing webhook signature")

        try:
            stripe.Webhook.construct_event(payload, signature, secret.get_secret_value())
        except stripe.SignatureVerificationError as e:
            logger.warning("stripe_webhook_signature_invalid", error=str(e))
            raise ValidationFailedError("Invalid webhook signature") from e
        except ValueError as e:
            raise ValidationFailedError("Invalid webhook payload") from e
        return json.loads(payload)

    async def _call(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any):
        if self.settings.STRIPE_SECRET_KEY is None:
            logger.error("stripe_not_configured", operation=operation)
            raise ExternalServiceError(operation)

        kwargs["api_key"] = self.settings.STRIPE_SECRET_KEY.get_secret_value()
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(func, *args, **kwargs),
                timeout=self.settings.stripe_timeout_seconds,
            )
        except TimeoutError as e:
            log_external_call(
                logger,
                SERVICE_NAME,
                operation,
                (time.monotonic() - start) * 1000,
                success=False,
                error="timeout",
            )
            raise ExternalServiceError(operation) from e
        except stripe.StripeError as e:
            log_external_call(
                logger,
                SERVICE_NAME,
                operation,
                (time.monotonic() - start) * 1000,
                success=False,
                error=type(e).__name__,
                stripe_code=getattr(e, "code", None),
            )
            raise ExternalServiceError(operation) from e

        log_external_call(
            logger, SERVICE_NAME, operation, (time.monotonic() - start) * 1000, success=True
        )
        return result
