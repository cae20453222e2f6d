"""Billing integration: Stripe gateway, subscription service, webhook processing."""

from planilla.billing.gateway import BillingGateway, CheckoutSession
from planilla.billing.service import SubscriptionService, SubscriptionStatusView
from planilla.billing.webhooks import WebhookOutcome, WebhookProcessor

__all__ = [
    "BillingGateway",
    "CheckoutSession",
    "SubscriptionService",
    "SubscriptionStatusView",
    "WebhookOutcome",
    "WebhookProcessor",
]
