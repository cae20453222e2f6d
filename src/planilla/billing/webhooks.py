"""Billing provider webhook processing.

Every delivery is recorded in ``webhook_events`` keyed by the provider's event
id. The insert itself is the idempotency check: a unique violation means the
event was already handled (or is being handled by a concurrent delivery) and
the delivery is a no-op. A delivery whose handler failed is recorded as
Failed and may be processed again on redelivery.

Mapping of provider subscription states:

    active              -> Active (CanceledAtPeriodEnd when cancel_at_period_end)
    trialing            -> Trialing
    past_due, unpaid    -> PastDue
    paused              -> PastDue
    incomplete          -> Incomplete
    canceled            -> Canceled
    incomplete_expired  -> Canceled
"""

from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from planilla.config.settings import Settings
from planilla.core.audit import AuditLogger
from planilla.core.context import TenantContext, parse_tenant_id
from planilla.core.exceptions import ValidationFailedError
from planilla.core.logging import get_logger
from planilla.core.plans import (
    PLAN_CATALOG,
    SubscriptionPlan,
    SubscriptionStatus,
    parse_plan,
)
from planilla.db.models.audit import AuditAction
from planilla.db.models.billing import WebhookEvent, WebhookEventStatus
from planilla.db.models.tenant import Subscription

logger = get_logger(__name__)

_STATUS_MAP: dict[str, SubscriptionStatus] = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "paused": SubscriptionStatus.PAST_DUE,
    "incomplete": SubscriptionStatus.INCOMPLETE,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete_expired": SubscriptionStatus.CANCELED,
}

WEBHOOK_ACTOR = "billing-webhook"


class WebhookOutcome(str, Enum):
    """Result of handling one delivery."""

    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    FAILED = "failed"


def _timestamp(value: Any) -> datetime | None:
    if isinstance(value, int | float) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, UTC)
    return None


def _metadata(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    metadata = obj.get("metadata")
    return metadata if isinstance(metadata, Mapping) else {}


def _first_item(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    items = obj.get("items")
    if isinstance(items, Mapping):
        data = items.get("data") or []
        if data and isinstance(data[0], Mapping):
            return data[0]
    return {}


class WebhookProcessor:
    """Applies verified provider events to local subscription state.

    ``process`` owns the transaction of the session it is given: it commits
    on success and rolls back on duplicates and failures.
    """

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings
        self.audit = AuditLogger(db)
        self._handlers: dict[str, Callable[[Mapping[str, Any]], Awaitable[int | None]]] = {
            "checkout.session.completed": self._on_checkout_completed,
            "customer.subscription.created": self._on_subscription_changed,
            "customer.subscription.updated": self._on_subscription_changed,
            "customer.subscription.deleted": self._on_subscription_deleted,
            "invoice.paid": self._on_invoice_paid,
            "invoice.payment_succeeded": self._on_invoice_paid,
            "invoice.payment_failed": self._on_invoice_failed,
        }

    async def process(self, event: Mapping[str, Any]) -> WebhookOutcome:
        """Handle one verified event at most once.

        Raises:
            ValidationFailedError: If the event has no id or type
        """
        event_id = event.get("id")
        event_type = event.get("type")
        if not isinstance(event_id, str) or not event_id or not isinstance(event_type, str):
            raise ValidationFailedError("Malformed webhook event")

        record = await self._claim(event_id, event_type, event)
        if record is None:
            logger.info("webhook_duplicate", event_id=event_id, event_type=event_type)
            return WebhookOutcome.DUPLICATE

        handler = self._handlers.get(event_type)
        try:
            tenant_id = None
            if handler is not None:
                data = event.get("data") or {}
                tenant_id = await handler(data.get("object") or {})
        except Exception as e:
            await self.db.rollback()
            logger.exception("webhook_failed", event_id=event_id, event_type=event_type)
            await self._mark_failed(event_id, event_type, event, f"{type(e).__name__}: {e}")
            return WebhookOutcome.FAILED

        record.tenant_id = tenant_id
        record.status = WebhookEventStatus.PROCESSED.value
        record.processed_at = datetime.now(UTC)
        record.error_message = None
        await self.db.commit()

        logger.info(
            "webhook_processed",
            event_id=event_id,
            event_type=event_type,
            tenant_id=tenant_id,
            handled=handler is not None,
        )
        return WebhookOutcome.PROCESSED

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    async def _claim(
        self, event_id: str, event_type: str, event: Mapping[str, Any]
    ) -> WebhookEvent | None:
        """Record the event as Pending, or return None if it is already taken."""
        record = WebhookEvent(
            external_event_id=event_id,
            type=event_type,
            status=WebhookEventStatus.PENDING.value,
            event_created_at=_timestamp(event.get("created")),
            raw_payload=dict(event),
        )
        self.db.add(record)
        try:
            await self.db.flush()
            return record
        except IntegrityError:
            await self.db.rollback()

        # Only a Failed delivery may be claimed again
        result = await self.db.execute(
            update(WebhookEvent)
            .where(
                WebhookEvent.external_event_id == event_id,
                WebhookEvent.status == WebhookEventStatus.FAILED.value,
            )
            .values(status=WebhookEventStatus.PENDING.value, error_message=None)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            return None

        logger.info("webhook_retrying_failed_event", event_id=event_id)
        return await self._get_event(event_id)

    async def _mark_failed(
        self, event_id: str, event_type: str, event: Mapping[str, Any], message: str
    ) -> None:
        record = await self._get_event(event_id)
        if record is None:
            record = WebhookEvent(
                external_event_id=event_id,
                type=event_type,
                event_created_at=_timestamp(event.get("created")),
                raw_payload=dict(event),
            )
            self.db.add(record)
        record.status = WebhookEventStatus.FAILED.value
        record.error_message = message[:2000]
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.warning("webhook_failure_not_recorded", event_id=event_id)

    async def _get_event(self, event_id: str) -> WebhookEvent | None:
        result = await self.db.execute(
            select(WebhookEvent)
            .where(WebhookEvent.external_event_id == event_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # -------------------------------------------------------------------------
    # Handlers: each returns the affected tenant id, or None
    # -------------------------------------------------------------------------

    async def _on_checkout_completed(self, obj: Mapping[str, Any]) -> int | None:
        metadata = _metadata(obj)
        subscription = await self._find_subscription(
            tenant_id=metadata.get("tenant_id"),
            customer_id=obj.get("customer"),
        )
        if subscription is None:
            return None

        plan = parse_plan(metadata.get("plan")) or subscription.plan_enum
        if obj.get("customer"):
            subscription.stripe_customer_id = obj["customer"]
        if obj.get("subscription"):
            subscription.stripe_subscription_id = obj["subscription"]
        self._apply_plan(subscription, plan)
        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.trial_ends_at = None

        await self._synced(subscription, "checkout.session.completed")
        return subscription.tenant_id

    async def _on_subscription_changed(self, obj: Mapping[str, Any]) -> int | None:
        metadata = _metadata(obj)
        subscription = await self._find_subscription(
            tenant_id=metadata.get("tenant_id"),
            subscription_id=obj.get("id"),
            customer_id=obj.get("customer"),
        )
        if subscription is None:
            return None

        item = _first_item(obj)
        price = item.get("price") if isinstance(item.get("price"), Mapping) else {}
        plan = parse_plan(self.settings.get_plan_for_price(price.get("id") or "")) or parse_plan(
            metadata.get("plan")
        )
        if plan is not None:
            self._apply_plan(subscription, plan)

        status = _STATUS_MAP.get(str(obj.get("status")), SubscriptionStatus.INCOMPLETE)
        if status == SubscriptionStatus.ACTIVE and obj.get("cancel_at_period_end"):
            status = SubscriptionStatus.CANCELED_AT_PERIOD_END
        subscription.status = status.value

        if obj.get("id"):
            subscription.stripe_subscription_id = obj["id"]
        if obj.get("customer"):
            subscription.stripe_customer_id = obj["customer"]

        period_end = _timestamp(obj.get("current_period_end")) or _timestamp(
            item.get("current_period_end")
        )
        if period_end is not None:
            subscription.current_period_end = period_end
            subscription.next_billing_date = (
                None if status == SubscriptionStatus.CANCELED_AT_PERIOD_END else period_end
            )
        if status == SubscriptionStatus.TRIALING:
            subscription.trial_ends_at = _timestamp(obj.get("trial_end")) or (
                subscription.trial_ends_at
            )
        elif status != SubscriptionStatus.INCOMPLETE:
            subscription.trial_ends_at = None

        await self._synced(subscription, "customer.subscription.updated")
        return subscription.tenant_id

    async def _on_subscription_deleted(self, obj: Mapping[str, Any]) -> int | None:
        subscription = await self._find_subscription(
            tenant_id=_metadata(obj).get("tenant_id"),
            subscription_id=obj.get("id"),
            customer_id=obj.get("customer"),
        )
        if subscription is None:
            return None

        self._apply_plan(subscription, SubscriptionPlan.FREE)
        subscription.status = SubscriptionStatus.CANCELED.value
        subscription.stripe_subscription_id = None
        subscription.next_billing_date = None

        await self._synced(subscription, "customer.subscription.deleted")
        return subscription.tenant_id

    async def _on_invoice_paid(self, obj: Mapping[str, Any]) -> int | None:
        subscription = await self._find_subscription(
            subscription_id=obj.get("subscription"),
            customer_id=obj.get("customer"),
        )
        if subscription is None:
            return None

        # A scheduled cancellation survives the final invoice
        if subscription.status != SubscriptionStatus.CANCELED_AT_PERIOD_END.value:
            subscription.status = SubscriptionStatus.ACTIVE.value

        await self._synced(subscription, "invoice.paid")
        return subscription.tenant_id

    async def _on_invoice_failed(self, obj: Mapping[str, Any]) -> int | None:
        subscription = await self._find_subscription(
            subscription_id=obj.get("subscription"),
            customer_id=obj.get("customer"),
        )
        if subscription is None:
            return None

        subscription.status = SubscriptionStatus.PAST_DUE.value
        await self._synced(subscription, "invoice.payment_failed")
        return subscription.tenant_id

    # -------------------------------------------------------------------------

    async def _find_subscription(
        self,
        *,
        tenant_id: Any = None,
        subscription_id: Any = None,
        customer_id: Any = None,
    ) -> Subscription | None:
        """Locate the local subscription by tenant metadata, then provider ids."""
        criteria = []
        if tenant_id not in (None, ""):
            criteria.append(Subscription.tenant_id == parse_tenant_id(tenant_id))
        if isinstance(subscription_id, str) and subscription_id:
            criteria.append(Subscription.stripe_subscription_id == subscription_id)
        if isinstance(customer_id, str) and customer_id:
            criteria.append(Subscription.stripe_customer_id == customer_id)
        if not criteria:
            logger.warning("webhook_without_subscription_reference")
            return None

        # First matching criterion in priority order wins
        for criterion in criteria:
            result = await self.db.execute(
                select(Subscription)
                .where(criterion)
                .order_by(Subscription.id)
                .limit(1)
                .execution_options(populate_existing=True)
            )
            subscription = result.scalar_one_or_none()
            if subscription is not None:
                return subscription

        logger.warning(
            "webhook_subscription_not_found",
            tenant_id=tenant_id,
            has_subscription_id=bool(subscription_id),
            has_customer_id=bool(customer_id),
        )
        return None

    @staticmethod
    def _apply_plan(subscription: Subscription, plan: SubscriptionPlan) -> None:
        subscription.plan = plan.value
        subscription.monthly_price = PLAN_CATALOG[plan].monthly_price

    async def _synced(self, subscription: Subscription, source: str) -> None:
        await self.db.flush()
        await self.audit.log(
            TenantContext(tenant_id=subscription.tenant_id, email=WEBHOOK_ACTOR),
            AuditAction.SUBSCRIPTION_SYNCED,
            entity_type="subscription",
            entity_id=subscription.id,
            details={"source": source, "plan": subscription.plan, "status": subscription.status},
        )
        logger.info(
            "subscription_synced",
            tenant_id=subscription.tenant_id,
            plan=subscription.plan,
            status=subscription.status,
            source=source,
        )
