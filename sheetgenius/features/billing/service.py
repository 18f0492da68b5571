"""
Billing service orchestrator.

Coordinates:
- Checkout session creation
- Webhook verification and dispatch
- Plan resolution from the subscription's price
- Profile plan synchronization

All Stripe-specific code is in stripe_provider.py.
"""
from dataclasses import dataclass
from typing import Optional

from sheetgenius.core.config import Settings, settings as default_settings
from sheetgenius.core.errors import (
    CheckoutFailedError,
    InvalidSignatureError,
    MissingParameterError,
    PersistenceError,
    UpstreamError,
)
from sheetgenius.core.logging import log_event
from sheetgenius.features.billing.provider import (
    BillingProvider,
    BillingProviderError,
    BillingWebhookError,
    WebhookEvent,
)
from sheetgenius.features.plans.service import plan_for_price, price_for_plan
from sheetgenius.features.profiles.service import ProfileStore
from sheetgenius.models.plan import Plan

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_CREATED = "customer.subscription.created"

# Webhook outcomes
APPLIED = "applied"
IGNORED = "ignored"
UNATTRIBUTED = "unattributed"
FAILED = "failed"


@dataclass
class WebhookOutcome:
    """What the handler did with a verified event."""
    event_id: str
    event_type: str
    status: str
    user_id: Optional[str] = None
    plan: Optional[Plan] = None
    subscription_id: Optional[str] = None


def _id_of(value) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("id")
    return value


class BillingService:
    """Checkout creation and webhook reconciliation for one process."""

    def __init__(self, provider: BillingProvider, profiles: ProfileStore, settings: Optional[Settings] = None):
        self.provider = provider
        self.profiles = profiles
        self.settings = settings or default_settings

    def start_checkout(self, price_id: Optional[str], user_id: Optional[str], plan: Optional[str] = None) -> str:
        """
        Create a subscription checkout session for a user.

        Args:
            price_id: Stripe price id; may be omitted when ``plan`` is given
            user_id: User to attribute the subscription to (metadata.userId)
            plan: Paid plan name (starter, pro) resolved to its price id

        Returns:
            Checkout session id

        Raises:
            MissingParameterError: price (or plan) or user id missing
            CheckoutFailedError: Stripe rejected or failed the request
        """
        if not price_id and plan:
            price_id = price_for_plan(plan, self.settings)
        if not price_id or not user_id:
            raise MissingParameterError("Missing required parameters")

        try:
            session_id = self.provider.create_checkout_session(
                price_id=price_id,
                user_id=user_id,
                success_url=self.settings.CHECKOUT_SUCCESS_URL,
                cancel_url=self.settings.CHECKOUT_CANCEL_URL,
            )
        except BillingProviderError as e:
            log_event("error", "checkout.failed", user_id=user_id, error_code="checkout_failed", extra={"error": e})
            raise CheckoutFailedError("Failed to create checkout session") from e

        log_event("info", "checkout.created", user_id=user_id, extra={"session_id": session_id, "price_id": price_id})
        return session_id

    def process_webhook(self, body: bytes, signature: Optional[str]) -> WebhookOutcome:
        """
        Reconcile a profile's plan from a Stripe webhook delivery.

        1. Verify signature (nothing is read before this passes)
        2. Dispatch on event type and attribute the event to a user
        3. Retrieve the subscription and map its price to a plan
        4. Write plan and billing ids to the profile

        A failed profile write is logged and acknowledged, never raised.

        Raises:
            InvalidSignatureError: Verification failed
            UpstreamError: Stripe lookups failed while attributing or resolving
        """
        try:
            event = self.provider.verify_event(body, signature)
        except BillingWebhookError as e:
            log_event("warning", "webhook.rejected", error_code="invalid_signature", extra={"reason": e})
            raise InvalidSignatureError(str(e)) from e

        log_event("info", "webhook.received", event_type=event.event_type, extra={"event_id": event.event_id})

        try:
            if event.event_type == CHECKOUT_COMPLETED:
                return self._handle_checkout_completed(event)
            if event.event_type == SUBSCRIPTION_CREATED:
                return self._handle_subscription_created(event)
        except BillingProviderError as e:
            log_event(
                "error",
                "webhook.upstream_failed",
                event_type=event.event_type,
                error_code="upstream_failure",
                extra={"event_id": event.event_id, "error": e},
            )
            raise UpstreamError("Failed to resolve subscription") from e

        log_event("info", "webhook.ignored", event_type=event.event_type, extra={"event_id": event.event_id})
        return WebhookOutcome(event.event_id, event.event_type, IGNORED)

    def _handle_checkout_completed(self, event: WebhookEvent) -> WebhookOutcome:
        session = event.data_object
        user_id = (session.get("metadata") or {}).get("userId")
        subscription_id = _id_of(session.get("subscription"))

        if not user_id or not subscription_id:
            return self._unattributed(event, user_id, subscription_id)

        return self._resolve_and_persist(event, user_id, subscription_id, _id_of(session.get("customer")))

    def _handle_subscription_created(self, event: WebhookEvent) -> WebhookOutcome:
        subscription = event.data_object
        subscription_id = subscription.get("id")
        if not subscription_id:
            return self._unattributed(event, None, None)

        checkout = self.provider.find_checkout_session(subscription_id)
        if checkout is None or not checkout.user_id:
            return self._unattributed(event, checkout.user_id if checkout else None, subscription_id)

        customer_id = checkout.customer_id or _id_of(subscription.get("customer"))
        return self._resolve_and_persist(event, checkout.user_id, subscription_id, customer_id)

    def _unattributed(self, event: WebhookEvent, user_id: Optional[str], subscription_id: Optional[str]) -> WebhookOutcome:
        log_event(
            "warning",
            "webhook.unattributed",
            user_id=user_id,
            event_type=event.event_type,
            extra={"event_id": event.event_id, "subscription_id": subscription_id},
        )
        return WebhookOutcome(event.event_id, event.event_type, UNATTRIBUTED, user_id=user_id, subscription_id=subscription_id)

    def _resolve_and_persist(
        self,
        event: WebhookEvent,
        user_id: str,
        subscription_id: str,
        customer_id: Optional[str],
    ) -> WebhookOutcome:
        subscription = self.provider.retrieve_subscription(subscription_id)
        plan = plan_for_price(subscription.price_id, self.settings)
        if plan is Plan.FREE:
            # Unmapped price resolves to free
            log_event(
                "warning",
                "webhook.unmapped_price",
                user_id=user_id,
                event_type=event.event_type,
                extra={"price_id": subscription.price_id, "subscription_id": subscription_id},
            )

        customer_id = customer_id or subscription.customer_id
        try:
            self.profiles.apply_billing(user_id, plan, customer_id, subscription_id)
        except PersistenceError as e:
            log_event(
                "error",
                "webhook.persist_failed",
                user_id=user_id,
                event_type=event.event_type,
                error_code=e.code,
                extra={"event_id": event.event_id, "plan": plan.value, "error": e.message},
            )
            return WebhookOutcome(event.event_id, event.event_type, FAILED, user_id, plan, subscription_id)

        log_event(
            "info",
            "webhook.applied",
            user_id=user_id,
            event_type=event.event_type,
            extra={"event_id": event.event_id, "plan": plan.value, "subscription_id": subscription_id},
        )
        return WebhookOutcome(event.event_id, event.event_type, APPLIED, user_id, plan, subscription_id)
