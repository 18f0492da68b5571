"""
Stripe billing provider implementation.

Implements the BillingProvider protocol with the stripe SDK. The API key is
passed on every call instead of being assigned to ``stripe.api_key``, so
several providers (or a test fake) can coexist in one process.
"""
from typing import Any, Optional

import stripe

from sheetgenius.features.billing.provider import (
    BillingProviderError,
    BillingWebhookError,
    CheckoutSessionInfo,
    SubscriptionInfo,
    WebhookEvent,
)


def _get(obj: Any, key: str) -> Any:
    """Read a field from a StripeObject or dict, None when absent."""
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError):
        return None


def _id_of(value: Any) -> Optional[str]:
    """Stripe returns either an id string or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return _get(value, "id")


class StripeProvider:
    """Stripe implementation of BillingProvider protocol."""

    def __init__(
        self,
        secret_key: Optional[str],
        webhook_secret: Optional[str] = None,
        tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
    ):
        """
        Initialize Stripe provider.

        Args:
            secret_key: Stripe secret key (required)
            webhook_secret: Signing secret for webhook verification
            tolerance: Max age in seconds of a signed webhook timestamp

        Raises:
            BillingProviderError: If the secret key is missing
        """
        if not secret_key:
            raise BillingProviderError("STRIPE_SECRET_KEY not configured")

        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    def create_checkout_session(
        self,
        price_id: str,
        user_id: str,
        success_url: str,
        cancel_url: str,
    ) -> str:
        """Create Stripe subscription checkout session."""
        try:
            session = stripe.checkout.Session.create(
                api_key=self.secret_key,
                mode="subscription",
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=success_url,
                cancel_url=cancel_url,
                metadata={"userId": user_id},
            )
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe checkout session creation failed: {e}") from e
        return _get(session, "id")

    def verify_event(self, body: bytes, signature: Optional[str]) -> WebhookEvent:
        """Verify Stripe webhook signature and parse event."""
        if not self.webhook_secret:
            raise BillingWebhookError("STRIPE_WEBHOOK_SECRET not configured")
        if not signature:
            raise BillingWebhookError("Missing stripe-signature header")

        try:
            event = stripe.Webhook.construct_event(
                body, signature, self.webhook_secret, tolerance=self.tolerance, api_key=self.secret_key
            ).to_dict()
        except (ValueError, TypeError, AttributeError) as e:
            # TypeError/AttributeError: signed JSON that is not an object
            raise BillingWebhookError(f"Invalid payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            raise BillingWebhookError(f"Invalid signature: {e}") from e
        if "type" not in event:
            raise BillingWebhookError("Invalid payload: not a Stripe event")

        return WebhookEvent(
            event_id=event.get("id") or "",
            event_type=event["type"],
            data_object=(event.get("data") or {}).get("object") or {},
        )

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionInfo:
        """Retrieve a subscription and read its first line item's price."""
        try:
            subscription = stripe.Subscription.retrieve(subscription_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe subscription retrieval failed: {e}") from e

        items = _get(_get(subscription, "items"), "data") or []
        price_id = _id_of(_get(items[0], "price")) if items else None

        return SubscriptionInfo(
            subscription_id=_get(subscription, "id") or subscription_id,
            customer_id=_id_of(_get(subscription, "customer")),
            price_id=price_id,
        )

    def find_checkout_session(self, subscription_id: str) -> Optional[CheckoutSessionInfo]:
        """Find the checkout session that produced a subscription."""
        try:
            sessions = stripe.checkout.Session.list(
                subscription=subscription_id,
                limit=1,
                api_key=self.secret_key,
            )
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe checkout session lookup failed: {e}") from e

        data = _get(sessions, "data") or []
        if not data:
            return None

        session = data[0]
        return CheckoutSessionInfo(
            session_id=_get(session, "id"),
            user_id=_get(_get(session, "metadata"), "userId"),
            customer_id=_id_of(_get(session, "customer")),
            subscription_id=_id_of(_get(session, "subscription")) or subscription_id,
        )
