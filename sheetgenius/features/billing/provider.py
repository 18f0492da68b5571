"""
Billing provider protocol.

Defines the interface the billing service needs from a payment processor
(Stripe in production, fakes in tests) and the normalized values it
returns, so the reconciliation logic never touches SDK objects.
"""
from typing import Protocol, Dict, Any, Optional
from dataclasses import dataclass, field


@dataclass
class WebhookEvent:
    """A verified webhook delivery."""
    event_id: str
    event_type: str
    data_object: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SubscriptionInfo:
    """The parts of a subscription the reconciler reads."""
    subscription_id: str
    customer_id: Optional[str]
    price_id: Optional[str]  # price of the first line item


@dataclass
class CheckoutSessionInfo:
    """The parts of a checkout session the reconciler reads."""
    session_id: str
    user_id: Optional[str]  # metadata.userId
    customer_id: Optional[str]
    subscription_id: Optional[str]


class BillingProvider(Protocol):
    """
    Protocol for billing providers.

    Implementations must handle:
    - Subscription checkout session creation
    - Webhook signature verification and parsing
    - Subscription retrieval
    - Checkout session lookup by subscription
    """

    def create_checkout_session(
        self,
        price_id: str,
        user_id: str,
        success_url: str,
        cancel_url: str,
    ) -> str:
        """
        Create a subscription-mode checkout session.

        The session carries ``metadata.userId`` so webhook deliveries can be
        attributed later.

        Returns:
            Checkout session id

        Raises:
            BillingProviderError: If session creation fails
        """
        ...

    def verify_event(self, body: bytes, signature: Optional[str]) -> WebhookEvent:
        """
        Verify the signature over the raw body and parse the event.

        Raises:
            BillingWebhookError: Missing secret/header, bad signature, or bad payload
        """
        ...

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionInfo:
        """
        Raises:
            BillingProviderError: If retrieval fails
        """
        ...

    def find_checkout_session(self, subscription_id: str) -> Optional[CheckoutSessionInfo]:
        """
        Look up the checkout session that created a subscription.

        Returns:
            The session, or None when the processor has none on record

        Raises:
            BillingProviderError: If the lookup fails
        """
        ...


class BillingProviderError(Exception):
    """Base exception for billing provider errors."""
    pass


class BillingWebhookError(BillingProviderError):
    """Exception for webhook verification errors."""
    pass
