"""
Test webhook reconciliation.

Uses the fake provider (no Stripe calls) against the SQLite profile store.
"""
import pytest
from unittest.mock import patch

from sheetgenius.core.errors import InvalidSignatureError, PersistenceError, UpstreamError
from sheetgenius.features.billing.provider import CheckoutSessionInfo, SubscriptionInfo
from sheetgenius.features.billing.service import (
    APPLIED,
    FAILED,
    IGNORED,
    UNATTRIBUTED,
    BillingService,
)
from sheetgenius.models.plan import Plan
from sheetgenius.tests.mocks import PRO_PRICE, STARTER_PRICE, VALID_SIGNATURE


@pytest.fixture
def service(fake_provider, profile_store, test_settings):
    return BillingService(fake_provider, profile_store, test_settings)


def _checkout_completed(fake_provider, *, user_id="user_alice", subscription="sub_1", customer="cus_1", price=STARTER_PRICE):
    metadata = {"userId": user_id} if user_id else {}
    body = f'{{"type": "checkout.session.completed", "user": "{user_id}", "sub": "{subscription}"}}'.encode()
    fake_provider.add_event(
        body,
        "checkout.session.completed",
        {"id": "cs_1", "metadata": metadata, "subscription": subscription, "customer": customer},
    )
    if subscription:
        fake_provider.subscriptions[subscription] = SubscriptionInfo(
            subscription_id=subscription, customer_id=customer, price_id=price
        )
    return body


def test_checkout_completed_applies_mapped_plan(service, fake_provider, profile_store):
    profile_store.get_or_create("user_alice")
    body = _checkout_completed(fake_provider)

    outcome = service.process_webhook(body, VALID_SIGNATURE)

    assert outcome.status == APPLIED
    assert outcome.plan is Plan.STARTER
    profile = profile_store.get("user_alice")
    assert profile.plan is Plan.STARTER
    assert profile.stripe_customer_id == "cus_1"
    assert profile.stripe_subscription_id == "sub_1"


def test_pro_price_maps_to_pro(service, fake_provider, profile_store):
    body = _checkout_completed(fake_provider, price=PRO_PRICE)

    service.process_webhook(body, VALID_SIGNATURE)

    assert profile_store.get("user_alice").plan is Plan.PRO


def test_missing_profile_row_is_created(service, fake_provider, profile_store):
    assert profile_store.get("user_alice") is None
    body = _checkout_completed(fake_provider)

    service.process_webhook(body, VALID_SIGNATURE)

    profile = profile_store.get("user_alice")
    assert profile is not None
    assert profile.usage_count == 0


def test_unknown_price_resolves_to_free(service, fake_provider, profile_store):
    # Current behavior: an unmapped price downgrades to free. Kept on purpose
    # until the product decides between preserving the plan and rejecting.
    profile_store.apply_billing("user_alice", Plan.PRO, "cus_1", "sub_old")
    body = _checkout_completed(fake_provider, price="price_unknown")

    outcome = service.process_webhook(body, VALID_SIGNATURE)

    assert outcome.status == APPLIED
    assert profile_store.get("user_alice").plan is Plan.FREE


def test_invalid_signature_mutates_nothing(service, fake_provider, profile_store):
    profile_store.get_or_create("user_alice")
    body = _checkout_completed(fake_provider)

    with pytest.raises(InvalidSignatureError):
        service.process_webhook(body, "t=1,v1=forged")
    with pytest.raises(InvalidSignatureError):
        service.process_webhook(body, None)

    assert profile_store.get("user_alice").plan is Plan.FREE


def test_missing_user_id_is_acknowledged_without_mutation(service, fake_provider, profile_store):
    body = _checkout_completed(fake_provider, user_id=None)

    with patch.object(profile_store, "apply_billing") as apply:
        outcome = service.process_webhook(body, VALID_SIGNATURE)

    assert outcome.status == UNATTRIBUTED
    apply.assert_not_called()


def test_missing_subscription_is_acknowledged_without_mutation(service, fake_provider, profile_store):
    profile_store.get_or_create("user_alice")
    body = _checkout_completed(fake_provider, subscription=None)

    outcome = service.process_webhook(body, VALID_SIGNATURE)

    assert outcome.status == UNATTRIBUTED
    profile = profile_store.get("user_alice")
    assert profile.plan is Plan.FREE
    assert profile.stripe_subscription_id is None


def test_replaying_event_is_idempotent(service, fake_provider, profile_store):
    body = _checkout_completed(fake_provider, price=PRO_PRICE)

    service.process_webhook(body, VALID_SIGNATURE)
    once = profile_store.get("user_alice")
    service.process_webhook(body, VALID_SIGNATURE)
    twice = profile_store.get("user_alice")

    assert once.plan == twice.plan == Plan.PRO
    assert once.stripe_subscription_id == twice.stripe_subscription_id


def test_subscription_created_resolves_user_from_checkout_session(service, fake_provider, profile_store):
    body = b'{"type": "customer.subscription.created"}'
    fake_provider.add_event(body, "customer.subscription.created", {"id": "sub_2", "customer": "cus_2"})
    fake_provider.checkout_sessions["sub_2"] = CheckoutSessionInfo(
        session_id="cs_2", user_id="user_bob", customer_id="cus_2", subscription_id="sub_2"
    )
    fake_provider.subscriptions["sub_2"] = SubscriptionInfo("sub_2", "cus_2", PRO_PRICE)

    outcome = service.process_webhook(body, VALID_SIGNATURE)

    assert outcome.status == APPLIED
    assert outcome.user_id == "user_bob"
    profile = profile_store.get("user_bob")
    assert profile.plan is Plan.PRO
    assert profile.stripe_customer_id == "cus_2"
    assert profile.stripe_subscription_id == "sub_2"


def test_subscription_created_without_checkout_session_is_noop(service, fake_provider, profile_store):
    body = b'{"type": "customer.subscription.created", "orphan": true}'
    fake_provider.add_event(body, "customer.subscription.created", {"id": "sub_orphan", "customer": "cus_9"})

    outcome = service.process_webhook(body, VALID_SIGNATURE)

    assert outcome.status == UNATTRIBUTED
    assert profile_store.get("user_bob") is None


def test_subscription_created_session_without_user_is_noop(service, fake_provider, profile_store):
    body = b'{"type": "customer.subscription.created", "anon": true}'
    fake_provider.add_event(body, "customer.subscription.created", {"id": "sub_3"})
    fake_provider.checkout_sessions["sub_3"] = CheckoutSessionInfo("cs_3", None, "cus_3", "sub_3")

    with patch.object(profile_store, "apply_billing") as apply:
        outcome = service.process_webhook(body, VALID_SIGNATURE)

    assert outcome.status == UNATTRIBUTED
    apply.assert_not_called()


def test_other_event_types_are_ignored(service, fake_provider, profile_store):
    body = b'{"type": "invoice.paid"}'
    fake_provider.add_event(body, "invoice.paid", {"id": "in_1"})

    with patch.object(profile_store, "apply_billing") as apply:
        outcome = service.process_webhook(body, VALID_SIGNATURE)

    assert outcome.status == IGNORED
    apply.assert_not_called()


def test_persistence_failure_is_swallowed(service, fake_provider, profile_store):
    body = _checkout_completed(fake_provider)

    with patch.object(profile_store, "apply_billing", side_effect=PersistenceError("db down")):
        outcome = service.process_webhook(body, VALID_SIGNATURE)

    assert outcome.status == FAILED
    assert outcome.plan is Plan.STARTER


def test_stripe_lookup_failure_surfaces_as_upstream_error(service, fake_provider, profile_store):
    body = _checkout_completed(fake_provider)
    fake_provider.fail_lookups = True

    with pytest.raises(UpstreamError):
        service.process_webhook(body, VALID_SIGNATURE)

    assert profile_store.get("user_alice") is None
