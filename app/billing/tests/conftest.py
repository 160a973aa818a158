"""
Pytest fixtures for billing tests.

Usage:
    def test_subscribe(orchestrator, subscriber, creator):
        result = orchestrator.create_subscription(subscriber, params)
"""

from unittest.mock import MagicMock, patch

import pytest
from django.urls import reverse

from billing.services import SubscriptionOrchestrator
from billing.tests.factories import (
    BillingProfileFactory,
    CreatorProfileFactory,
    UserFactory,
)
from billing.tests.stripe_fakes import FakeStripeAdapter, encode, signed_header

WEBHOOK_SECRET = "whsec_test_billing"


# =============================================================================
# Redis
# =============================================================================


@pytest.fixture(autouse=True)
def mock_redis():
    """
    Redis client behind DistributedLock, free by default.

    Set `mock_redis.set.return_value = False` to simulate a lock held by
    another process.
    """
    client = MagicMock()
    client.set.return_value = True
    client.eval.return_value = 1
    with patch("billing.locks.get_redis_connection", return_value=client):
        yield client


# =============================================================================
# Users
# =============================================================================


@pytest.fixture
def subscriber(db):
    """A user with a Stripe customer, ready to subscribe."""
    return BillingProfileFactory(user=UserFactory(username="fan")).user


@pytest.fixture
def creator(db):
    """A creator offering a $19.99/month subscription at 30% commission."""
    return CreatorProfileFactory(user=UserFactory(username="creator")).user


# =============================================================================
# Stripe
# =============================================================================


@pytest.fixture
def fake_adapter():
    return FakeStripeAdapter()


@pytest.fixture
def orchestrator(fake_adapter):
    return SubscriptionOrchestrator(adapter=fake_adapter)


@pytest.fixture
def webhook_secret(settings):
    settings.STRIPE_WEBHOOK_SECRET = WEBHOOK_SECRET
    return WEBHOOK_SECRET


@pytest.fixture
def deliver(client, webhook_secret):
    """
    POST a signed event to the webhook endpoint.

    Usage:
        response = deliver(event("customer.subscription.updated", obj))
    """

    def _deliver(event_dict):
        body = encode(event_dict)
        return client.post(
            reverse("billing:stripe_webhook"),
            data=body,
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=signed_header(body, webhook_secret),
        )

    return _deliver
