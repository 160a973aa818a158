"""
Pytest fixtures for webhook tests.

Provides a signing secret, a pipeline bound to it, and helpers for running
signed events through the pipeline or creating claimed WebhookEvent rows
for handler tests.
"""

import pytest

from billing.models import WebhookEvent
from billing.state_machines import SubscriptionStatus, WebhookEventStatus
from billing.tests.factories import (
    BillingProfileFactory,
    CreatorProfileFactory,
    SubscriptionFactory,
    UserFactory,
)
from billing.tests.stripe_fakes import encode, signed_header
from billing.webhooks.pipeline import WebhookPipeline

WEBHOOK_SECRET = "whsec_test_webhooks"


# =============================================================================
# Pipeline Fixtures
# =============================================================================


@pytest.fixture
def pipeline():
    return WebhookPipeline(secret=WEBHOOK_SECRET)


@pytest.fixture
def process(pipeline):
    """
    Sign an event dict and run it through the pipeline.

    Usage:
        response = process(event("customer.subscription.updated", obj))
    """

    def _process(event_dict):
        body = encode(event_dict)
        return pipeline.process(body.encode("utf-8"), signed_header(body, WEBHOOK_SECRET))

    return _process


@pytest.fixture
def claimed_event(db):
    """
    Create a claimed WebhookEvent for an event dict, as the pipeline would.

    Usage:
        outcome = handle_subscription_updated(claimed_event(event(...)))
    """

    def _create(event_dict):
        return WebhookEvent.objects.create(
            stripe_event_id=event_dict["id"],
            event_type=event_dict["type"],
            payload=event_dict,
            status=WebhookEventStatus.PROCESSING,
            retry_count=1,
        )

    return _create


# =============================================================================
# Subscription Fixtures
# =============================================================================


@pytest.fixture
def active_subscription(db):
    """An active $19.99 subscription to a creator at 30% commission."""
    creator_profile = CreatorProfileFactory()
    subscriber_profile = BillingProfileFactory(user=UserFactory())
    return SubscriptionFactory(
        subscriber=subscriber_profile.user,
        creator=creator_profile.user,
        status=SubscriptionStatus.ACTIVE,
    )
