"""
Factory Boy factories for billing test data.

Usage:
    from billing.tests.factories import CreatorProfileFactory, SubscriptionFactory

    creator_profile = CreatorProfileFactory(subscription_price_cents=1999)
    subscription = SubscriptionFactory(creator=creator_profile.user)

    # In a specific state
    subscription = SubscriptionFactory(status=SubscriptionStatus.ACTIVE)
"""

import uuid
from decimal import Decimal

import factory
from django.utils import timezone

from billing.models import (
    BillingProfile,
    CreatorEarning,
    PaymentTransaction,
    Subscription,
    WebhookEvent,
)
from billing.state_machines import (
    EarningStatus,
    PaymentTransactionStatus,
    SubscriptionStatus,
    WebhookEventStatus,
)


class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = "auth.User"
        skip_postgeneration_save = False

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.LazyAttribute(lambda o: f"{o.username}@example.com")
    password = factory.PostGenerationMethodCall("set_password", "testpass123")
    is_active = True


class BillingProfileFactory(factory.django.DjangoModelFactory):
    """
    Billing profile of a subscriber with a Stripe customer.
    """

    class Meta:
        model = BillingProfile
        skip_postgeneration_save = True

    user = factory.SubFactory(UserFactory)
    stripe_customer_id = factory.Sequence(lambda n: f"cus_test_{n}_{uuid.uuid4().hex[:8]}")
    commission_rate = Decimal("30.00")


class CreatorProfileFactory(BillingProfileFactory):
    """
    Billing profile of a creator offering a $19.99 monthly subscription.
    """

    stripe_customer_id = None
    subscription_price_cents = 1999
    subscription_currency = "usd"


class SubscriptionFactory(factory.django.DjangoModelFactory):
    """
    Default creates an INCOMPLETE $19.99 subscription.

    Example:
        active = SubscriptionFactory(
            status=SubscriptionStatus.ACTIVE,
            current_period_end=timezone.now() + timedelta(days=30),
        )
    """

    class Meta:
        model = Subscription
        skip_postgeneration_save = True

    subscriber = factory.SubFactory(UserFactory)
    creator = factory.SubFactory(UserFactory)
    stripe_subscription_id = factory.Sequence(lambda n: f"sub_test_{n}_{uuid.uuid4().hex[:8]}")
    stripe_price_id = "price_test_1999"
    price_cents = 1999
    currency = "usd"
    status = SubscriptionStatus.INCOMPLETE


class PaymentTransactionFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = PaymentTransaction
        skip_postgeneration_save = True

    subscription = factory.SubFactory(SubscriptionFactory)
    payer = factory.LazyAttribute(lambda o: o.subscription.subscriber)
    recipient = factory.LazyAttribute(lambda o: o.subscription.creator)
    stripe_payment_intent_id = factory.Sequence(lambda n: f"pi_test_{n}_{uuid.uuid4().hex[:8]}")
    amount_cents = factory.LazyAttribute(lambda o: o.subscription.price_cents)
    currency = "usd"
    status = PaymentTransactionStatus.PENDING


class CreatorEarningFactory(factory.django.DjangoModelFactory):
    """
    Default is a pending $19.99 earning split at 30%.
    """

    class Meta:
        model = CreatorEarning
        skip_postgeneration_save = True

    subscription = factory.SubFactory(SubscriptionFactory, status=SubscriptionStatus.ACTIVE)
    creator = factory.LazyAttribute(lambda o: o.subscription.creator)
    payment_intent_id = factory.Sequence(lambda n: f"pi_earn_{n}_{uuid.uuid4().hex[:8]}")
    gross_amount_cents = 1999
    commission_rate = Decimal("30.00")
    commission_cents = 600
    net_amount_cents = 1399
    currency = "usd"
    payment_date = factory.LazyFunction(timezone.now)
    status = EarningStatus.PENDING


class WebhookEventFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = WebhookEvent
        skip_postgeneration_save = True

    stripe_event_id = factory.Sequence(lambda n: f"evt_test_{n}_{uuid.uuid4().hex[:8]}")
    event_type = "customer.subscription.updated"
    payload = factory.LazyAttribute(
        lambda o: {
            "id": o.stripe_event_id,
            "type": o.event_type,
            "created": int(timezone.now().timestamp()),
            "data": {"object": {}},
        }
    )
    status = WebhookEventStatus.PROCESSING
    retry_count = 1
