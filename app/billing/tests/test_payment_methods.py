"""
Tests for PaymentMethodService.

Tests cover:
- Reading back a SetupIntent with its card, by id or client secret
- Detaching a saved card, and refusing while a live subscription renews with it
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from billing.models import BillingProfile
from billing.services import CreateSubscriptionParams, PaymentMethodService
from billing.state_machines import SubscriptionStatus
from billing.tests.factories import BillingProfileFactory, SubscriptionFactory, UserFactory
from billing.tests.stripe_fakes import unavailable


@pytest.fixture
def service(fake_adapter):
    return PaymentMethodService(adapter=fake_adapter)


@pytest.fixture
def customer_id(subscriber):
    return subscriber.billing_profile.stripe_customer_id


# =============================================================================
# SetupIntent Read-back
# =============================================================================


@pytest.mark.django_db
class TestRetrieveSetupIntent:
    def test_returns_card_details(self, service, fake_adapter, subscriber, customer_id):
        saved = fake_adapter.save_card(customer_id)

        result = service.retrieve_setup_intent(subscriber, saved.id)

        assert result.success
        assert result.data.status == "succeeded"
        assert result.data.payment_method_id == "pm_card_visa"
        assert result.data.payment_method.card_brand == "visa"
        assert result.data.payment_method.card_last4 == "4242"

    def test_accepts_client_secret(self, service, fake_adapter, subscriber, customer_id):
        saved = fake_adapter.save_card(customer_id)

        result = service.retrieve_setup_intent(subscriber, saved.client_secret)

        assert result.success
        assert result.data.id == saved.id

    def test_other_customers_intent_is_not_found(self, service, fake_adapter, subscriber):
        saved = fake_adapter.save_card("cus_someone_else")

        result = service.retrieve_setup_intent(subscriber, saved.id)

        assert result.error_code == "SETUP_INTENT_NOT_FOUND"

    def test_unknown_intent(self, service, subscriber):
        result = service.retrieve_setup_intent(subscriber, "seti_missing")

        assert result.error_code == "SETUP_INTENT_NOT_FOUND"

    def test_user_without_customer(self, service):
        result = service.retrieve_setup_intent(UserFactory(), "seti_any")

        assert result.error_code == "SETUP_INTENT_NOT_FOUND"

    def test_stripe_failure(self, service, fake_adapter, subscriber):
        fake_adapter.retrieve_setup_intent = MagicMock(side_effect=unavailable())

        result = service.retrieve_setup_intent(subscriber, "seti_any")

        assert result.error_code == "PAYMENT_METHOD_SETUP_FAILED"


# =============================================================================
# Detach
# =============================================================================


@pytest.mark.django_db
class TestDetachPaymentMethod:
    def subscribe(self, orchestrator, subscriber, creator, payment_method_id="pm_card_visa"):
        return orchestrator.create_subscription(
            subscriber,
            CreateSubscriptionParams(
                creator_id=creator.pk,
                payment_method_id=payment_method_id,
                price=Decimal("19.99"),
                currency="usd",
            ),
        )

    def test_detaches_and_clears_default(self, service, fake_adapter, subscriber, customer_id):
        fake_adapter.save_card(customer_id)
        BillingProfile.objects.filter(user=subscriber).update(
            default_payment_method_id="pm_card_visa"
        )

        result = service.detach_payment_method(subscriber, "pm_card_visa")

        assert result.success
        assert fake_adapter.detached == ["pm_card_visa"]
        assert BillingProfile.objects.get(user=subscriber).default_payment_method_id is None

    def test_refused_while_live_subscription_renews_with_it(
        self, service, fake_adapter, orchestrator, subscriber, creator, customer_id
    ):
        fake_adapter.payment_intent_status = "succeeded"
        fake_adapter.save_card(customer_id)
        assert self.subscribe(orchestrator, subscriber, creator).success

        result = service.detach_payment_method(subscriber, "pm_card_visa")

        assert result.error_code == "PAYMENT_METHOD_IN_USE"
        assert fake_adapter.detached == []

    def test_other_card_can_go_while_subscribed(
        self, service, fake_adapter, orchestrator, subscriber, creator, customer_id
    ):
        fake_adapter.payment_intent_status = "succeeded"
        fake_adapter.save_card(customer_id)
        fake_adapter.save_card(customer_id, "pm_card_spare")
        self.subscribe(orchestrator, subscriber, creator)

        result = service.detach_payment_method(subscriber, "pm_card_spare")

        assert result.success
        assert fake_adapter.detached == ["pm_card_spare"]

    def test_canceled_subscription_does_not_hold_the_card(
        self, service, fake_adapter, orchestrator, subscriber, creator, customer_id
    ):
        fake_adapter.payment_intent_status = "succeeded"
        fake_adapter.save_card(customer_id)
        created = self.subscribe(orchestrator, subscriber, creator)
        subscription = created.data.subscription
        subscription.cancel()
        subscription.save()

        result = service.detach_payment_method(subscriber, "pm_card_visa")

        assert result.success

    def test_other_customers_card_is_not_found(self, service, fake_adapter, subscriber):
        fake_adapter.save_card("cus_someone_else")

        result = service.detach_payment_method(subscriber, "pm_card_visa")

        assert result.error_code == "PAYMENT_METHOD_NOT_FOUND"
        assert fake_adapter.detached == []

    def test_unknown_card(self, service, subscriber):
        result = service.detach_payment_method(subscriber, "pm_missing")

        assert result.error_code == "PAYMENT_METHOD_NOT_FOUND"

    def test_user_without_customer(self, service):
        profile = BillingProfileFactory(stripe_customer_id=None)

        result = service.detach_payment_method(profile.user, "pm_card_visa")

        assert result.error_code == "PAYMENT_METHOD_NOT_FOUND"

    def test_subscription_lookup_failure(self, service, fake_adapter, subscriber, customer_id):
        fake_adapter.save_card(customer_id)
        SubscriptionFactory(subscriber=subscriber, status=SubscriptionStatus.ACTIVE)

        result = service.detach_payment_method(subscriber, "pm_card_visa")

        assert result.error_code == "PAYMENT_METHOD_DETACH_FAILED"
        assert fake_adapter.detached == []
