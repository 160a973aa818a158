"""
Tests for webhook event handlers.

Handlers are called directly with a claimed WebhookEvent; signature checks
and idempotency are covered by the pipeline tests.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from billing.models import BillingProfile, CreatorEarning, PaymentTransaction, Subscription
from billing.state_machines import (
    PaymentTransactionStatus,
    PaymentTransactionType,
    SubscriptionStatus,
)
from billing.tests.factories import (
    BillingProfileFactory,
    CreatorProfileFactory,
    PaymentTransactionFactory,
    SubscriptionFactory,
    UserFactory,
)
from billing.tests.stripe_fakes import (
    event,
    invoice_object,
    payment_intent_object,
    setup_intent_object,
    subscription_object,
)
from billing.webhooks.events import OutcomeKind
from billing.webhooks.handlers import (
    handle_invoice_payment_failed,
    handle_invoice_payment_succeeded,
    handle_payment_intent_succeeded,
    handle_setup_intent_succeeded,
    handle_subscription_created,
    handle_subscription_deleted,
    handle_subscription_updated,
)


# =============================================================================
# payment_intent.succeeded
# =============================================================================


@pytest.mark.django_db
class TestPaymentIntentSucceeded:
    @pytest.fixture
    def pending_charge(self):
        subscription = SubscriptionFactory(creator=CreatorProfileFactory().user)
        return PaymentTransactionFactory(subscription=subscription)

    def test_marks_succeeded_credits_creator_and_activates(self, claimed_event, pending_charge):
        pi = payment_intent_object(pending_charge.stripe_payment_intent_id)

        outcome = handle_payment_intent_succeeded(
            claimed_event(event("payment_intent.succeeded", pi))
        )

        assert outcome.kind == OutcomeKind.APPLIED
        txn = PaymentTransaction.objects.get(pk=pending_charge.pk)
        assert txn.status == PaymentTransactionStatus.SUCCEEDED
        earning = CreatorEarning.objects.get(payment_intent_id=txn.stripe_payment_intent_id)
        assert (earning.commission_cents, earning.net_amount_cents) == (600, 1399)
        subscription = Subscription.objects.get(pk=pending_charge.subscription_id)
        assert subscription.status == SubscriptionStatus.ACTIVE

    def test_second_event_for_same_payment_is_skipped(self, claimed_event, pending_charge):
        pi = payment_intent_object(pending_charge.stripe_payment_intent_id)
        handle_payment_intent_succeeded(claimed_event(event("payment_intent.succeeded", pi)))

        outcome = handle_payment_intent_succeeded(
            claimed_event(event("payment_intent.succeeded", pi))
        )

        assert outcome.kind == OutcomeKind.SKIPPED
        assert outcome.reason == "already recorded"
        assert CreatorEarning.objects.count() == 1

    def test_untracked_payment_intent(self, claimed_event):
        outcome = handle_payment_intent_succeeded(
            claimed_event(event("payment_intent.succeeded", payment_intent_object("pi_other")))
        )

        assert outcome.kind == OutcomeKind.SKIPPED
        assert not CreatorEarning.objects.exists()


# =============================================================================
# invoice.payment_succeeded
# =============================================================================


@pytest.mark.django_db
class TestInvoicePaymentSucceeded:
    def test_renewal_is_recorded_and_credited(self, claimed_event, active_subscription):
        invoice = invoice_object("in_renewal", active_subscription.stripe_subscription_id, "pi_renewal")

        outcome = handle_invoice_payment_succeeded(
            claimed_event(event("invoice.payment_succeeded", invoice))
        )

        assert outcome.kind == OutcomeKind.APPLIED
        txn = PaymentTransaction.objects.get(stripe_payment_intent_id="pi_renewal")
        assert txn.transaction_type == PaymentTransactionType.RENEWAL
        assert txn.status == PaymentTransactionStatus.SUCCEEDED
        assert txn.stripe_invoice_id == "in_renewal"
        assert CreatorEarning.objects.get(payment_intent_id="pi_renewal").net_amount_cents == 1399
        profile = BillingProfile.objects.get(user=active_subscription.creator)
        assert profile.pending_balance_cents == 1399

    def test_first_invoice_after_payment_intent_event(self, claimed_event, active_subscription):
        txn = PaymentTransactionFactory(subscription=active_subscription)
        pi = payment_intent_object(txn.stripe_payment_intent_id)
        handle_payment_intent_succeeded(claimed_event(event("payment_intent.succeeded", pi)))
        invoice = invoice_object(
            "in_first",
            active_subscription.stripe_subscription_id,
            txn.stripe_payment_intent_id,
            billing_reason="subscription_create",
        )

        outcome = handle_invoice_payment_succeeded(
            claimed_event(event("invoice.payment_succeeded", invoice))
        )

        assert outcome.kind == OutcomeKind.SKIPPED
        assert CreatorEarning.objects.filter(subscription=active_subscription).count() == 1
        assert PaymentTransaction.objects.filter(subscription=active_subscription).count() == 1

    def test_unknown_subscription_is_retryable(self, claimed_event):
        invoice = invoice_object("in_early", "sub_not_yet_recorded", "pi_early")

        outcome = handle_invoice_payment_succeeded(
            claimed_event(event("invoice.payment_succeeded", invoice))
        )

        assert outcome.is_retryable
        assert not PaymentTransaction.objects.exists()

    @pytest.mark.parametrize(
        "subscription_id,payment_intent_id",
        [(None, "pi_one_off"), ("sub_x", None)],
    )
    def test_non_subscription_invoices_are_skipped(
        self, claimed_event, subscription_id, payment_intent_id
    ):
        invoice = invoice_object("in_other", subscription_id, payment_intent_id)

        outcome = handle_invoice_payment_succeeded(
            claimed_event(event("invoice.payment_succeeded", invoice))
        )

        assert outcome.kind == OutcomeKind.SKIPPED


# =============================================================================
# invoice.payment_failed
# =============================================================================


@pytest.mark.django_db
class TestInvoicePaymentFailed:
    def test_marks_past_due_and_records_failed_charge(self, claimed_event, active_subscription):
        invoice = invoice_object(
            "in_failed", active_subscription.stripe_subscription_id, "pi_failed", amount_paid=0
        )

        outcome = handle_invoice_payment_failed(
            claimed_event(event("invoice.payment_failed", invoice))
        )

        assert outcome.kind == OutcomeKind.APPLIED
        subscription = Subscription.objects.get(pk=active_subscription.pk)
        assert subscription.status == SubscriptionStatus.PAST_DUE
        txn = PaymentTransaction.objects.get(stripe_payment_intent_id="pi_failed")
        assert txn.status == PaymentTransactionStatus.FAILED
        assert txn.failure_reason == "Invoice payment failed"
        assert not CreatorEarning.objects.exists()

    def test_without_payment_intent(self, claimed_event, active_subscription):
        invoice = invoice_object("in_failed", active_subscription.stripe_subscription_id, None)

        outcome = handle_invoice_payment_failed(
            claimed_event(event("invoice.payment_failed", invoice))
        )

        assert outcome.kind == OutcomeKind.APPLIED
        assert not PaymentTransaction.objects.exists()

    def test_canceled_subscription_is_not_reopened(self, claimed_event):
        subscription = SubscriptionFactory(status=SubscriptionStatus.CANCELED)
        invoice = invoice_object("in_late", subscription.stripe_subscription_id, None)

        outcome = handle_invoice_payment_failed(
            claimed_event(event("invoice.payment_failed", invoice))
        )

        assert outcome.kind == OutcomeKind.SKIPPED
        assert Subscription.objects.get(pk=subscription.pk).is_canceled

    def test_failed_first_invoice_leaves_subscription_incomplete(self, claimed_event):
        subscription = SubscriptionFactory(status=SubscriptionStatus.INCOMPLETE)
        invoice = invoice_object(
            "in_first",
            subscription.stripe_subscription_id,
            "pi_first",
            amount_paid=0,
            billing_reason="subscription_create",
        )

        outcome = handle_invoice_payment_failed(
            claimed_event(event("invoice.payment_failed", invoice))
        )

        assert outcome.kind == OutcomeKind.SKIPPED
        assert Subscription.objects.get(pk=subscription.pk).is_incomplete
        txn = PaymentTransaction.objects.get(stripe_payment_intent_id="pi_first")
        assert txn.status == PaymentTransactionStatus.FAILED

    def test_unknown_subscription_is_retryable(self, claimed_event):
        invoice = invoice_object("in_early", "sub_not_yet_recorded", "pi_early")

        outcome = handle_invoice_payment_failed(
            claimed_event(event("invoice.payment_failed", invoice))
        )

        assert outcome.is_retryable


# =============================================================================
# customer.subscription.*
# =============================================================================


@pytest.mark.django_db
class TestSubscriptionLifecycle:
    def test_updated_applies_remote_status(self, claimed_event):
        subscription = SubscriptionFactory(status=SubscriptionStatus.PAST_DUE)
        remote = subscription_object(
            subscription.stripe_subscription_id,
            status="active",
            period_end=timezone.now() + timedelta(days=30),
        )

        outcome = handle_subscription_updated(
            claimed_event(event("customer.subscription.updated", remote))
        )

        assert outcome.kind == OutcomeKind.APPLIED
        subscription = Subscription.objects.get(pk=subscription.pk)
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.last_event_at is not None

    def test_out_of_order_update_is_skipped(self, claimed_event):
        now = timezone.now()
        subscription = SubscriptionFactory(status=SubscriptionStatus.PAST_DUE, last_event_at=now)
        remote = subscription_object(subscription.stripe_subscription_id, status="active")

        outcome = handle_subscription_updated(
            claimed_event(
                event("customer.subscription.updated", remote, created=now - timedelta(minutes=1))
            )
        )

        assert outcome.kind == OutcomeKind.SKIPPED
        assert outcome.reason == "stale event"

    def test_created_for_unknown_subscription_inserts_placeholder(self, claimed_event):
        subscriber, creator = UserFactory(), UserFactory()
        remote = subscription_object(
            "sub_from_webhook",
            status="incomplete",
            metadata={"subscriber_id": str(subscriber.pk), "creator_id": str(creator.pk)},
        )

        outcome = handle_subscription_created(
            claimed_event(event("customer.subscription.created", remote))
        )

        assert outcome.kind == OutcomeKind.APPLIED
        assert Subscription.objects.filter(stripe_subscription_id="sub_from_webhook").exists()

    def test_deleted_cancels(self, claimed_event, active_subscription):
        remote = subscription_object(active_subscription.stripe_subscription_id, status="canceled")

        outcome = handle_subscription_deleted(
            claimed_event(event("customer.subscription.deleted", remote))
        )

        assert outcome.kind == OutcomeKind.APPLIED
        assert Subscription.objects.get(pk=active_subscription.pk).is_canceled

    def test_update_after_delete_is_skipped(self, claimed_event, active_subscription):
        sub_id = active_subscription.stripe_subscription_id
        handle_subscription_deleted(
            claimed_event(
                event("customer.subscription.deleted", subscription_object(sub_id, status="canceled"))
            )
        )

        outcome = handle_subscription_updated(
            claimed_event(
                event("customer.subscription.updated", subscription_object(sub_id, status="active"))
            )
        )

        assert outcome.kind == OutcomeKind.SKIPPED
        assert Subscription.objects.get(pk=active_subscription.pk).is_canceled


# =============================================================================
# setup_intent.succeeded
# =============================================================================


@pytest.mark.django_db
class TestSetupIntentSucceeded:
    def test_stores_default_payment_method(self, claimed_event):
        profile = BillingProfileFactory()

        outcome = handle_setup_intent_succeeded(
            claimed_event(
                event(
                    "setup_intent.succeeded",
                    setup_intent_object("seti_1", profile.stripe_customer_id, "pm_saved"),
                )
            )
        )

        assert outcome.kind == OutcomeKind.APPLIED
        assert BillingProfile.objects.get(pk=profile.pk).default_payment_method_id == "pm_saved"

    def test_unknown_customer(self, claimed_event):
        outcome = handle_setup_intent_succeeded(
            claimed_event(event("setup_intent.succeeded", setup_intent_object("seti_2", "cus_nobody")))
        )

        assert outcome.kind == OutcomeKind.SKIPPED
