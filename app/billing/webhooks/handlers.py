"""
Webhook event handlers.

One handler per WebhookEventType. Handlers parse the event object, delegate
to the billing services and translate the result into a HandlerOutcome.
They are only called after the event was verified and claimed, inside the
pipeline's transaction.

Importing this module registers the handlers (BillingConfig.ready does so).
"""

from __future__ import annotations

import logging

from billing.adapters import (
    InvoiceResult,
    PaymentIntentResult,
    SetupIntentResult,
    SubscriptionResult,
)
from billing.models import Subscription, WebhookEvent
from billing.services import (
    EarningsService,
    PaymentMethodService,
    PaymentTransactionRecorder,
    SubscriptionReconciler,
)
from billing.webhooks.events import HandlerOutcome, WebhookEventType
from billing.webhooks.router import register_handler

logger = logging.getLogger(__name__)


def _reconcile_outcome(result) -> HandlerOutcome:
    if result.applied:
        return HandlerOutcome.applied()
    return HandlerOutcome.skipped(result.reason)


# =============================================================================
# Payment Intents
# =============================================================================


@register_handler(WebhookEventType.PAYMENT_INTENT_SUCCEEDED)
def handle_payment_intent_succeeded(webhook_event: WebhookEvent) -> HandlerOutcome:
    """
    Mark the charge succeeded and credit the creator.

    PaymentIntents we never recorded (charges outside subscriptions) are
    acknowledged and skipped.
    """
    intent = PaymentIntentResult.from_stripe(webhook_event.get_data_object())
    recorded = PaymentTransactionRecorder.mark_succeeded(intent.id)
    txn = recorded.transaction

    if txn is None:
        logger.info(
            "payment_intent.succeeded for untracked payment intent",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "payment_intent_id": intent.id,
            },
        )
        return HandlerOutcome.skipped("no tracked transaction")

    earning = EarningsService.record_for_transaction(
        txn, event_created=webhook_event.get_event_created()
    )
    if recorded.changed or (earning is not None and earning.applied):
        return HandlerOutcome.applied()
    return HandlerOutcome.skipped("already recorded")


# =============================================================================
# Invoices
# =============================================================================


@register_handler(WebhookEventType.INVOICE_PAYMENT_SUCCEEDED)
def handle_invoice_payment_succeeded(webhook_event: WebhookEvent) -> HandlerOutcome:
    """
    Record a (renewal) charge and credit the creator.

    A subscription we have not recorded yet is a retryable failure: the
    creation path or a lifecycle event will insert it shortly.
    """
    invoice = InvoiceResult.from_stripe(webhook_event.get_data_object())
    if not invoice.subscription_id:
        return HandlerOutcome.skipped("invoice is not for a subscription")
    if not invoice.payment_intent_id:
        return HandlerOutcome.skipped("invoice has no payment intent")

    subscription = Subscription.objects.filter(
        stripe_subscription_id=invoice.subscription_id
    ).first()
    if subscription is None:
        logger.warning(
            "invoice.payment_succeeded for unknown subscription",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "stripe_subscription_id": invoice.subscription_id,
            },
        )
        return HandlerOutcome.retryable_failure("subscription not recorded yet")

    PaymentTransactionRecorder.record_invoice_charge(subscription, invoice)
    recorded = PaymentTransactionRecorder.mark_succeeded(invoice.payment_intent_id)

    earning = EarningsService.record_for_transaction(
        recorded.transaction, event_created=webhook_event.get_event_created()
    )
    if recorded.changed or (earning is not None and earning.applied):
        return HandlerOutcome.applied()
    return HandlerOutcome.skipped("already recorded")


@register_handler(WebhookEventType.INVOICE_PAYMENT_FAILED)
def handle_invoice_payment_failed(webhook_event: WebhookEvent) -> HandlerOutcome:
    """Move the subscription to past due and record the failed charge."""
    invoice = InvoiceResult.from_stripe(webhook_event.get_data_object())
    if not invoice.subscription_id:
        return HandlerOutcome.skipped("invoice is not for a subscription")

    subscription = Subscription.objects.filter(
        stripe_subscription_id=invoice.subscription_id
    ).first()
    if subscription is None:
        logger.warning(
            "invoice.payment_failed for unknown subscription",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "stripe_subscription_id": invoice.subscription_id,
            },
        )
        return HandlerOutcome.retryable_failure("subscription not recorded yet")

    result = SubscriptionReconciler.mark_past_due(
        subscription, event_created=webhook_event.get_event_created()
    )

    if invoice.payment_intent_id:
        PaymentTransactionRecorder.record_invoice_charge(subscription, invoice)
        PaymentTransactionRecorder.mark_failed(
            invoice.payment_intent_id,
            invoice.failure_message or "Invoice payment failed",
        )
    return _reconcile_outcome(result)


# =============================================================================
# Subscription Lifecycle
# =============================================================================


@register_handler(WebhookEventType.SUBSCRIPTION_CREATED)
def handle_subscription_created(webhook_event: WebhookEvent) -> HandlerOutcome:
    remote = SubscriptionResult.from_stripe(webhook_event.get_data_object())
    result = SubscriptionReconciler.apply_remote_state(
        remote, event_created=webhook_event.get_event_created()
    )
    return _reconcile_outcome(result)


@register_handler(WebhookEventType.SUBSCRIPTION_UPDATED)
def handle_subscription_updated(webhook_event: WebhookEvent) -> HandlerOutcome:
    remote = SubscriptionResult.from_stripe(webhook_event.get_data_object())
    result = SubscriptionReconciler.apply_remote_state(
        remote, event_created=webhook_event.get_event_created()
    )
    return _reconcile_outcome(result)


@register_handler(WebhookEventType.SUBSCRIPTION_DELETED)
def handle_subscription_deleted(webhook_event: WebhookEvent) -> HandlerOutcome:
    remote = SubscriptionResult.from_stripe(webhook_event.get_data_object())
    result = SubscriptionReconciler.mark_canceled(
        remote, event_created=webhook_event.get_event_created()
    )
    return _reconcile_outcome(result)


# =============================================================================
# Payment Methods
# =============================================================================


@register_handler(WebhookEventType.SETUP_INTENT_SUCCEEDED)
def handle_setup_intent_succeeded(webhook_event: WebhookEvent) -> HandlerOutcome:
    setup_intent = SetupIntentResult.from_stripe(webhook_event.get_data_object())
    if PaymentMethodService.record_default_payment_method(setup_intent):
        return HandlerOutcome.applied()
    return HandlerOutcome.skipped("no billing profile for customer")
