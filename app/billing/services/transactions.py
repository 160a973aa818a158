"""
Payment transaction recorder.

Records one PaymentTransaction per Stripe PaymentIntent and moves it to its
terminal status as payment events arrive. Every operation is idempotent:
re-applying the status a transaction already has changes nothing.

Usage:
    from billing.services.transactions import PaymentTransactionRecorder

    result = PaymentTransactionRecorder.mark_succeeded("pi_xxx")
    if result.transaction is None:
        ...  # not a charge we track
"""

from __future__ import annotations

from dataclasses import dataclass

from django.db import transaction

from core.services import BaseService

from billing.adapters import InvoiceResult, PaymentIntentResult
from billing.models import PaymentTransaction, Subscription
from billing.state_machines import PaymentTransactionStatus, PaymentTransactionType


@dataclass
class RecordResult:
    transaction: PaymentTransaction | None
    changed: bool = False


class PaymentTransactionRecorder(BaseService):
    """Creates PaymentTransaction rows and applies their outcomes."""

    # Invoice billing reasons that belong to the first charge of a subscription
    INITIAL_BILLING_REASONS = ("subscription_create", "subscription")

    # =========================================================================
    # Recording
    # =========================================================================

    @classmethod
    def record_initial_charge(
        cls,
        subscription: Subscription,
        intent: PaymentIntentResult,
        invoice_id: str | None = None,
    ) -> PaymentTransaction:
        """Record the first charge of a subscription (pending until confirmed)."""
        txn, created = PaymentTransaction.objects.get_or_create(
            stripe_payment_intent_id=intent.id,
            defaults={
                "stripe_invoice_id": invoice_id or intent.invoice_id,
                "subscription": subscription,
                "payer_id": subscription.subscriber_id,
                "recipient_id": subscription.creator_id,
                "amount_cents": intent.amount_cents or subscription.price_cents,
                "currency": (intent.currency or subscription.currency).lower(),
                "transaction_type": PaymentTransactionType.SUBSCRIPTION,
                "description": f"Subscription to creator {subscription.creator_id}",
            },
        )
        if created:
            cls.get_logger().info(
                "Recorded initial subscription charge",
                extra={
                    "payment_intent_id": intent.id,
                    "stripe_subscription_id": subscription.stripe_subscription_id,
                    "amount_cents": txn.amount_cents,
                },
            )
        return txn

    @classmethod
    def record_invoice_charge(
        cls,
        subscription: Subscription,
        invoice: InvoiceResult,
    ) -> PaymentTransaction:
        """
        Record the charge behind an invoice event, if not recorded yet.

        Raises:
            ValueError: The invoice carries no PaymentIntent
        """
        if not invoice.payment_intent_id:
            raise ValueError("invoice has no payment intent")

        if invoice.billing_reason in cls.INITIAL_BILLING_REASONS:
            transaction_type = PaymentTransactionType.SUBSCRIPTION
        else:
            transaction_type = PaymentTransactionType.RENEWAL

        amount_cents = invoice.amount_paid_cents or invoice.amount_due_cents or subscription.price_cents
        txn, created = PaymentTransaction.objects.get_or_create(
            stripe_payment_intent_id=invoice.payment_intent_id,
            defaults={
                "stripe_invoice_id": invoice.id,
                "subscription": subscription,
                "payer_id": subscription.subscriber_id,
                "recipient_id": subscription.creator_id,
                "amount_cents": amount_cents,
                "currency": (invoice.currency or subscription.currency).lower(),
                "transaction_type": transaction_type,
                "description": f"Subscription to creator {subscription.creator_id}",
            },
        )
        if created:
            cls.get_logger().info(
                "Recorded invoice charge",
                extra={
                    "payment_intent_id": invoice.payment_intent_id,
                    "invoice_id": invoice.id,
                    "transaction_type": transaction_type,
                },
            )
        return txn

    # =========================================================================
    # Outcomes
    # =========================================================================

    @classmethod
    def mark_succeeded(cls, payment_intent_id: str) -> RecordResult:
        """
        Mark the transaction for a PaymentIntent as succeeded.

        Returns a RecordResult whose transaction is None when the
        PaymentIntent is not one we track.
        """
        with transaction.atomic():
            txn = (
                PaymentTransaction.objects.select_for_update()
                .filter(stripe_payment_intent_id=payment_intent_id)
                .first()
            )
            if txn is None:
                return RecordResult(transaction=None)
            if txn.status == PaymentTransactionStatus.SUCCEEDED:
                return RecordResult(transaction=txn)

            txn.mark_succeeded()
            txn.save(update_fields=["status", "failure_reason", "updated_at"])

        cls.get_logger().info(
            "Payment transaction succeeded",
            extra={"payment_intent_id": payment_intent_id},
        )
        return RecordResult(transaction=txn, changed=True)

    @classmethod
    def mark_failed(cls, payment_intent_id: str, reason: str | None = None) -> RecordResult:
        """
        Mark the transaction for a PaymentIntent as failed.

        A transaction that already succeeded stays succeeded.
        """
        with transaction.atomic():
            txn = (
                PaymentTransaction.objects.select_for_update()
                .filter(stripe_payment_intent_id=payment_intent_id)
                .first()
            )
            if txn is None:
                return RecordResult(transaction=None)
            if txn.status != PaymentTransactionStatus.PENDING:
                return RecordResult(transaction=txn)

            txn.mark_failed(reason)
            txn.save(update_fields=["status", "failure_reason", "updated_at"])

        cls.get_logger().warning(
            "Payment transaction failed",
            extra={"payment_intent_id": payment_intent_id, "reason": reason},
        )
        return RecordResult(transaction=txn, changed=True)
