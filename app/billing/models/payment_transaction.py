"""
PaymentTransaction model recording individual charge attempts.

One row per Stripe PaymentIntent. The first charge of a subscription is
recorded by the orchestrator; renewal charges are recorded the first time an
invoice webhook mentions their PaymentIntent.

Usage:
    from billing.models import PaymentTransaction

    txn = PaymentTransaction.objects.get(stripe_payment_intent_id="pi_xxx")
    txn.mark_succeeded()
    txn.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import PaymentTransactionStatus, PaymentTransactionType


class PaymentTransaction(UUIDPrimaryKeyMixin, BaseModel):
    """
    A single charge attempt against a subscriber's payment method.

    State Flow:
        PENDING -> SUCCEEDED
        PENDING -> FAILED
        FAILED -> SUCCEEDED (Stripe retried the same PaymentIntent successfully)

    Re-applying a terminal status is a no-op handled by the recorder; the
    FSM only describes real changes.
    """

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_payment_intent_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe PaymentIntent ID (pi_xxx) - unique per charge attempt",
    )

    stripe_invoice_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe Invoice ID (in_xxx) the charge belongs to",
    )

    # ==========================================================================
    # Relationships
    # ==========================================================================

    subscription = models.ForeignKey(
        "billing.Subscription",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
        help_text="Subscription the charge belongs to (null for direct charges)",
    )

    payer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payments_made",
        help_text="User who was charged",
    )

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payments_received",
        help_text="Creator the charge is for",
    )

    # ==========================================================================
    # Amount & Description
    # ==========================================================================

    amount_cents = models.PositiveIntegerField(
        help_text="Charged amount in smallest currency unit",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    transaction_type = models.CharField(
        max_length=20,
        choices=PaymentTransactionType.choices,
        default=PaymentTransactionType.SUBSCRIPTION,
        help_text="What the charge was for",
    )

    description = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Human readable description",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentTransactionStatus.PENDING,
        choices=PaymentTransactionStatus.choices,
        db_index=True,
        protected=True,
        help_text="Outcome of the charge attempt (managed by FSM)",
    )

    failure_reason = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Why the charge failed, as reported by Stripe",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Transaction"
        verbose_name_plural = "Payment Transactions"
        indexes = [
            models.Index(fields=["subscription", "status"], name="billing_txn_sub_status_idx"),
            models.Index(fields=["payer", "created_at"], name="billing_txn_payer_created_idx"),
        ]

    def __str__(self) -> str:
        return f"PaymentTransaction({self.stripe_payment_intent_id}, {self.status})"

    @transition(
        field=status,
        source=[PaymentTransactionStatus.PENDING, PaymentTransactionStatus.FAILED],
        target=PaymentTransactionStatus.SUCCEEDED,
    )
    def mark_succeeded(self):
        self.failure_reason = None

    @transition(
        field=status,
        source=PaymentTransactionStatus.PENDING,
        target=PaymentTransactionStatus.FAILED,
    )
    def mark_failed(self, reason: str | None = None):
        self.failure_reason = (reason or "")[:255] or None

    @property
    def is_terminal(self) -> bool:
        return self.status != PaymentTransactionStatus.PENDING
