"""
CreatorEarning ledger entries.

Each successfully processed PaymentIntent yields exactly one CreatorEarning,
splitting the gross charge into platform commission and creator net. The
unique payment_intent_id column is the ledger's idempotency key.

Only billing.services.earnings.EarningsService creates rows.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import EarningStatus


class CreatorEarning(UUIDPrimaryKeyMixin, BaseModel):
    """
    One creator earning per successful subscription payment.

    State Flow:
        PENDING -> AVAILABLE (hold period elapsed)
        AVAILABLE -> PAID (withdrawn by the payout subsystem)

    Invariant:
        gross_amount_cents == commission_cents + net_amount_cents
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    creator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="earnings",
        help_text="Creator credited with this earning",
    )

    subscription = models.ForeignKey(
        "billing.Subscription",
        on_delete=models.PROTECT,
        related_name="earnings",
        help_text="Subscription that produced the payment",
    )

    # ==========================================================================
    # Idempotency
    # ==========================================================================

    payment_intent_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe PaymentIntent ID - at most one earning per payment",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    gross_amount_cents = models.PositiveIntegerField(
        help_text="Amount charged to the subscriber",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    commission_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        help_text="Commission percent applied when the earning was recorded",
    )

    commission_cents = models.PositiveIntegerField(
        help_text="Platform share of the gross amount",
    )

    net_amount_cents = models.PositiveIntegerField(
        help_text="Creator share of the gross amount",
    )

    payment_date = models.DateTimeField(
        default=timezone.now,
        help_text="When the payment was confirmed",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=EarningStatus.PENDING,
        choices=EarningStatus.choices,
        db_index=True,
        protected=True,
        help_text="Availability of the earning (managed by FSM)",
    )

    available_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the earning became available for withdrawal",
    )

    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the earning was paid out",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-payment_date"]
        verbose_name = "Creator Earning"
        verbose_name_plural = "Creator Earnings"
        indexes = [
            models.Index(fields=["creator", "status"], name="billing_ern_creator_status_idx"),
            models.Index(fields=["status", "payment_date"], name="billing_ern_status_date_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(
                    gross_amount_cents=models.F("commission_cents")
                    + models.F("net_amount_cents")
                ),
                name="creator_earning_split_balances",
            ),
        ]

    def __str__(self) -> str:
        return f"CreatorEarning({self.payment_intent_id}, net={self.net_amount_cents})"

    @transition(
        field=status,
        source=EarningStatus.PENDING,
        target=EarningStatus.AVAILABLE,
    )
    def make_available(self):
        self.available_at = timezone.now()

    @transition(
        field=status,
        source=EarningStatus.AVAILABLE,
        target=EarningStatus.PAID,
    )
    def mark_paid(self):
        self.paid_at = timezone.now()
