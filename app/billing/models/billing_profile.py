"""
BillingProfile model holding a user's billing identity and creator balances.

A user gets a BillingProfile as soon as they take part in billing, either as
a subscriber (Stripe customer, default payment method) or as a creator
(subscription price, commission rate, balances).

Usage:
    from billing.models import BillingProfile

    profile, _ = BillingProfile.objects.get_or_create(user=user)
    profile.accepts_paid_subscriptions  # price > 0

Balances:
    pending_balance_cents: credited by the earnings ledger
    available_balance_cents: moved from pending once the hold period elapses
    total_earned_cents: lifetime net earnings (never decreases)

The withdrawal subsystem reads the balances; it is not implemented here.
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


def default_commission_rate() -> Decimal:
    """Platform-wide commission rate used for profiles without their own."""
    return Decimal(settings.PLATFORM_COMMISSION_RATE)


class BillingProfile(UUIDPrimaryKeyMixin, BaseModel):
    """
    Billing identity of a user.

    Fields:
        user: Owning user (one profile per user)
        stripe_customer_id: Stripe Customer ID (cus_xxx) when the user pays
        default_payment_method_id: Last payment method confirmed via SetupIntent
        subscription_price_cents: Monthly price charged to subscribers (0 = free)
        subscription_currency: ISO 4217 currency code (lowercase)
        commission_rate: Platform commission percent applied to earnings
        pending_balance_cents / available_balance_cents / total_earned_cents:
            Creator balances fed by the earnings ledger
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="billing_profile",
        help_text="User this billing profile belongs to",
    )

    # ==========================================================================
    # Subscriber Side
    # ==========================================================================

    stripe_customer_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Stripe Customer ID (cus_xxx)",
    )

    default_payment_method_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe PaymentMethod ID (pm_xxx) confirmed by the latest SetupIntent",
    )

    # ==========================================================================
    # Creator Side
    # ==========================================================================

    subscription_price_cents = models.PositiveIntegerField(
        default=0,
        help_text="Monthly subscription price in smallest currency unit (0 = not offered)",
    )

    subscription_currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    commission_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=default_commission_rate,
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))],
        help_text="Platform commission percent deducted from each payment",
    )

    # ==========================================================================
    # Balances
    # ==========================================================================

    pending_balance_cents = models.BigIntegerField(
        default=0,
        help_text="Earnings still inside the hold period",
    )

    available_balance_cents = models.BigIntegerField(
        default=0,
        help_text="Earnings ready for withdrawal",
    )

    total_earned_cents = models.BigIntegerField(
        default=0,
        help_text="Lifetime net earnings",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Billing Profile"
        verbose_name_plural = "Billing Profiles"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(commission_rate__gte=0)
                & models.Q(commission_rate__lte=100),
                name="billing_profile_commission_rate_range",
            ),
            models.CheckConstraint(
                condition=models.Q(pending_balance_cents__gte=0)
                & models.Q(available_balance_cents__gte=0),
                name="billing_profile_balances_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"BillingProfile({self.user_id})"

    @property
    def accepts_paid_subscriptions(self) -> bool:
        """A creator accepts paid subscriptions once a positive price is set."""
        return self.subscription_price_cents > 0

    @property
    def has_payment_customer(self) -> bool:
        return bool(self.stripe_customer_id)
