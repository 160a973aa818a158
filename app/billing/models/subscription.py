"""
Subscription model for subscriber → creator recurring payments.

A Subscription mirrors one Stripe Subscription. The row is normally inserted
by the subscription orchestrator right after the remote object is created;
when a lifecycle webhook wins the race, the reconciler inserts a placeholder
that the orchestrator later enriches.

Usage:
    from billing.models import Subscription
    from billing.state_machines import SubscriptionStatus

    subscription = Subscription.objects.create(
        subscriber=fan,
        creator=creator,
        stripe_subscription_id="sub_xxx",
        stripe_price_id="price_xxx",
        price_cents=500,
        currency="usd",
    )

    # State transitions using django-fsm
    subscription.activate()  # incomplete -> active
    subscription.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import RETURN_VALUE, FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import SubscriptionStatus

# Every status except the terminal one
OPEN_STATUSES = [
    SubscriptionStatus.INCOMPLETE,
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.PAST_DUE,
]


class SubscriptionQuerySet(models.QuerySet):
    def for_pair(self, subscriber, creator):
        return self.filter(subscriber=subscriber, creator=creator)

    def open(self):
        """
        Subscriptions that still hold the pair: incomplete, active or past due,
        with a billing period that has not ended.
        """
        now = timezone.now()
        return self.filter(status__in=OPEN_STATUSES).filter(
            models.Q(current_period_end__isnull=True)
            | models.Q(current_period_end__gt=now)
        )


class Subscription(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks a subscriber's recurring subscription to a creator.

    State Flow:
        INCOMPLETE -> ACTIVE (first payment confirmed)
        ACTIVE <-> PAST_DUE (payment failed / recovered)
        any open status -> CANCELED (terminal)

    Fields:
        subscriber: User paying for the subscription
        creator: User receiving the earnings
        stripe_subscription_id: Stripe Subscription ID (sub_xxx), unique
        stripe_price_id: Stripe Price ID (price_xxx)
        price_cents: Monthly price in smallest currency unit
        currency: ISO 4217 currency code
        status: Current FSM status
        current_period_start/end: Current billing period
        cancel_at_period_end: Subscriber asked to stop renewing
        canceled_at: When the subscription reached CANCELED
        last_event_at: Creation time of the newest Stripe event applied
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    subscriber = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="subscriptions",
        help_text="User paying for the subscription",
    )

    creator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="subscribers",
        help_text="Creator receiving the subscription earnings",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_subscription_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Stripe Subscription ID (sub_xxx)",
    )

    stripe_price_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe Price ID (price_xxx)",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    price_cents = models.PositiveIntegerField(
        help_text="Monthly price in smallest currency unit (e.g., cents)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=SubscriptionStatus.INCOMPLETE,
        choices=SubscriptionStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current status of the subscription (managed by FSM)",
    )

    current_period_start = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Start of current billing period",
    )

    current_period_end = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of current billing period",
    )

    # ==========================================================================
    # Cancellation
    # ==========================================================================

    cancel_at_period_end = models.BooleanField(
        default=False,
        help_text="Whether the subscription stops renewing at period end",
    )

    canceled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the subscription was canceled",
    )

    # ==========================================================================
    # Event Ordering
    # ==========================================================================

    last_event_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Creation time of the newest Stripe event applied to this row",
    )

    objects = SubscriptionQuerySet.as_manager()

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"
        indexes = [
            models.Index(fields=["subscriber", "creator", "status"], name="billing_sub_pair_status_idx"),
            models.Index(fields=["creator", "status"], name="billing_sub_creator_status_idx"),
            models.Index(fields=["status", "current_period_end"], name="billing_sub_status_period_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price_cents__gt=0),
                name="subscription_price_positive",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.price_cents / 100:.2f} {self.currency.upper()}"
        return f"Subscription({self.stripe_subscription_id}, {self.status}, {amount_display}/month)"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=SubscriptionStatus.INCOMPLETE,
        target=SubscriptionStatus.ACTIVE,
    )
    def activate(self):
        """
        Activate after the first confirmed payment.

        Transition: INCOMPLETE -> ACTIVE
        """

    @transition(
        field=status,
        source=SubscriptionStatus.ACTIVE,
        target=SubscriptionStatus.PAST_DUE,
    )
    def mark_past_due(self):
        """
        Mark past due after a renewal invoice payment failure.

        A failed first charge leaves the subscription INCOMPLETE.

        Transition: ACTIVE -> PAST_DUE
        """

    @transition(
        field=status,
        source=OPEN_STATUSES,
        target=SubscriptionStatus.CANCELED,
    )
    def cancel(self):
        """
        Cancel the subscription. CANCELED is terminal.

        Transition: INCOMPLETE/ACTIVE/PAST_DUE -> CANCELED
        """
        self.canceled_at = timezone.now()

    @transition(
        field=status,
        source=OPEN_STATUSES,
        target=RETURN_VALUE(*SubscriptionStatus.values),
    )
    def sync_status(self, target: str) -> str:
        """
        Adopt the status Stripe reports for this subscription.

        Used by the reconciler for created/updated events, which carry the
        authoritative remote status rather than a single transition.
        """
        if target == SubscriptionStatus.CANCELED:
            self.canceled_at = timezone.now()
        return target

    # ==========================================================================
    # Helper Properties
    # ==========================================================================

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    @property
    def is_canceled(self) -> bool:
        return self.status == SubscriptionStatus.CANCELED

    @property
    def is_incomplete(self) -> bool:
        return self.status == SubscriptionStatus.INCOMPLETE
