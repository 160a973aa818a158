"""
State enums for billing models.

Django TextChoices used by the FSM fields and for admin integration.

State Machines Overview:

Subscription Status:
    incomplete → active (first payment confirmed)
    active ↔ past_due (invoice payment failed / recovered remotely)
    incomplete/active/past_due → canceled (terminal)

PaymentTransaction Status:
    pending → succeeded
    pending → failed → succeeded (Stripe retried the same PaymentIntent)

CreatorEarning Status:
    pending → available (hold period elapsed) → paid (withdrawn)
"""

from django.db import models


class SubscriptionStatus(models.TextChoices):
    """
    Lifecycle of a creator subscription.

    CANCELED is terminal: no event re-opens a canceled subscription.
    """

    INCOMPLETE = "incomplete", "Incomplete"
    ACTIVE = "active", "Active"
    PAST_DUE = "past_due", "Past Due"
    CANCELED = "canceled", "Canceled"


class PaymentTransactionStatus(models.TextChoices):
    """Outcome of a single charge attempt."""

    PENDING = "pending", "Pending"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"


class PaymentTransactionType(models.TextChoices):
    """
    What a charge attempt was for.

    - SUBSCRIPTION: first charge, recorded when the subscription is created
    - RENEWAL: recurring invoice charge, recorded from invoice webhooks
    """

    SUBSCRIPTION = "subscription", "Subscription"
    RENEWAL = "renewal", "Renewal"


class EarningStatus(models.TextChoices):
    """
    Availability of a creator earning.

    State Flow:
        PENDING → AVAILABLE → PAID
    """

    PENDING = "pending", "Pending"
    AVAILABLE = "available", "Available"
    PAID = "paid", "Paid"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    State Flow:
        PROCESSING → PROCESSED
        PROCESSING → FAILED → PROCESSING (redelivery)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


__all__ = [
    "SubscriptionStatus",
    "PaymentTransactionStatus",
    "PaymentTransactionType",
    "EarningStatus",
    "WebhookEventStatus",
]
