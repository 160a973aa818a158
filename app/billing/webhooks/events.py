"""
Event types and handler outcomes for the Stripe webhook pipeline.

WebhookEventType is the closed set of event types the billing domain reacts
to. Anything else Stripe sends is acknowledged and ignored.

Every handler returns a HandlerOutcome:
    applied            - state changed (or was already in the target state)
    skipped(reason)    - nothing to do; the event is still acknowledged
    retryable_failure  - a precondition is missing; Stripe should redeliver
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from django.db import models


class WebhookEventType(models.TextChoices):
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded", "Payment intent succeeded"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded", "Invoice payment succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed", "Invoice payment failed"
    SUBSCRIPTION_CREATED = "customer.subscription.created", "Subscription created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated", "Subscription updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted", "Subscription deleted"
    SETUP_INTENT_SUCCEEDED = "setup_intent.succeeded", "Setup intent succeeded"

    @classmethod
    def parse(cls, value: str | None) -> WebhookEventType | None:
        """Return the member for a raw Stripe type string, or None if unhandled."""
        if value in cls.values:
            return cls(value)
        return None


class OutcomeKind(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    RETRYABLE_FAILURE = "retryable_failure"


@dataclass(frozen=True)
class HandlerOutcome:
    kind: OutcomeKind
    reason: str | None = None

    @classmethod
    def applied(cls, reason: str | None = None) -> HandlerOutcome:
        return cls(OutcomeKind.APPLIED, reason)

    @classmethod
    def skipped(cls, reason: str) -> HandlerOutcome:
        return cls(OutcomeKind.SKIPPED, reason)

    @classmethod
    def retryable_failure(cls, reason: str) -> HandlerOutcome:
        return cls(OutcomeKind.RETRYABLE_FAILURE, reason)

    @property
    def is_retryable(self) -> bool:
        return self.kind == OutcomeKind.RETRYABLE_FAILURE
