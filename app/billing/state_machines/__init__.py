"""
State machine enums for billing models.

This module defines the state enums used by billing models with django-fsm.
"""

from billing.state_machines.states import (
    EarningStatus,
    PaymentTransactionStatus,
    PaymentTransactionType,
    SubscriptionStatus,
    WebhookEventStatus,
)

__all__ = [
    "EarningStatus",
    "PaymentTransactionStatus",
    "PaymentTransactionType",
    "SubscriptionStatus",
    "WebhookEventStatus",
]
