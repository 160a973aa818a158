"""
Billing domain models.

- BillingProfile: Stripe customer identity, creator price/commission and balances
- Subscription: Subscriber → creator recurring subscription
- PaymentTransaction: One row per charge attempt (Stripe PaymentIntent)
- CreatorEarning: Ledger entry splitting a payment into commission and net
- WebhookEvent: Processed-event marker for idempotent webhook handling
"""

from billing.models.billing_profile import BillingProfile
from billing.models.creator_earning import CreatorEarning
from billing.models.payment_transaction import PaymentTransaction
from billing.models.subscription import Subscription
from billing.models.webhook_event import WebhookEvent

__all__ = [
    "BillingProfile",
    "CreatorEarning",
    "PaymentTransaction",
    "Subscription",
    "WebhookEvent",
]
