"""
External service adapters for billing.

The Stripe adapter is the only code that talks to the Stripe API. The
result dataclasses double as parsers for webhook payloads so both paths
read Stripe objects the same way.
"""

from billing.adapters.stripe_adapter import (
    CreatePriceParams,
    CreateRemoteSubscriptionParams,
    IdempotencyKeyGenerator,
    InvoiceResult,
    PaymentIntentResult,
    PaymentMethodResult,
    PriceResult,
    SetupIntentResult,
    StripeAdapter,
    SubscriptionResult,
)

__all__ = [
    "CreatePriceParams",
    "CreateRemoteSubscriptionParams",
    "IdempotencyKeyGenerator",
    "InvoiceResult",
    "PaymentIntentResult",
    "PaymentMethodResult",
    "PriceResult",
    "SetupIntentResult",
    "StripeAdapter",
    "SubscriptionResult",
]
