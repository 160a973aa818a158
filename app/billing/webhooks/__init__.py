"""
Stripe webhook processing.

Modules:
    signature: Authenticate the raw body against Stripe-Signature
    idempotency: Claim each event id exactly once
    events: Handled event types and handler outcomes
    router: Handler registry and dispatch
    handlers: One handler per event type
    pipeline: The full verify/claim/handle flow
    views: Django endpoint
"""
