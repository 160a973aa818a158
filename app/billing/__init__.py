"""
Creator subscription billing.

Subscribers pay creators a monthly price through Stripe. This app creates
the subscriptions, keeps them converged with Stripe through webhooks, and
keeps the creator earnings ledger.
"""
