"""
Billing app configuration.

This app provides creator subscription billing:
- Subscription creation against Stripe with compensation
- Stripe webhook processing (signature, idempotency, reconciliation)
- Payment transaction records
- Creator earnings ledger and balances
"""

from django.apps import AppConfig


class BillingConfig(AppConfig):
    """Configuration for the billing application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "billing"
    verbose_name = "Billing"

    def ready(self):
        # Registers the webhook handlers
        from billing.webhooks import handlers  # noqa: F401
        from billing.webhooks.router import verify_registry

        verify_registry()
