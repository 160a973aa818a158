"""
Billing admin configuration.

Read-mostly views for support staff. Status fields are managed by the state
machines and the webhook pipeline, so they are never editable here.
"""

from django.contrib import admin

from billing.models import (
    BillingProfile,
    CreatorEarning,
    PaymentTransaction,
    Subscription,
    WebhookEvent,
)


@admin.register(BillingProfile)
class BillingProfileAdmin(admin.ModelAdmin):
    list_display = [
        "user",
        "stripe_customer_id",
        "subscription_price_cents",
        "subscription_currency",
        "commission_rate",
        "pending_balance_cents",
        "available_balance_cents",
    ]
    search_fields = ["user__username", "user__email", "stripe_customer_id"]
    readonly_fields = [
        "id",
        "stripe_customer_id",
        "default_payment_method_id",
        "pending_balance_cents",
        "available_balance_cents",
        "total_earned_cents",
        "created_at",
        "updated_at",
    ]


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """
    Admin configuration for Subscription.

    Provides visibility into subscription state as mirrored from Stripe.
    """

    list_display = [
        "id",
        "subscriber",
        "creator",
        "stripe_subscription_id",
        "status",
        "price_cents",
        "current_period_end",
        "cancel_at_period_end",
    ]
    list_filter = ["status", "cancel_at_period_end", "currency"]
    search_fields = ["id", "stripe_subscription_id", "subscriber__email", "creator__email"]
    readonly_fields = [
        "id",
        "status",
        "stripe_subscription_id",
        "stripe_price_id",
        "canceled_at",
        "last_event_at",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "subscriber", "creator", "status"),
            },
        ),
        (
            "Stripe",
            {
                "fields": ("stripe_subscription_id", "stripe_price_id", "last_event_at"),
            },
        ),
        (
            "Billing",
            {
                "fields": (
                    "price_cents",
                    "currency",
                    "current_period_start",
                    "current_period_end",
                    "cancel_at_period_end",
                    "canceled_at",
                ),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
                "classes": ("collapse",),
            },
        ),
    )


@admin.register(PaymentTransaction)
class PaymentTransactionAdmin(admin.ModelAdmin):
    list_display = [
        "stripe_payment_intent_id",
        "payer",
        "recipient",
        "amount_cents",
        "currency",
        "transaction_type",
        "status",
        "created_at",
    ]
    list_filter = ["status", "transaction_type"]
    search_fields = ["stripe_payment_intent_id", "stripe_invoice_id", "payer__email"]
    readonly_fields = ["id", "status", "failure_reason", "created_at", "updated_at"]
    ordering = ["-created_at"]


@admin.register(CreatorEarning)
class CreatorEarningAdmin(admin.ModelAdmin):
    list_display = [
        "payment_intent_id",
        "creator",
        "gross_amount_cents",
        "commission_cents",
        "net_amount_cents",
        "status",
        "payment_date",
    ]
    list_filter = ["status", "currency"]
    search_fields = ["payment_intent_id", "creator__email"]
    readonly_fields = [
        "id",
        "creator",
        "subscription",
        "payment_intent_id",
        "gross_amount_cents",
        "commission_rate",
        "commission_cents",
        "net_amount_cents",
        "status",
        "available_at",
        "paid_at",
        "created_at",
    ]
    ordering = ["-payment_date"]


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Useful for checking why Stripe keeps redelivering an event.
    """

    list_display = [
        "stripe_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type"]
    search_fields = ["stripe_event_id"]
    readonly_fields = [
        "id",
        "stripe_event_id",
        "event_type",
        "payload",
        "status",
        "processed_at",
        "error_message",
        "retry_count",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
