"""
URL configuration for the billing app.

All routes are prefixed with /api/v1/billing/ when included in the main URLconf.
"""

from django.urls import path

from billing import views
from billing.webhooks.views import stripe_webhook

app_name = "billing"

urlpatterns = [
    path("subscriptions/", views.SubscriptionCreateView.as_view(), name="subscription-create"),
    path(
        "subscriptions/<str:subscription_id>/confirm/",
        views.SubscriptionConfirmView.as_view(),
        name="subscription-confirm",
    ),
    path(
        "subscriptions/<str:subscription_id>/cancel/",
        views.SubscriptionCancelView.as_view(),
        name="subscription-cancel",
    ),
    path(
        "payment-methods/setup-intent/",
        views.SetupIntentView.as_view(),
        name="setup-intent",
    ),
    path(
        "payment-methods/setup-intent/<str:setup_intent_id>/",
        views.SetupIntentDetailView.as_view(),
        name="setup-intent-detail",
    ),
    path(
        "payment-methods/<str:payment_method_id>/",
        views.PaymentMethodDetachView.as_view(),
        name="payment-method-detach",
    ),
    path("earnings/", views.EarningsSummaryView.as_view(), name="earnings-summary"),
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
]
