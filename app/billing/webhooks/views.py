"""
Webhook endpoint view for Stripe.

Usage:
    # In urls.py
    from billing.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from __future__ import annotations

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from billing.webhooks.pipeline import WebhookPipeline


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> JsonResponse:
    """
    Receive a Stripe webhook and process it synchronously.

    The raw body is passed through untouched; signature verification needs
    the exact bytes Stripe signed.
    """
    response = WebhookPipeline().process(
        request.body,
        request.headers.get("Stripe-Signature"),
    )
    return JsonResponse(response.body, status=response.status_code)
