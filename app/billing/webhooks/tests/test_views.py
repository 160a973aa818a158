"""
Tests for the Stripe webhook endpoint.
"""

import pytest
from django.test import Client
from django.urls import reverse

from billing.models import WebhookEvent
from billing.state_machines import WebhookEventStatus
from billing.tests.stripe_fakes import encode, event, signed_header, subscription_object

WEBHOOK_SECRET = "whsec_test_endpoint"


@pytest.fixture
def url():
    return reverse("billing:stripe_webhook")


@pytest.fixture(autouse=True)
def webhook_secret(settings):
    settings.STRIPE_WEBHOOK_SECRET = WEBHOOK_SECRET


@pytest.mark.django_db
class TestStripeWebhookView:
    def post(self, client, url, body, signature):
        return client.post(
            url,
            data=body,
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=signature,
        )

    def test_signed_event_is_processed(self, client, url):
        payload = event("customer.subscription.updated", subscription_object("sub_view"))
        body = encode(payload)

        response = self.post(client, url, body, signed_header(body, WEBHOOK_SECRET))

        assert response.status_code == 200
        assert response.json() == {"received": True}
        webhook_event = WebhookEvent.objects.get(stripe_event_id=payload["id"])
        assert webhook_event.status == WebhookEventStatus.PROCESSED

    def test_invalid_signature(self, client, url):
        body = encode(event("customer.subscription.updated", subscription_object("sub_view")))

        response = self.post(client, url, body, signed_header(body, "whsec_wrong"))

        assert response.status_code == 400
        assert "error" in response.json()

    def test_missing_signature_header(self, client, url):
        body = encode(event("customer.subscription.updated", subscription_object("sub_view")))

        response = client.post(url, data=body, content_type="application/json")

        assert response.status_code == 400

    def test_no_authentication_or_csrf_required(self, url):
        csrf_client = Client(enforce_csrf_checks=True)
        body = encode(event("charge.refunded", {"id": "ch_1"}))

        response = self.post(csrf_client, url, body, signed_header(body, WEBHOOK_SECRET))

        assert response.status_code == 200

    def test_get_not_allowed(self, client, url):
        assert client.get(url).status_code == 405
