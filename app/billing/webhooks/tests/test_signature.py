"""
Tests for webhook signature verification.
"""

import json
import time

import pytest

from billing.exceptions import (
    InvalidSignatureError,
    MalformedEventError,
    WebhookMisconfiguredError,
)
from billing.tests.stripe_fakes import encode, event, signed_header
from billing.webhooks.signature import verify_event

SECRET = "whsec_test_signature"


def signed(body: str, secret: str = SECRET, timestamp: int | None = None):
    return body.encode("utf-8"), signed_header(body, secret, timestamp)


class TestVerifyEvent:
    def test_valid_signature_returns_event(self):
        payload = event("customer.subscription.updated", {"id": "sub_1"}, event_id="evt_sig_1")
        body, header = signed(encode(payload))

        result = verify_event(body, header, SECRET)

        assert result["id"] == "evt_sig_1"
        assert result["data"]["object"] == {"id": "sub_1"}

    def test_missing_secret_is_misconfiguration(self):
        body, header = signed(encode(event("invoice.payment_failed", {})))

        with pytest.raises(WebhookMisconfiguredError) as exc_info:
            verify_event(body, header, "")

        assert exc_info.value.status_code == 500

    def test_missing_header(self):
        body, _ = signed(encode(event("invoice.payment_failed", {})))

        with pytest.raises(InvalidSignatureError):
            verify_event(body, None, SECRET)

    def test_wrong_secret(self):
        body, header = signed(encode(event("invoice.payment_failed", {})), secret="whsec_other")

        with pytest.raises(InvalidSignatureError) as exc_info:
            verify_event(body, header, SECRET)

        assert exc_info.value.status_code == 400

    def test_tampered_body(self):
        body, header = signed(encode(event("invoice.payment_failed", {"amount_due": 100})))
        tampered = body.replace(b"100", b"1")

        with pytest.raises(InvalidSignatureError):
            verify_event(tampered, header, SECRET)

    def test_expired_timestamp(self):
        body, header = signed(
            encode(event("invoice.payment_failed", {})),
            timestamp=int(time.time()) - 3600,
        )

        with pytest.raises(InvalidSignatureError):
            verify_event(body, header, SECRET)

    def test_garbage_header(self):
        body, _ = signed(encode(event("invoice.payment_failed", {})))

        with pytest.raises(InvalidSignatureError):
            verify_event(body, "not-a-signature", SECRET)

    def test_non_utf8_body(self):
        with pytest.raises(InvalidSignatureError):
            verify_event(b"\xff\xfe", "t=1,v1=abc", SECRET)


class TestEnvelopeValidation:
    @pytest.mark.parametrize(
        "body",
        [
            "not json",
            json.dumps(["a", "list"]),
            json.dumps({"type": "invoice.payment_failed", "data": {"object": {}}}),
            json.dumps({"id": "evt_1", "data": {"object": {}}}),
            json.dumps({"id": "evt_1", "type": "invoice.payment_failed"}),
            json.dumps({"id": "evt_1", "type": "invoice.payment_failed", "data": {"object": "x"}}),
        ],
    )
    def test_authentic_but_malformed(self, body):
        payload, header = signed(body)

        with pytest.raises(MalformedEventError):
            verify_event(payload, header, SECRET)
