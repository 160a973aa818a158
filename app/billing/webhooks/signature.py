"""
Stripe webhook signature verification.

The raw request body is authenticated against the Stripe-Signature header
with the endpoint's signing secret before anything is parsed. Verification
is delegated to the stripe library (HMAC-SHA256 over "{timestamp}.{body}",
constant-time comparison, timestamp tolerance).

Usage:
    from billing.webhooks.signature import verify_event

    event = verify_event(request.body, request.headers.get("Stripe-Signature"), secret)
"""

from __future__ import annotations

import json
import logging
from typing import Any

import stripe

from billing.exceptions import (
    InvalidSignatureError,
    MalformedEventError,
    WebhookMisconfiguredError,
)

logger = logging.getLogger(__name__)

# Seconds a signed timestamp stays acceptable (Stripe's own default)
DEFAULT_TOLERANCE = 300


def verify_event(
    payload: bytes,
    signature: str | None,
    secret: str | None,
    tolerance: int = DEFAULT_TOLERANCE,
) -> dict[str, Any]:
    """
    Authenticate a webhook body and return the parsed event envelope.

    Args:
        payload: Raw request body, exactly as received
        signature: Value of the Stripe-Signature header
        secret: Endpoint signing secret (whsec_xxx)
        tolerance: Maximum age of the signed timestamp in seconds

    Returns:
        The event dict (id, type, created, data.object, ...)

    Raises:
        WebhookMisconfiguredError: No signing secret configured
        InvalidSignatureError: Header missing, malformed or not matching
        MalformedEventError: Authentic body that is not an event envelope
    """
    if not secret:
        logger.critical("STRIPE_WEBHOOK_SECRET is not configured; rejecting webhook")
        raise WebhookMisconfiguredError("Webhook signing secret is not configured")

    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        raise InvalidSignatureError("Missing Stripe-Signature header")

    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidSignatureError("Webhook body is not valid UTF-8") from e

    try:
        stripe.WebhookSignature.verify_header(body, signature, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": str(e)},
        )
        raise InvalidSignatureError("Invalid webhook signature") from e

    try:
        event = json.loads(body)
    except ValueError as e:
        raise MalformedEventError("Webhook body is not valid JSON") from e

    _validate_envelope(event)
    return event


def _validate_envelope(event: Any) -> None:
    if not isinstance(event, dict):
        raise MalformedEventError("Webhook body is not a JSON object")

    if not isinstance(event.get("id"), str) or not event["id"]:
        raise MalformedEventError("Event is missing its id")

    if not isinstance(event.get("type"), str) or not event["type"]:
        raise MalformedEventError("Event is missing its type")

    data = event.get("data")
    if not isinstance(data, dict) or not isinstance(data.get("object"), dict):
        raise MalformedEventError("Event is missing data.object")
