"""
Stripe webhook pipeline: verify -> route -> claim -> handle -> respond.

Kept free of HTTP objects so it can be driven directly from tests; the
Django view only adapts requests and responses.

Response contract (Stripe retries anything that is not 2xx):
    200  event applied, skipped, duplicate, or of an unhandled type
    400  signature invalid or body not an event (never retried usefully)
    409  same event currently being processed elsewhere
    500  misconfiguration, retryable handler failure, database error
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from django.conf import settings
from django.db import DatabaseError, transaction

from billing.exceptions import WebhookError
from billing.webhooks.events import HandlerOutcome, WebhookEventType
from billing.webhooks.idempotency import ClaimStatus, IdempotencyGate
from billing.webhooks.router import dispatch
from billing.webhooks.signature import verify_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResponse:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def received(cls) -> PipelineResponse:
        return cls(200, {"received": True})

    @classmethod
    def error(cls, status_code: int, message: str) -> PipelineResponse:
        return cls(status_code, {"error": message})


class WebhookPipeline:
    def __init__(self, secret: str | None = None):
        self._secret = secret

    @property
    def secret(self) -> str | None:
        if self._secret is not None:
            return self._secret
        return getattr(settings, "STRIPE_WEBHOOK_SECRET", None)

    def process(self, payload: bytes, signature: str | None) -> PipelineResponse:
        try:
            event = verify_event(payload, signature, self.secret)
        except WebhookError as e:
            return PipelineResponse.error(e.status_code, e.message)

        stripe_event_id = event["id"]
        log_context = {"stripe_event_id": stripe_event_id, "event_type": event["type"]}

        event_type = WebhookEventType.parse(event["type"])
        if event_type is None:
            logger.info("Ignoring unhandled webhook event type", extra=log_context)
            return PipelineResponse.received()

        logger.info(f"Received Stripe webhook: {event_type.value}", extra=log_context)

        try:
            claim = IdempotencyGate.claim(event)
        except DatabaseError:
            logger.exception("Could not claim webhook event", extra=log_context)
            return PipelineResponse.error(500, "Database unavailable")

        if claim.status == ClaimStatus.DUPLICATE:
            return PipelineResponse.received()
        if claim.status == ClaimStatus.IN_FLIGHT:
            return PipelineResponse.error(409, "Event is already being processed")

        webhook_event = claim.webhook_event
        try:
            with transaction.atomic():
                outcome = dispatch(event_type, webhook_event)
        except DatabaseError as e:
            logger.exception("Database error while handling webhook", extra=log_context)
            outcome = HandlerOutcome.retryable_failure(f"Database error: {e}")
        except Exception as e:
            logger.exception("Webhook handler raised", extra=log_context)
            outcome = HandlerOutcome.retryable_failure(f"{type(e).__name__}: {e}")

        try:
            if outcome.is_retryable:
                IdempotencyGate.fail(webhook_event, outcome.reason or "retryable failure")
            else:
                IdempotencyGate.complete(webhook_event)
        except DatabaseError:
            # The lease expires and the next redelivery re-claims the event
            logger.exception("Could not update webhook event marker", extra=log_context)
            return PipelineResponse.error(500, "Database unavailable")

        if outcome.is_retryable:
            logger.warning(
                "Webhook handling failed; Stripe will redeliver",
                extra={**log_context, "reason": outcome.reason},
            )
            return PipelineResponse.error(500, "Event could not be processed")

        logger.info(
            "Webhook handled",
            extra={**log_context, "outcome": outcome.kind.value, "reason": outcome.reason},
        )
        return PipelineResponse.received()
