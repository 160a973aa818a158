"""
Idempotency gate for Stripe webhook events.

Each event id is claimed exactly once before its handler runs. The claim is
an insert into WebhookEvent (unique stripe_event_id); a redelivery finds the
existing row and is classified instead of reprocessed:

    no row                         -> CLAIMED (row inserted as PROCESSING)
    PROCESSED                      -> DUPLICATE
    FAILED / PENDING               -> re-CLAIMED
    PROCESSING, lease expired      -> re-CLAIMED (previous worker died)
    PROCESSING, inside the lease   -> IN_FLIGHT

Re-claims are conditional UPDATEs, so two redeliveries racing for the same
failed event cannot both win.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any

from django.conf import settings
from django.db.models import F, Q
from django.utils import timezone

from billing.models import WebhookEvent
from billing.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


class ClaimStatus(str, Enum):
    CLAIMED = "claimed"
    DUPLICATE = "duplicate"
    IN_FLIGHT = "in_flight"


@dataclass
class Claim:
    status: ClaimStatus
    webhook_event: WebhookEvent

    @property
    def should_process(self) -> bool:
        return self.status == ClaimStatus.CLAIMED


class IdempotencyGate:
    """Claims, completes and fails WebhookEvent markers."""

    @classmethod
    def lease_seconds(cls) -> int:
        return int(getattr(settings, "WEBHOOK_PROCESSING_LEASE_SECONDS", 60))

    @classmethod
    def claim(cls, event: dict[str, Any]) -> Claim:
        """
        Claim a verified event for processing.

        Args:
            event: Verified event envelope (id, type, data, ...)

        Returns:
            Claim describing whether the caller owns the event
        """
        stripe_event_id = event["id"]

        webhook_event, created = WebhookEvent.objects.get_or_create(
            stripe_event_id=stripe_event_id,
            defaults={
                "event_type": event["type"],
                "payload": event,
                "status": WebhookEventStatus.PROCESSING,
                "retry_count": 1,
            },
        )
        if created:
            return Claim(ClaimStatus.CLAIMED, webhook_event)

        if webhook_event.status == WebhookEventStatus.PROCESSED:
            logger.info(
                "Webhook already processed",
                extra={"stripe_event_id": stripe_event_id},
            )
            return Claim(ClaimStatus.DUPLICATE, webhook_event)

        now = timezone.now()
        lease_cutoff = now - timedelta(seconds=cls.lease_seconds())
        reclaimable = Q(
            status__in=[WebhookEventStatus.FAILED, WebhookEventStatus.PENDING]
        ) | Q(status=WebhookEventStatus.PROCESSING, updated_at__lt=lease_cutoff)

        reclaimed = (
            WebhookEvent.objects.filter(pk=webhook_event.pk)
            .filter(reclaimable)
            .update(
                status=WebhookEventStatus.PROCESSING,
                retry_count=F("retry_count") + 1,
                error_message=None,
                updated_at=now,
            )
        )
        webhook_event = WebhookEvent.objects.get(pk=webhook_event.pk)

        if reclaimed:
            logger.info(
                "Re-claimed webhook event for processing",
                extra={
                    "stripe_event_id": stripe_event_id,
                    "retry_count": webhook_event.retry_count,
                },
            )
            return Claim(ClaimStatus.CLAIMED, webhook_event)

        if webhook_event.status == WebhookEventStatus.PROCESSED:
            return Claim(ClaimStatus.DUPLICATE, webhook_event)

        logger.info(
            "Webhook event is being processed by another request",
            extra={"stripe_event_id": stripe_event_id},
        )
        return Claim(ClaimStatus.IN_FLIGHT, webhook_event)

    @classmethod
    def complete(cls, webhook_event: WebhookEvent) -> None:
        webhook_event.mark_processed()
        webhook_event.save(
            update_fields=["status", "processed_at", "error_message", "updated_at"]
        )

    @classmethod
    def fail(cls, webhook_event: WebhookEvent, reason: str) -> None:
        """Release the claim so the next redelivery can re-claim it."""
        webhook_event.mark_failed(reason)
        webhook_event.save(update_fields=["status", "error_message", "updated_at"])
