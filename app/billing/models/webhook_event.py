"""
WebhookEvent model: the processed-event marker for Stripe webhooks.

Every verified event with a handled type gets one row keyed by its Stripe
event id. The unique constraint makes the claim an atomic insert-or-detect,
so a redelivered event is recognised before any handler runs.

Usage:
    from billing.webhooks.idempotency import IdempotencyGate

    claim = IdempotencyGate.claim(event)
    if claim.should_process:
        ...
"""

from __future__ import annotations

from datetime import datetime, timezone as dt_timezone

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks Stripe webhook events for idempotent processing.

    Processing Flow:
        1. Signature verified, event type recognised
        2. Insert row with status PROCESSING (or detect existing row)
        3. Existing PROCESSED -> duplicate, acknowledge with 200
        4. Existing PROCESSING inside the lease -> in flight, ask for redelivery
        5. Existing FAILED or expired lease -> re-claim
        6. Handler runs; row ends PROCESSED or FAILED

    Fields:
        stripe_event_id: Unique Stripe Event ID (evt_xxx)
        event_type: Type of webhook event
        payload: Full JSON payload from Stripe
        status: Processing status
        processed_at: When event was successfully processed
        error_message: Error details if processing failed
        retry_count: Number of processing attempts
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    stripe_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Stripe event type (e.g., 'invoice.payment_succeeded')",
    )

    payload = models.JSONField(
        help_text="Full webhook payload from Stripe (JSON)",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="billing_whe_status_created_idx"),
            models.Index(fields=["event_type", "created_at"], name="billing_whe_type_created_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.stripe_event_id}, {self.event_type})"

    def mark_processed(self) -> None:
        """Note: Does not save - caller must save after calling."""
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        """Note: Does not save - caller must save after calling."""
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_data_object(self) -> dict:
        """Return payload.data.object, or an empty dict if absent."""
        data = self.payload.get("data") or {}
        return data.get("object") or {}

    def get_object_id(self) -> str | None:
        return self.get_data_object().get("id")

    def get_event_created(self) -> datetime | None:
        """Stripe's event creation time (payload.created, epoch seconds)."""
        created = self.payload.get("created")
        if created is None:
            return None
        return datetime.fromtimestamp(int(created), tz=dt_timezone.utc)
