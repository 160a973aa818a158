"""
Celery tasks for billing housekeeping.

Webhooks are processed synchronously in the request; these tasks only run
periodic maintenance (see CELERY_BEAT_SCHEDULE in settings):

- release_matured_earnings: pending earnings -> available after the hold
- reconcile_orphaned_subscriptions: cancel remote subscriptions that never
  got a local row (e.g. the process died between remote create and persist)
- cleanup_old_webhook_events: drop old processed event markers

Usage:
    from billing.tasks import release_matured_earnings

    release_matured_earnings.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from billing.adapters import StripeAdapter
from billing.exceptions import StripeError
from billing.models import Subscription, WebhookEvent
from billing.services import EarningsService
from billing.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

ORPHAN_LOOKBACK_HOURS = 24
TERMINAL_REMOTE_STATUSES = ("canceled", "incomplete_expired")


# =============================================================================
# Earnings
# =============================================================================


@shared_task
def release_matured_earnings() -> dict:
    released = EarningsService.release_matured_earnings()
    return {"released_count": released}


# =============================================================================
# Reconciliation
# =============================================================================


@shared_task
def reconcile_orphaned_subscriptions(lookback_hours: int = ORPHAN_LOOKBACK_HOURS) -> dict:
    """
    Cancel remote subscriptions created by us that have no local record.

    Only subscriptions carrying our subscriber_id/creator_id metadata are
    considered, and only once they are older than the grace period so an
    in-progress creation is never touched.

    Returns:
        Dict with checked/canceled/failed counts
    """
    now = timezone.now()
    grace_cutoff = now - timedelta(minutes=settings.ORPHAN_SUBSCRIPTION_GRACE_MINUTES)

    try:
        remote_subscriptions = StripeAdapter.list_recent_subscriptions(
            created_after=now - timedelta(hours=lookback_hours),
            created_before=grace_cutoff,
        )
    except StripeError:
        logger.error("Could not list subscriptions for reconciliation", exc_info=True)
        return {"checked": 0, "canceled": 0, "failed": 0, "error": "list_failed"}

    canceled = failed = 0
    for remote in remote_subscriptions:
        if "subscriber_id" not in remote.metadata or "creator_id" not in remote.metadata:
            continue
        if remote.status in TERMINAL_REMOTE_STATUSES:
            continue
        if remote.created is None or remote.created > grace_cutoff:
            continue
        if Subscription.objects.filter(stripe_subscription_id=remote.id).exists():
            continue

        try:
            StripeAdapter.cancel_subscription(remote.id)
        except StripeError:
            failed += 1
            logger.error(
                "Could not cancel orphaned subscription",
                extra={"stripe_subscription_id": remote.id},
                exc_info=True,
            )
            continue

        canceled += 1
        logger.warning(
            "Canceled orphaned remote subscription",
            extra={
                "stripe_subscription_id": remote.id,
                "subscriber_id": remote.metadata["subscriber_id"],
                "creator_id": remote.metadata["creator_id"],
            },
        )

    return {"checked": len(remote_subscriptions), "canceled": canceled, "failed": failed}


# =============================================================================
# Webhook Maintenance
# =============================================================================


@shared_task
def cleanup_old_webhook_events(days: int | None = None) -> dict:
    """
    Delete processed webhook markers older than the retention window.

    Failed events are kept for debugging.
    """
    days = days if days is not None else settings.WEBHOOK_EVENT_RETENTION_DAYS
    cutoff = timezone.now() - timedelta(days=days)

    deleted_count, _ = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSED,
        processed_at__lt=cutoff,
    ).delete()

    if deleted_count > 0:
        logger.info(
            f"Deleted {deleted_count} old webhook events",
            extra={
                "deleted_count": deleted_count,
                "cutoff_date": cutoff.isoformat(),
            },
        )

    return {"deleted_count": deleted_count}
