"""
Subscription state reconciler.

Applies Stripe's view of a subscription onto the local row. Stripe is the
source of truth for status and billing period; the reconciler only decides
whether an incoming snapshot is still relevant:

- CANCELED is terminal; later snapshots are ignored
- a snapshot older than the newest event already applied is ignored
- INCOMPLETE is an initial state only and never overwrites a later status
- a snapshot for an unknown subscription creates a placeholder row when the
  remote metadata names the subscriber and creator (the orchestrator fills
  in the rest); without that metadata it is ignored

Usage:
    from billing.services.reconciler import SubscriptionReconciler

    result = SubscriptionReconciler.apply_remote_state(remote, event_created=ts)
    if result.applied:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone

from core.services import BaseService

from billing.adapters import SubscriptionResult
from billing.models import Subscription
from billing.state_machines import SubscriptionStatus

# Stripe subscription status -> local status. Unlisted statuses
# (e.g. "paused") leave the local status unchanged.
REMOTE_STATUS_MAP: dict[str, SubscriptionStatus] = {
    "incomplete": SubscriptionStatus.INCOMPLETE,
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete_expired": SubscriptionStatus.CANCELED,
}


@dataclass
class ReconcileResult:
    applied: bool
    subscription: Subscription | None = None
    reason: str | None = None

    @classmethod
    def skipped(cls, reason: str, subscription: Subscription | None = None) -> ReconcileResult:
        return cls(applied=False, subscription=subscription, reason=reason)


class SubscriptionReconciler(BaseService):
    """Keeps local Subscription rows converged with Stripe."""

    @staticmethod
    def map_remote_status(remote_status: str | None) -> SubscriptionStatus | None:
        return REMOTE_STATUS_MAP.get(remote_status or "")

    # =========================================================================
    # Lifecycle Events
    # =========================================================================

    @classmethod
    def apply_remote_state(
        cls,
        remote: SubscriptionResult,
        event_created: datetime | None = None,
    ) -> ReconcileResult:
        """
        Apply a subscription snapshot from a created/updated event or an API read.

        Args:
            remote: Parsed Stripe subscription
            event_created: Creation time of the carrying event. None for API
                reads, which are always current and skip the staleness check.
        """
        logger = cls.get_logger()
        log_context = {
            "stripe_subscription_id": remote.id,
            "remote_status": remote.status,
        }

        with transaction.atomic():
            subscription = cls._lock(remote.id)

            if subscription is None:
                subscription, created = cls._create_placeholder(remote, event_created)
                if subscription is None:
                    logger.info(
                        "Ignoring snapshot for unknown subscription without metadata",
                        extra=log_context,
                    )
                    return ReconcileResult.skipped("unknown subscription")
                if created:
                    return ReconcileResult(applied=True, subscription=subscription)
                # Lost the insert race; apply onto the winning row

            if subscription.is_canceled:
                logger.info("Ignoring snapshot for canceled subscription", extra=log_context)
                return ReconcileResult.skipped("subscription already canceled", subscription)

            if cls._is_stale(subscription, event_created):
                logger.info(
                    "Ignoring stale subscription snapshot",
                    extra={
                        **log_context,
                        "event_created": event_created.isoformat(),
                        "last_event_at": subscription.last_event_at.isoformat(),
                    },
                )
                return ReconcileResult.skipped("stale event", subscription)

            previous_status = subscription.status
            target = cls.map_remote_status(remote.status)
            if (
                target is not None
                and target != subscription.status
                and target != SubscriptionStatus.INCOMPLETE
            ):
                subscription.sync_status(target)

            cls._copy_remote_fields(subscription, remote)
            if event_created is not None:
                subscription.last_event_at = event_created
            subscription.save()

        logger.info(
            "Applied remote subscription state",
            extra={
                **log_context,
                "previous_status": previous_status,
                "status": subscription.status,
            },
        )
        return ReconcileResult(applied=True, subscription=subscription)

    @classmethod
    def mark_canceled(
        cls,
        remote: SubscriptionResult,
        event_created: datetime | None = None,
    ) -> ReconcileResult:
        """
        Apply a deletion event. Cancellation wins regardless of event order.
        """
        logger = cls.get_logger()

        with transaction.atomic():
            subscription = cls._lock(remote.id)

            if subscription is None:
                subscription, created = cls._create_placeholder(
                    remote, event_created, status=SubscriptionStatus.CANCELED
                )
                if subscription is None:
                    logger.info(
                        "Ignoring deletion of unknown subscription",
                        extra={"stripe_subscription_id": remote.id},
                    )
                    return ReconcileResult.skipped("unknown subscription")
                if created:
                    return ReconcileResult(applied=True, subscription=subscription)

            if subscription.is_canceled:
                return ReconcileResult.skipped("subscription already canceled", subscription)

            subscription.cancel()
            subscription.cancel_at_period_end = False
            if event_created is not None and (
                subscription.last_event_at is None or event_created > subscription.last_event_at
            ):
                subscription.last_event_at = event_created
            subscription.save()

        logger.info(
            "Subscription canceled",
            extra={"stripe_subscription_id": remote.id},
        )
        return ReconcileResult(applied=True, subscription=subscription)

    @classmethod
    def mark_past_due(
        cls,
        subscription: Subscription,
        event_created: datetime | None = None,
    ) -> ReconcileResult:
        """Move a subscription to PAST_DUE after an invoice payment failure."""
        with transaction.atomic():
            subscription = Subscription.objects.select_for_update().get(pk=subscription.pk)

            if subscription.is_canceled:
                return ReconcileResult.skipped("subscription already canceled", subscription)
            if subscription.is_incomplete:
                # The first charge failing is reported by payment_intent.payment_failed
                return ReconcileResult.skipped("subscription not yet active", subscription)
            if cls._is_stale(subscription, event_created):
                return ReconcileResult.skipped("stale event", subscription)
            if subscription.status == SubscriptionStatus.PAST_DUE:
                return ReconcileResult(applied=True, subscription=subscription)

            subscription.mark_past_due()
            if event_created is not None:
                subscription.last_event_at = event_created
            subscription.save()

        cls.get_logger().info(
            "Subscription marked past due",
            extra={"stripe_subscription_id": subscription.stripe_subscription_id},
        )
        return ReconcileResult(applied=True, subscription=subscription)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _lock(stripe_subscription_id: str) -> Subscription | None:
        return (
            Subscription.objects.select_for_update()
            .filter(stripe_subscription_id=stripe_subscription_id)
            .first()
        )

    @staticmethod
    def _is_stale(subscription: Subscription, event_created: datetime | None) -> bool:
        return (
            event_created is not None
            and subscription.last_event_at is not None
            and event_created < subscription.last_event_at
        )

    @staticmethod
    def _copy_remote_fields(subscription: Subscription, remote: SubscriptionResult) -> None:
        if remote.current_period_start is not None:
            subscription.current_period_start = remote.current_period_start
        if remote.current_period_end is not None:
            subscription.current_period_end = remote.current_period_end
        subscription.cancel_at_period_end = remote.cancel_at_period_end
        if remote.price_id and not subscription.stripe_price_id:
            subscription.stripe_price_id = remote.price_id

    @classmethod
    def _create_placeholder(
        cls,
        remote: SubscriptionResult,
        event_created: datetime | None,
        status: SubscriptionStatus | None = None,
    ) -> tuple[Subscription | None, bool]:
        """
        Insert a row for a subscription we have not recorded yet.

        Returns (None, False) when the metadata does not identify both
        parties or the price is unknown. If a concurrent insert wins, the
        winning row is returned locked with created=False.
        """
        User = get_user_model()
        subscriber_id = remote.metadata.get("subscriber_id")
        creator_id = remote.metadata.get("creator_id")
        if not subscriber_id or not creator_id or not remote.unit_amount_cents:
            return None, False

        try:
            subscriber = User.objects.filter(pk=subscriber_id).first()
            creator = User.objects.filter(pk=creator_id).first()
        except (TypeError, ValueError):
            return None, False
        if subscriber is None or creator is None:
            return None, False

        status = status or cls.map_remote_status(remote.status) or SubscriptionStatus.INCOMPLETE
        try:
            with transaction.atomic():
                subscription = Subscription.objects.create(
                    subscriber=subscriber,
                    creator=creator,
                    stripe_subscription_id=remote.id,
                    stripe_price_id=remote.price_id or "",
                    price_cents=remote.unit_amount_cents,
                    currency=(remote.currency or "usd").lower(),
                    status=status,
                    current_period_start=remote.current_period_start,
                    current_period_end=remote.current_period_end,
                    cancel_at_period_end=remote.cancel_at_period_end,
                    canceled_at=timezone.now() if status == SubscriptionStatus.CANCELED else None,
                    last_event_at=event_created,
                )
        except IntegrityError:
            return cls._lock(remote.id), False

        cls.get_logger().info(
            "Created placeholder subscription from remote snapshot",
            extra={
                "stripe_subscription_id": remote.id,
                "status": status,
                "subscriber_id": subscriber.pk,
                "creator_id": creator.pk,
            },
        )
        return subscription, True
