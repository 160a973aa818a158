"""
Tests for billing Celery tasks.

Tasks are called directly (synchronously); the broker is never involved.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone
from freezegun import freeze_time

from billing.adapters import SubscriptionResult
from billing.models import CreatorEarning, WebhookEvent
from billing.state_machines import EarningStatus, WebhookEventStatus
from billing.tasks import (
    cleanup_old_webhook_events,
    reconcile_orphaned_subscriptions,
    release_matured_earnings,
)
from billing.tests.factories import (
    CreatorEarningFactory,
    CreatorProfileFactory,
    SubscriptionFactory,
    WebhookEventFactory,
)
from billing.tests.stripe_fakes import unavailable


def remote_subscription(subscription_id, status="active", age=timedelta(hours=2), metadata=None):
    return SubscriptionResult(
        id=subscription_id,
        status=status,
        customer_id="cus_test",
        metadata={"subscriber_id": "1", "creator_id": "2"} if metadata is None else metadata,
        created=timezone.now() - age,
    )


@pytest.mark.django_db
class TestReleaseMaturedEarnings:
    def test_returns_released_count(self, settings):
        settings.EARNINGS_HOLD_DAYS = 7
        creator_profile = CreatorProfileFactory(pending_balance_cents=1399, total_earned_cents=1399)
        earning = CreatorEarningFactory(
            subscription=SubscriptionFactory(creator=creator_profile.user),
            payment_date=timezone.now() - timedelta(days=8),
        )

        result = release_matured_earnings()

        assert result == {"released_count": 1}
        earning = CreatorEarning.objects.get(pk=earning.pk)
        assert earning.status == EarningStatus.AVAILABLE
        assert earning.available_at is not None


@pytest.mark.django_db
class TestReconcileOrphanedSubscriptions:
    @pytest.fixture
    def mock_adapter(self):
        with patch("billing.tasks.StripeAdapter") as mock:
            yield mock

    def test_cancels_orphan(self, mock_adapter):
        mock_adapter.list_recent_subscriptions.return_value = [remote_subscription("sub_orphan")]

        result = reconcile_orphaned_subscriptions()

        mock_adapter.cancel_subscription.assert_called_once_with("sub_orphan")
        assert result == {"checked": 1, "canceled": 1, "failed": 0}

    def test_skips_known_and_foreign_subscriptions(self, mock_adapter):
        known = SubscriptionFactory()
        mock_adapter.list_recent_subscriptions.return_value = [
            remote_subscription(known.stripe_subscription_id),
            remote_subscription("sub_foreign", metadata={}),
            remote_subscription("sub_done", status="canceled"),
            remote_subscription("sub_expired", status="incomplete_expired"),
        ]

        result = reconcile_orphaned_subscriptions()

        mock_adapter.cancel_subscription.assert_not_called()
        assert result == {"checked": 4, "canceled": 0, "failed": 0}

    def test_leaves_recent_creations_alone(self, mock_adapter, settings):
        settings.ORPHAN_SUBSCRIPTION_GRACE_MINUTES = 30
        mock_adapter.list_recent_subscriptions.return_value = [
            remote_subscription("sub_in_progress", age=timedelta(minutes=5))
        ]

        result = reconcile_orphaned_subscriptions()

        mock_adapter.cancel_subscription.assert_not_called()
        assert result["canceled"] == 0

    def test_counts_failed_cancellations(self, mock_adapter):
        mock_adapter.list_recent_subscriptions.return_value = [remote_subscription("sub_orphan")]
        mock_adapter.cancel_subscription.side_effect = unavailable()

        result = reconcile_orphaned_subscriptions()

        assert result == {"checked": 1, "canceled": 0, "failed": 1}

    def test_lists_the_window_up_to_the_grace_cutoff(self, mock_adapter, settings):
        settings.ORPHAN_SUBSCRIPTION_GRACE_MINUTES = 30
        mock_adapter.list_recent_subscriptions.return_value = []

        with freeze_time("2026-03-01 12:00:00"):
            reconcile_orphaned_subscriptions(lookback_hours=24)
            now = timezone.now()

        kwargs = mock_adapter.list_recent_subscriptions.call_args.kwargs
        assert kwargs["created_after"] == now - timedelta(hours=24)
        assert kwargs["created_before"] == now - timedelta(minutes=30)

    def test_listing_failure(self, mock_adapter):
        mock_adapter.list_recent_subscriptions.side_effect = unavailable()

        result = reconcile_orphaned_subscriptions()

        assert result["error"] == "list_failed"
        mock_adapter.cancel_subscription.assert_not_called()


@pytest.mark.django_db
class TestCleanupOldWebhookEvents:
    def test_deletes_only_old_processed_events(self):
        old_processed = WebhookEventFactory(status=WebhookEventStatus.PROCESSED)
        WebhookEvent.objects.filter(pk=old_processed.pk).update(
            processed_at=timezone.now() - timedelta(days=100)
        )
        recent_processed = WebhookEventFactory(
            status=WebhookEventStatus.PROCESSED, processed_at=timezone.now()
        )
        old_failed = WebhookEventFactory(status=WebhookEventStatus.FAILED)

        result = cleanup_old_webhook_events(days=90)

        assert result == {"deleted_count": 1}
        remaining = set(WebhookEvent.objects.values_list("pk", flat=True))
        assert remaining == {recent_processed.pk, old_failed.pk}
