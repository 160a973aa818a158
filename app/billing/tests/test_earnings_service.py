"""
Tests for EarningsService: commission split, idempotency, balances, hold release.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.db import IntegrityError
from django.utils import timezone
from freezegun import freeze_time

from billing.exceptions import SubscriptionNotFoundError
from billing.models import BillingProfile, CreatorEarning, Subscription
from billing.services import EarningsService, RecordEarningParams
from billing.state_machines import EarningStatus, SubscriptionStatus
from billing.tests.factories import (
    CreatorEarningFactory,
    CreatorProfileFactory,
    PaymentTransactionFactory,
    SubscriptionFactory,
    UserFactory,
)


def params_for(subscription, payment_intent_id="pi_earn_1", amount_cents=1999, rate="30.00"):
    return RecordEarningParams(
        subscription_id=subscription.pk,
        amount_cents=amount_cents,
        currency="usd",
        payment_intent_id=payment_intent_id,
        commission_rate=Decimal(rate),
    )


class TestCalculateSplit:
    @pytest.mark.parametrize(
        "gross,rate,commission,net",
        [
            (1999, "30", 600, 1399),
            (1000, "30", 300, 700),
            (5, "30", 2, 3),  # 1.5 rounds half up
            (1999, "0", 0, 1999),
            (1999, "100", 1999, 0),
            (999, "12.50", 125, 874),
        ],
    )
    def test_split(self, gross, rate, commission, net):
        assert EarningsService.calculate_split(gross, Decimal(rate)) == (commission, net)

    def test_invalid_params_rejected(self):
        with pytest.raises(ValueError):
            RecordEarningParams(
                subscription_id=None,
                amount_cents=0,
                currency="usd",
                payment_intent_id="pi_1",
                commission_rate=Decimal("30"),
            )
        with pytest.raises(ValueError):
            RecordEarningParams(
                subscription_id=None,
                amount_cents=100,
                currency="usd",
                payment_intent_id="pi_1",
                commission_rate=Decimal("101"),
            )


@pytest.mark.django_db
class TestRecordSubscriptionPayment:
    @pytest.fixture
    def subscription(self):
        creator_profile = CreatorProfileFactory()
        return SubscriptionFactory(creator=creator_profile.user)

    def test_records_split_and_credits_pending_balance(self, subscription):
        result = EarningsService.record_subscription_payment(params_for(subscription))

        assert result.applied
        earning = result.earning
        assert earning.gross_amount_cents == 1999
        assert earning.commission_cents == 600
        assert earning.net_amount_cents == 1399
        assert earning.status == EarningStatus.PENDING
        assert earning.creator_id == subscription.creator_id

        profile = BillingProfile.objects.get(user=subscription.creator)
        assert profile.pending_balance_cents == 1399
        assert profile.total_earned_cents == 1399
        assert profile.available_balance_cents == 0

    def test_activates_incomplete_subscription(self, subscription):
        EarningsService.record_subscription_payment(params_for(subscription))

        assert Subscription.objects.get(pk=subscription.pk).status == SubscriptionStatus.ACTIVE

    def test_leaves_past_due_status_alone(self):
        subscription = SubscriptionFactory(status=SubscriptionStatus.PAST_DUE)

        EarningsService.record_subscription_payment(params_for(subscription))

        assert Subscription.objects.get(pk=subscription.pk).status == SubscriptionStatus.PAST_DUE

    def test_second_call_is_a_no_op(self, subscription):
        first = EarningsService.record_subscription_payment(params_for(subscription))
        second = EarningsService.record_subscription_payment(params_for(subscription))

        assert first.applied
        assert not second.applied
        assert second.earning.pk == first.earning.pk
        assert CreatorEarning.objects.filter(payment_intent_id="pi_earn_1").count() == 1
        profile = BillingProfile.objects.get(user=subscription.creator)
        assert profile.pending_balance_cents == 1399

    def test_concurrent_insert_reports_not_applied(self, subscription):
        existing = CreatorEarningFactory(subscription=subscription, payment_intent_id="pi_race")

        # Simulate the existence check missing a row committed by another worker
        with patch.object(CreatorEarning.objects, "filter") as mock_filter:
            mock_filter.return_value.first.return_value = None
            with patch.object(
                CreatorEarning.objects,
                "create",
                side_effect=IntegrityError("duplicate key"),
            ):
                result = EarningsService.record_subscription_payment(
                    params_for(subscription, payment_intent_id="pi_race")
                )

        assert not result.applied
        assert result.earning.pk == existing.pk
        profile = BillingProfile.objects.get(user=subscription.creator)
        assert profile.pending_balance_cents == 0

    def test_unknown_subscription(self, subscription):
        params = params_for(subscription)
        params.subscription_id = SubscriptionFactory.build().pk

        with pytest.raises(SubscriptionNotFoundError):
            EarningsService.record_subscription_payment(params)

    def test_creates_missing_creator_profile(self):
        subscription = SubscriptionFactory()

        EarningsService.record_subscription_payment(params_for(subscription))

        profile = BillingProfile.objects.get(user=subscription.creator)
        assert profile.pending_balance_cents == 1399


@pytest.mark.django_db
class TestRecordForTransaction:
    def test_uses_creator_commission_rate(self):
        creator_profile = CreatorProfileFactory(commission_rate=Decimal("10.00"))
        subscription = SubscriptionFactory(creator=creator_profile.user)
        txn = PaymentTransactionFactory(subscription=subscription, amount_cents=1000)

        result = EarningsService.record_for_transaction(txn)

        assert result.applied
        assert result.earning.commission_cents == 100
        assert result.earning.net_amount_cents == 900
        assert result.earning.commission_rate == Decimal("10.00")

    def test_falls_back_to_platform_rate(self, settings):
        settings.PLATFORM_COMMISSION_RATE = Decimal("20.00")
        subscription = SubscriptionFactory()

        assert EarningsService.resolve_commission_rate(subscription.creator_id) == Decimal("20.00")

    def test_transaction_without_subscription(self):
        txn = PaymentTransactionFactory(
            subscription=None,
            payer=UserFactory(),
            recipient=UserFactory(),
            amount_cents=500,
        )

        assert EarningsService.record_for_transaction(txn) is None


@pytest.mark.django_db
class TestReleaseMaturedEarnings:
    def test_releases_only_past_hold(self, settings):
        settings.EARNINGS_HOLD_DAYS = 7
        creator_profile = CreatorProfileFactory(pending_balance_cents=2798, total_earned_cents=2798)
        subscription = SubscriptionFactory(creator=creator_profile.user)
        old = CreatorEarningFactory(
            subscription=subscription,
            payment_date=timezone.now() - timedelta(days=8),
        )
        recent = CreatorEarningFactory(
            subscription=subscription,
            payment_date=timezone.now() - timedelta(days=1),
        )

        released = EarningsService.release_matured_earnings()

        assert released == 1
        assert CreatorEarning.objects.get(pk=old.pk).status == EarningStatus.AVAILABLE
        assert CreatorEarning.objects.get(pk=recent.pk).status == EarningStatus.PENDING
        profile = BillingProfile.objects.get(pk=creator_profile.pk)
        assert profile.pending_balance_cents == 1399
        assert profile.available_balance_cents == 1399

    def test_release_is_idempotent(self, settings):
        settings.EARNINGS_HOLD_DAYS = 7
        creator_profile = CreatorProfileFactory(pending_balance_cents=1399, total_earned_cents=1399)
        with freeze_time(timezone.now() - timedelta(days=10)):
            CreatorEarningFactory(subscription=SubscriptionFactory(creator=creator_profile.user))

        assert EarningsService.release_matured_earnings() == 1
        assert EarningsService.release_matured_earnings() == 0
        profile = BillingProfile.objects.get(pk=creator_profile.pk)
        assert profile.available_balance_cents == 1399


@pytest.mark.django_db
class TestSummary:
    def test_summary_reports_balances_and_recent(self):
        creator_profile = CreatorProfileFactory(
            pending_balance_cents=1399,
            available_balance_cents=700,
            total_earned_cents=2099,
        )
        CreatorEarningFactory(subscription=SubscriptionFactory(creator=creator_profile.user))

        summary = EarningsService.get_summary(creator_profile.user)

        assert summary.pending_balance_cents == 1399
        assert summary.available_balance_cents == 700
        assert summary.total_earned_cents == 2099
        assert len(summary.recent_earnings) == 1
