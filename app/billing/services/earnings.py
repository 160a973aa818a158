"""
Earnings ledger processor.

Turns each successful subscription payment into exactly one CreatorEarning
and credits the creator's pending balance. Also activates a subscription on
its first confirmed payment and releases matured earnings after the hold.

Split:
    commission = round_half_up(gross * rate / 100)   (in minor units)
    net        = gross - commission

Idempotency:
    CreatorEarning.payment_intent_id is unique. The existence check runs
    under a row lock on the subscription, and the insert sits in a savepoint
    so a concurrent insert that slips past the check ends as "already
    recorded" rather than an error.

Usage:
    from billing.services.earnings import EarningsService, RecordEarningParams

    result = EarningsService.record_subscription_payment(
        RecordEarningParams(
            subscription_id=subscription.id,
            amount_cents=1999,
            currency="usd",
            payment_intent_id="pi_xxx",
            commission_rate=Decimal("30.00"),
        )
    )
    if result.applied:
        ...
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from core.services import BaseService

from billing.exceptions import SubscriptionNotFoundError
from billing.models import BillingProfile, CreatorEarning, PaymentTransaction, Subscription
from billing.state_machines import EarningStatus


@dataclass
class RecordEarningParams:
    """
    Parameters for recording a subscription payment.

    Attributes:
        subscription_id: Local Subscription primary key
        amount_cents: Gross amount charged, in minor units
        currency: ISO 4217 currency code
        payment_intent_id: Stripe PaymentIntent ID (the idempotency key)
        commission_rate: Platform commission percent (0-100)
        event_created: Creation time of the triggering event, if any
    """

    subscription_id: uuid.UUID
    amount_cents: int
    currency: str
    payment_intent_id: str
    commission_rate: Decimal
    event_created: datetime | None = None

    def __post_init__(self) -> None:
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if not self.payment_intent_id:
            raise ValueError("payment_intent_id is required")
        self.commission_rate = Decimal(self.commission_rate)
        if not Decimal("0") <= self.commission_rate <= Decimal("100"):
            raise ValueError("commission_rate must be between 0 and 100")


@dataclass
class EarningResult:
    applied: bool
    earning: CreatorEarning | None = None


@dataclass
class EarningsSummary:
    pending_balance_cents: int = 0
    available_balance_cents: int = 0
    total_earned_cents: int = 0
    recent_earnings: list[CreatorEarning] = field(default_factory=list)


class EarningsService(BaseService):
    """Records creator earnings and maintains creator balances."""

    # =========================================================================
    # Commission
    # =========================================================================

    @staticmethod
    def resolve_commission_rate(creator_id) -> Decimal:
        """Commission percent for a creator; the platform default without a profile."""
        rate = (
            BillingProfile.objects.filter(user_id=creator_id)
            .values_list("commission_rate", flat=True)
            .first()
        )
        if rate is None:
            return Decimal(settings.PLATFORM_COMMISSION_RATE)
        return Decimal(rate)

    @staticmethod
    def calculate_split(gross_cents: int, commission_rate: Decimal) -> tuple[int, int]:
        """
        Split a gross amount into (commission_cents, net_cents).

        Example:
            calculate_split(1999, Decimal("30")) -> (600, 1399)
        """
        commission = (Decimal(gross_cents) * Decimal(commission_rate) / Decimal(100)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        commission_cents = int(commission)
        return commission_cents, gross_cents - commission_cents

    # =========================================================================
    # Recording
    # =========================================================================

    @classmethod
    def record_subscription_payment(cls, params: RecordEarningParams) -> EarningResult:
        """
        Record the earning for one successful subscription payment.

        Returns:
            EarningResult(applied=True) when a new entry was written,
            applied=False with the existing entry when it was already recorded

        Raises:
            SubscriptionNotFoundError: No subscription with params.subscription_id
        """
        logger = cls.get_logger()
        log_context = {
            "payment_intent_id": params.payment_intent_id,
            "subscription_id": str(params.subscription_id),
        }

        with transaction.atomic():
            subscription = (
                Subscription.objects.select_for_update()
                .filter(pk=params.subscription_id)
                .first()
            )
            if subscription is None:
                raise SubscriptionNotFoundError(
                    f"Subscription {params.subscription_id} not found",
                    details={"subscription_id": str(params.subscription_id)},
                )

            existing = CreatorEarning.objects.filter(
                payment_intent_id=params.payment_intent_id
            ).first()
            if existing is not None:
                logger.info("Earning already recorded", extra=log_context)
                return EarningResult(applied=False, earning=existing)

            commission_cents, net_cents = cls.calculate_split(
                params.amount_cents, params.commission_rate
            )

            try:
                with transaction.atomic():
                    earning = CreatorEarning.objects.create(
                        creator_id=subscription.creator_id,
                        subscription=subscription,
                        payment_intent_id=params.payment_intent_id,
                        gross_amount_cents=params.amount_cents,
                        currency=params.currency.lower(),
                        commission_rate=params.commission_rate,
                        commission_cents=commission_cents,
                        net_amount_cents=net_cents,
                    )
            except IntegrityError:
                existing = CreatorEarning.objects.get(payment_intent_id=params.payment_intent_id)
                logger.info("Earning recorded concurrently", extra=log_context)
                return EarningResult(applied=False, earning=existing)

            BillingProfile.objects.get_or_create(user_id=subscription.creator_id)
            BillingProfile.objects.filter(user_id=subscription.creator_id).update(
                pending_balance_cents=F("pending_balance_cents") + net_cents,
                total_earned_cents=F("total_earned_cents") + net_cents,
                updated_at=timezone.now(),
            )

            if subscription.is_incomplete:
                subscription.activate()
                if params.event_created is not None and (
                    subscription.last_event_at is None
                    or params.event_created > subscription.last_event_at
                ):
                    subscription.last_event_at = params.event_created
                subscription.save()
                logger.info("Subscription activated by first payment", extra=log_context)

        logger.info(
            "Creator earning recorded",
            extra={
                **log_context,
                "gross_amount_cents": params.amount_cents,
                "commission_cents": commission_cents,
                "net_amount_cents": net_cents,
            },
        )
        return EarningResult(applied=True, earning=earning)

    @classmethod
    def record_for_transaction(
        cls,
        txn: PaymentTransaction,
        event_created: datetime | None = None,
    ) -> EarningResult | None:
        """
        Record the earning for a succeeded subscription transaction.

        Returns None for transactions that do not belong to a subscription.
        """
        if txn.subscription_id is None:
            return None

        params = RecordEarningParams(
            subscription_id=txn.subscription_id,
            amount_cents=txn.amount_cents,
            currency=txn.currency,
            payment_intent_id=txn.stripe_payment_intent_id,
            commission_rate=cls.resolve_commission_rate(txn.recipient_id),
            event_created=event_created,
        )
        return cls.record_subscription_payment(params)

    # =========================================================================
    # Hold Period
    # =========================================================================

    @classmethod
    def release_matured_earnings(cls, now: datetime | None = None, batch_size: int = 500) -> int:
        """
        Move earnings past the hold period from pending to available.

        Returns:
            Number of earnings released
        """
        now = now or timezone.now()
        cutoff = now - timedelta(days=settings.EARNINGS_HOLD_DAYS)

        earning_ids = list(
            CreatorEarning.objects.filter(
                status=EarningStatus.PENDING,
                payment_date__lte=cutoff,
            )
            .order_by("payment_date")
            .values_list("id", flat=True)[:batch_size]
        )

        released = 0
        for earning_id in earning_ids:
            with transaction.atomic():
                earning = (
                    CreatorEarning.objects.select_for_update()
                    .filter(pk=earning_id, status=EarningStatus.PENDING)
                    .first()
                )
                if earning is None:
                    continue

                earning.make_available()
                earning.save(update_fields=["status", "available_at", "updated_at"])
                BillingProfile.objects.filter(user_id=earning.creator_id).update(
                    pending_balance_cents=F("pending_balance_cents") - earning.net_amount_cents,
                    available_balance_cents=F("available_balance_cents") + earning.net_amount_cents,
                    updated_at=timezone.now(),
                )
                released += 1

        if released:
            cls.get_logger().info(
                "Released matured earnings",
                extra={"released": released, "cutoff": cutoff.isoformat()},
            )
        return released

    # =========================================================================
    # Queries
    # =========================================================================

    @staticmethod
    def get_summary(creator, recent_limit: int = 20) -> EarningsSummary:
        profile = BillingProfile.objects.filter(user=creator).first()
        recent = list(
            CreatorEarning.objects.filter(creator=creator)
            .select_related("subscription")
            .order_by("-payment_date")[:recent_limit]
        )
        if profile is None:
            return EarningsSummary(recent_earnings=recent)
        return EarningsSummary(
            pending_balance_cents=profile.pending_balance_cents,
            available_balance_cents=profile.available_balance_cents,
            total_earned_cents=profile.total_earned_cents,
            recent_earnings=recent,
        )
