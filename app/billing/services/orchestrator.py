"""
Subscription creation orchestrator.

Coordinates the remote Stripe subscription with the local Subscription and
PaymentTransaction rows:

1. Take the per-pair lock, then validate the request (creator, price,
   duplicate guard) - no remote calls yet
2. Resolve the creator's monthly Price (deterministic lookup key)
3. Create the remote subscription (idempotency key derived from the pair,
   price and request_id)
4. Persist Subscription + PaymentTransaction in one database transaction
5. If step 4 fails, cancel the remote subscription (compensation)
6. Report the payment outcome; credit earnings right away when the first
   charge already succeeded

The webhook path converges on the same rows, so a lifecycle event that beats
step 4 (placeholder row) or a crash after step 4 both end in the same state.

Usage:
    orchestrator = SubscriptionOrchestrator()
    result = orchestrator.create_subscription(
        request.user,
        CreateSubscriptionParams(
            creator_id=creator.pk,
            payment_method_id="pm_xxx",
            price=Decimal("19.99"),
            currency="usd",
        ),
    )
    if result.success and result.data.requires_action:
        ...  # hand client_continuation_token to the client SDK
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.contrib.auth import get_user_model
from django.db import DatabaseError, transaction

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.services import BaseService, ServiceResult

from billing.adapters import (
    CreatePriceParams,
    CreateRemoteSubscriptionParams,
    IdempotencyKeyGenerator,
    PaymentIntentResult,
    StripeAdapter,
    SubscriptionResult,
)
from billing.exceptions import (
    BillingError,
    CompensationRequiredError,
    LockAcquisitionError,
    StripeError,
)
from billing.locks import DistributedLock, subscribe_lock_key
from billing.models import BillingProfile, PaymentTransaction, Subscription
from billing.services.earnings import EarningsService
from billing.services.reconciler import SubscriptionReconciler
from billing.services.transactions import PaymentTransactionRecorder
from billing.state_machines import SubscriptionStatus

# Shown to clients for every processor or persistence failure
GENERIC_PAYMENT_FAILURE = "Payment could not be completed"
PAYMENT_FAILED = "PAYMENT_FAILED"

# PaymentIntent statuses that end the first charge without success
FAILED_INTENT_STATUSES = ("requires_payment_method", "canceled")

# Covers price lookup, remote create and local persist
SUBSCRIBE_LOCK_TTL = 60
SUBSCRIBE_LOCK_WAIT = 10.0


def _whole_seconds(value):
    """Event timestamps are whole seconds; compare like with like."""
    return value.replace(microsecond=0) if value is not None else None


@dataclass
class CreateSubscriptionParams:
    creator_id: int | str
    payment_method_id: str
    price: Decimal
    currency: str
    request_id: str | None = None


@dataclass
class SubscriptionCreationResult:
    """
    Outcome reported to the client.

    Attributes:
        subscription: Local Subscription row
        status: Local subscription status
        requires_action: The first charge needs customer authentication
        client_continuation_token: PaymentIntent client secret when
            requires_action is set
    """

    subscription: Subscription
    status: str
    requires_action: bool = False
    client_continuation_token: str | None = None

    @property
    def subscription_id(self) -> str | None:
        return self.subscription.stripe_subscription_id


@dataclass
class _ValidatedRequest:
    creator: object
    customer_id: str
    price_cents: int
    currency: str


class SubscriptionOrchestrator(BaseService):
    """
    Creates, confirms and cancels creator subscriptions.

    The Stripe adapter is injected so tests can pass a stub with the same
    method names.
    """

    def __init__(self, adapter=StripeAdapter):
        self.adapter = adapter

    # =========================================================================
    # Create
    # =========================================================================

    def create_subscription(
        self,
        subscriber,
        params: CreateSubscriptionParams,
    ) -> ServiceResult[SubscriptionCreationResult]:
        """
        Subscribe `subscriber` to a creator.

        Requests for the same subscriber/creator pair run one at a time under
        a distributed lock, so the duplicate guard and the remote create
        cannot interleave.
        """
        logger = self.get_logger()
        log_context = {
            "subscriber_id": subscriber.pk,
            "creator_id": params.creator_id,
            "request_id": params.request_id,
        }

        try:
            with DistributedLock(
                subscribe_lock_key(subscriber.pk, params.creator_id),
                ttl=SUBSCRIBE_LOCK_TTL,
                timeout=SUBSCRIBE_LOCK_WAIT,
            ):
                return self._create_locked(subscriber, params, log_context)
        except LockAcquisitionError:
            logger.warning("Concurrent subscription request still running", extra=log_context)
            return ServiceResult.failure(
                "A subscription request for this creator is already in progress",
                error_code="SUBSCRIPTION_IN_PROGRESS",
            )

    def _create_locked(
        self,
        subscriber,
        params: CreateSubscriptionParams,
        log_context: dict,
    ) -> ServiceResult[SubscriptionCreationResult]:
        logger = self.get_logger()

        try:
            validated = self._validate(subscriber, params)
        except (ValidationError, NotFoundError, ConflictError) as e:
            logger.info(
                "Subscription request rejected",
                extra={**log_context, "error_code": e.error_code},
            )
            return ServiceResult.from_exception(e)

        creator = validated.creator
        idempotency_key = self._idempotency_key(subscriber, creator, params, validated)
        log_context["idempotency_key"] = idempotency_key
        try:
            price = self.adapter.get_or_create_price(
                CreatePriceParams(
                    lookup_key=f"creator_{creator.pk}_monthly_{validated.price_cents}",
                    unit_amount_cents=validated.price_cents,
                    currency=validated.currency,
                    product_name=f"Monthly subscription to {creator.get_username()}",
                    metadata={"creator_id": str(creator.pk)},
                )
            )
            remote = self.adapter.create_subscription(
                CreateRemoteSubscriptionParams(
                    customer_id=validated.customer_id,
                    price_id=price.id,
                    payment_method_id=params.payment_method_id,
                    idempotency_key=idempotency_key,
                    metadata={
                        "subscriber_id": str(subscriber.pk),
                        "creator_id": str(creator.pk),
                    },
                )
            )
        except StripeError as e:
            logger.warning(
                "Remote subscription creation failed",
                extra={**log_context, "error_code": e.error_code, "stripe_code": e.stripe_code},
            )
            return ServiceResult.failure(GENERIC_PAYMENT_FAILURE, error_code=PAYMENT_FAILED)

        log_context["stripe_subscription_id"] = remote.id

        try:
            subscription, txn = self._persist(subscriber, creator, remote, price.id, validated)
        except CompensationRequiredError as e:
            self._compensate(e, log_context)
            return ServiceResult.failure(GENERIC_PAYMENT_FAILURE, error_code=PAYMENT_FAILED)

        logger.info(
            "Subscription created",
            extra={**log_context, "remote_status": remote.status},
        )
        return self._report_payment(subscription, txn, remote.payment_intent, log_context)

    @staticmethod
    def _idempotency_key(subscriber, creator, params, validated: _ValidatedRequest) -> str:
        """
        Stripe idempotency key for the remote create.

        Without a client request_id the key is derived from the pair and the
        price, so a retry after a timeout replays the remote subscription the
        first attempt created instead of opening a second one. `attempt` counts the pair's earlier
        subscriptions, which gives a resubscription after cancellation a
        fresh key.
        """
        request_id = params.request_id or f"price_{validated.price_cents}"
        previous = Subscription.objects.for_pair(subscriber, creator).count()
        return IdempotencyKeyGenerator.generate(
            "create_subscription",
            f"{subscriber.pk}:{creator.pk}:{request_id}",
            attempt=previous + 1,
        )

    def _validate(self, subscriber, params: CreateSubscriptionParams) -> _ValidatedRequest:
        User = get_user_model()
        try:
            creator = User.objects.filter(pk=params.creator_id).first()
        except (TypeError, ValueError):
            creator = None
        if creator is None or not creator.is_active:
            raise NotFoundError("Creator not found", error_code="CREATOR_NOT_FOUND")

        if creator.pk == subscriber.pk:
            raise ValidationError(
                "You cannot subscribe to yourself",
                error_code="SELF_SUBSCRIPTION",
            )

        creator_profile = BillingProfile.objects.filter(user=creator).first()
        if creator_profile is None or not creator_profile.accepts_paid_subscriptions:
            raise ValidationError(
                "Creator does not offer paid subscriptions",
                error_code="CREATOR_NOT_ACCEPTING_SUBSCRIPTIONS",
            )

        price_cents = self._to_minor_units(params.price)
        currency = (params.currency or "").lower()
        if (
            price_cents != creator_profile.subscription_price_cents
            or currency != creator_profile.subscription_currency
        ):
            raise ValidationError(
                "Requested price does not match the creator's subscription price",
                error_code="PRICE_MISMATCH",
            )

        if Subscription.objects.for_pair(subscriber, creator).open().exists():
            raise ConflictError(
                "You already have a subscription to this creator",
                error_code="ALREADY_SUBSCRIBED",
            )

        if not params.payment_method_id:
            raise ValidationError(
                "A payment method is required",
                error_code="PAYMENT_METHOD_REQUIRED",
            )

        subscriber_profile = BillingProfile.objects.filter(user=subscriber).first()
        if subscriber_profile is None or not subscriber_profile.has_payment_customer:
            raise ValidationError(
                "Set up a payment method before subscribing",
                error_code="PAYMENT_CUSTOMER_MISSING",
            )

        return _ValidatedRequest(
            creator=creator,
            customer_id=subscriber_profile.stripe_customer_id,
            price_cents=price_cents,
            currency=currency,
        )

    @staticmethod
    def _to_minor_units(price) -> int:
        try:
            amount = Decimal(str(price))
        except (InvalidOperation, ValueError) as e:
            raise ValidationError("Invalid price", error_code="INVALID_PRICE") from e
        if amount <= 0:
            raise ValidationError("Price must be positive", error_code="INVALID_PRICE")
        return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def _persist(
        self,
        subscriber,
        creator,
        remote: SubscriptionResult,
        price_id: str,
        validated: _ValidatedRequest,
    ) -> tuple[Subscription, PaymentTransaction | None]:
        """
        Insert (or adopt) the local rows for a freshly created remote subscription.

        Raises:
            CompensationRequiredError: Any database failure; the remote
                subscription must be canceled by the caller
        """
        if remote.payment_intent is not None:
            # The first charge decides activation through the earnings ledger
            initial_status = SubscriptionStatus.INCOMPLETE
        else:
            initial_status = (
                SubscriptionReconciler.map_remote_status(remote.status)
                or SubscriptionStatus.INCOMPLETE
            )

        try:
            with transaction.atomic():
                subscription, created = Subscription.objects.select_for_update().get_or_create(
                    stripe_subscription_id=remote.id,
                    defaults={
                        "subscriber": subscriber,
                        "creator": creator,
                        "stripe_price_id": price_id,
                        "price_cents": validated.price_cents,
                        "currency": validated.currency,
                        "status": initial_status,
                        "current_period_start": remote.current_period_start,
                        "current_period_end": remote.current_period_end,
                        "last_event_at": _whole_seconds(remote.created),
                    },
                )
                if not created:
                    # A webhook got here first; keep its status and period
                    subscription.stripe_price_id = price_id
                    subscription.price_cents = validated.price_cents
                    subscription.currency = validated.currency
                    subscription.save(
                        update_fields=["stripe_price_id", "price_cents", "currency", "updated_at"]
                    )

                txn = None
                if remote.payment_intent is not None:
                    txn = PaymentTransactionRecorder.record_initial_charge(
                        subscription,
                        remote.payment_intent,
                        invoice_id=remote.latest_invoice_id,
                    )
        except DatabaseError as e:
            raise CompensationRequiredError(
                "Could not persist subscription locally",
                stripe_subscription_id=remote.id,
                details={"error": str(e)},
            ) from e

        return subscription, txn

    def _compensate(self, error: CompensationRequiredError, log_context: dict) -> None:
        logger = self.get_logger()
        logger.error(
            "Local persistence failed after remote subscription was created; canceling it",
            extra={**log_context, "error": error.details.get("error")},
        )
        try:
            self.adapter.cancel_subscription(error.stripe_subscription_id)
        except StripeError:
            logger.critical(
                "Compensation failed: remote subscription left without a local record",
                extra={
                    **log_context,
                    "stripe_subscription_id": error.stripe_subscription_id,
                },
                exc_info=True,
            )
            return
        logger.warning("Remote subscription canceled by compensation", extra=log_context)

    def _report_payment(
        self,
        subscription: Subscription,
        txn: PaymentTransaction | None,
        intent: PaymentIntentResult | None,
        log_context: dict,
    ) -> ServiceResult[SubscriptionCreationResult]:
        """Turn the first charge's PaymentIntent status into the client result."""
        logger = self.get_logger()

        if intent is not None and intent.requires_action:
            return ServiceResult.success(
                SubscriptionCreationResult(
                    subscription=subscription,
                    status=subscription.status,
                    requires_action=True,
                    client_continuation_token=intent.client_secret,
                )
            )

        if intent is not None and intent.status in FAILED_INTENT_STATUSES:
            PaymentTransactionRecorder.mark_failed(intent.id, intent.failure_message)
            logger.info(
                "First subscription payment failed",
                extra={**log_context, "payment_intent_status": intent.status},
            )
            self._abandon(subscription, log_context)
            return ServiceResult.failure(GENERIC_PAYMENT_FAILURE, error_code=PAYMENT_FAILED)

        if intent is not None and intent.succeeded:
            recorded = PaymentTransactionRecorder.mark_succeeded(intent.id)
            txn = recorded.transaction or txn
            if txn is not None:
                try:
                    EarningsService.record_for_transaction(txn)
                except (BillingError, DatabaseError):
                    # payment_intent.succeeded will credit it on delivery
                    logger.error(
                        "Could not record earning synchronously",
                        extra=log_context,
                        exc_info=True,
                    )

        subscription = Subscription.objects.get(pk=subscription.pk)
        return ServiceResult.success(
            SubscriptionCreationResult(subscription=subscription, status=subscription.status)
        )

    def _abandon(self, subscription: Subscription, log_context: dict) -> None:
        """
        End an attempt whose first charge failed.

        Cancels both sides so the pair is free for a retry with another card.
        If the remote cancel fails, Stripe expires the incomplete subscription
        itself and the deletion event converges on the canceled row.
        """
        logger = self.get_logger()
        if not Subscription.objects.get(pk=subscription.pk).is_incomplete:
            # Already activated; a later failed charge is a renewal problem
            return

        try:
            self.adapter.cancel_subscription(subscription.stripe_subscription_id)
        except StripeError:
            logger.warning(
                "Could not cancel remote subscription after failed first charge",
                extra=log_context,
                exc_info=True,
            )

        with transaction.atomic():
            subscription = Subscription.objects.select_for_update().get(pk=subscription.pk)
            if subscription.is_incomplete:
                subscription.cancel()
                subscription.save()

    # =========================================================================
    # Confirm & Cancel
    # =========================================================================

    def confirm_subscription(
        self,
        subscriber,
        stripe_subscription_id: str,
    ) -> ServiceResult[SubscriptionCreationResult]:
        """
        Re-read a subscription after the client finished authentication.

        Applies the remote state directly instead of waiting for webhooks.
        """
        subscription = Subscription.objects.filter(
            stripe_subscription_id=stripe_subscription_id,
            subscriber=subscriber,
        ).first()
        if subscription is None:
            return ServiceResult.failure(
                "Subscription not found",
                error_code="SUBSCRIPTION_NOT_FOUND",
            )

        log_context = {
            "subscriber_id": subscriber.pk,
            "stripe_subscription_id": stripe_subscription_id,
        }
        try:
            remote = self.adapter.retrieve_subscription(stripe_subscription_id)
        except StripeError as e:
            self.get_logger().warning(
                "Could not retrieve subscription for confirmation",
                extra={**log_context, "error_code": e.error_code},
            )
            return ServiceResult.failure(GENERIC_PAYMENT_FAILURE, error_code=PAYMENT_FAILED)

        SubscriptionReconciler.apply_remote_state(remote)

        txn = None
        if remote.payment_intent is not None:
            txn = PaymentTransactionRecorder.record_initial_charge(
                subscription,
                remote.payment_intent,
                invoice_id=remote.latest_invoice_id,
            )
        return self._report_payment(subscription, txn, remote.payment_intent, log_context)

    def cancel_subscription(
        self,
        subscriber,
        stripe_subscription_id: str,
    ) -> ServiceResult[Subscription]:
        """Stop renewing at the end of the current period."""
        subscription = Subscription.objects.filter(
            stripe_subscription_id=stripe_subscription_id,
            subscriber=subscriber,
        ).first()
        if subscription is None:
            return ServiceResult.failure(
                "Subscription not found",
                error_code="SUBSCRIPTION_NOT_FOUND",
            )
        if subscription.is_canceled:
            return ServiceResult.failure(
                "Subscription is already canceled",
                error_code="ALREADY_CANCELED",
            )

        try:
            self.adapter.schedule_cancellation(stripe_subscription_id)
        except StripeError as e:
            self.get_logger().warning(
                "Could not schedule cancellation",
                extra={"stripe_subscription_id": stripe_subscription_id, "error_code": e.error_code},
            )
            return ServiceResult.failure(
                "Subscription could not be canceled",
                error_code="CANCELLATION_FAILED",
            )

        subscription.cancel_at_period_end = True
        subscription.save(update_fields=["cancel_at_period_end", "updated_at"])
        self.get_logger().info(
            "Subscription set to cancel at period end",
            extra={"stripe_subscription_id": stripe_subscription_id},
        )
        return ServiceResult.success(subscription)
