"""
Payment method setup for subscribers.

Creates the Stripe Customer on first use and issues SetupIntents the client
confirms to save a card. Once Stripe reports the SetupIntent succeeded, the
webhook handler stores the resulting payment method as the profile default.
Saved cards can be read back through their SetupIntent and detached unless a
live subscription still renews with them.
"""

from __future__ import annotations

from django.utils import timezone

from core.services import BaseService, ServiceResult

from billing.adapters import IdempotencyKeyGenerator, SetupIntentResult, StripeAdapter
from billing.exceptions import StripeError, StripeInvalidRequestError
from billing.models import BillingProfile, Subscription


class PaymentMethodService(BaseService):
    def __init__(self, adapter=StripeAdapter):
        self.adapter = adapter

    def ensure_customer(self, user) -> BillingProfile:
        """
        Return the user's billing profile, creating the Stripe Customer if needed.

        Raises:
            StripeError: Customer creation failed
        """
        profile, _ = BillingProfile.objects.get_or_create(user=user)
        if profile.stripe_customer_id:
            return profile

        customer_id = self.adapter.create_customer(
            email=user.email,
            user_id=str(user.pk),
            idempotency_key=IdempotencyKeyGenerator.generate("create_customer", user.pk),
        )
        BillingProfile.objects.filter(pk=profile.pk, stripe_customer_id__isnull=True).update(
            stripe_customer_id=customer_id,
            updated_at=timezone.now(),
        )
        self.get_logger().info(
            "Created Stripe customer",
            extra={"user_id": user.pk, "customer_id": customer_id},
        )
        return BillingProfile.objects.get(pk=profile.pk)

    def create_setup_intent(self, user) -> ServiceResult[SetupIntentResult]:
        try:
            profile = self.ensure_customer(user)
            intent = self.adapter.create_setup_intent(profile.stripe_customer_id)
        except StripeError as e:
            self.get_logger().warning(
                "Could not create setup intent",
                extra={"user_id": user.pk, "error_code": e.error_code},
            )
            return ServiceResult.failure(
                "Could not start payment method setup",
                error_code="PAYMENT_METHOD_SETUP_FAILED",
            )
        return ServiceResult.success(intent)

    @classmethod
    def record_default_payment_method(cls, setup_intent: SetupIntentResult) -> bool:
        """
        Store a confirmed SetupIntent's payment method as the customer's default.

        Returns:
            False when no billing profile belongs to the intent's customer
        """
        if not setup_intent.customer_id or not setup_intent.payment_method_id:
            return False

        updated = BillingProfile.objects.filter(
            stripe_customer_id=setup_intent.customer_id
        ).update(
            default_payment_method_id=setup_intent.payment_method_id,
            updated_at=timezone.now(),
        )
        if updated:
            cls.get_logger().info(
                "Default payment method updated",
                extra={
                    "customer_id": setup_intent.customer_id,
                    "setup_intent_id": setup_intent.id,
                },
            )
        return bool(updated)

    def retrieve_setup_intent(self, user, setup_intent_id: str) -> ServiceResult[SetupIntentResult]:
        """
        Read back one of the user's SetupIntents with its payment method.

        Accepts the SetupIntent id or its client secret; the client usually
        only holds the latter.
        """
        setup_intent_id = setup_intent_id.split("_secret_")[0]
        profile = BillingProfile.objects.filter(user=user).first()
        if profile is None or not profile.has_payment_customer:
            return ServiceResult.failure(
                "Setup intent not found",
                error_code="SETUP_INTENT_NOT_FOUND",
            )

        try:
            intent = self.adapter.retrieve_setup_intent(setup_intent_id)
        except StripeInvalidRequestError:
            intent = None
        except StripeError as e:
            self.get_logger().warning(
                "Could not retrieve setup intent",
                extra={"user_id": user.pk, "error_code": e.error_code},
            )
            return ServiceResult.failure(
                "Could not read payment method setup",
                error_code="PAYMENT_METHOD_SETUP_FAILED",
            )

        # Other customers' intents look exactly like missing ones
        if intent is None or intent.customer_id != profile.stripe_customer_id:
            return ServiceResult.failure(
                "Setup intent not found",
                error_code="SETUP_INTENT_NOT_FOUND",
            )
        return ServiceResult.success(intent)

    def detach_payment_method(self, user, payment_method_id: str) -> ServiceResult[None]:
        """
        Remove a saved card from the user's Stripe customer.

        Refused while one of the user's live subscriptions renews with it.
        """
        logger = self.get_logger()
        log_context = {"user_id": user.pk, "payment_method_id": payment_method_id}

        profile = BillingProfile.objects.filter(user=user).first()
        if profile is None or not profile.has_payment_customer:
            return ServiceResult.failure(
                "Payment method not found",
                error_code="PAYMENT_METHOD_NOT_FOUND",
            )

        try:
            payment_method = self.adapter.retrieve_payment_method(payment_method_id)
        except StripeInvalidRequestError:
            payment_method = None
        except StripeError as e:
            logger.warning(
                "Could not retrieve payment method",
                extra={**log_context, "error_code": e.error_code},
            )
            return ServiceResult.failure(
                "Payment method could not be removed",
                error_code="PAYMENT_METHOD_DETACH_FAILED",
            )
        if payment_method is None or payment_method.customer_id != profile.stripe_customer_id:
            return ServiceResult.failure(
                "Payment method not found",
                error_code="PAYMENT_METHOD_NOT_FOUND",
            )

        try:
            in_use = self._used_by_live_subscription(user, payment_method_id)
            if in_use is not None:
                logger.info(
                    "Refused to detach payment method used by a subscription",
                    extra={**log_context, "stripe_subscription_id": in_use},
                )
                return ServiceResult.failure(
                    "This payment method pays for an active subscription",
                    error_code="PAYMENT_METHOD_IN_USE",
                )
            self.adapter.detach_payment_method(payment_method_id)
        except StripeError as e:
            logger.warning(
                "Could not detach payment method",
                extra={**log_context, "error_code": e.error_code},
            )
            return ServiceResult.failure(
                "Payment method could not be removed",
                error_code="PAYMENT_METHOD_DETACH_FAILED",
            )

        BillingProfile.objects.filter(
            pk=profile.pk, default_payment_method_id=payment_method_id
        ).update(default_payment_method_id=None, updated_at=timezone.now())
        logger.info("Payment method detached", extra=log_context)
        return ServiceResult.success(None)

    def _used_by_live_subscription(self, user, payment_method_id: str) -> str | None:
        """
        Return the id of a live subscription that renews with this payment method.

        Raises:
            StripeError: A subscription could not be read
        """
        subscription_ids = Subscription.objects.filter(subscriber=user).open().values_list(
            "stripe_subscription_id", flat=True
        )
        for subscription_id in subscription_ids:
            remote = self.adapter.retrieve_subscription(subscription_id)
            if remote.default_payment_method_id == payment_method_id:
                return subscription_id
        return None
