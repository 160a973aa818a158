"""
Stripe API adapter for billing operations.

This module provides the StripeAdapter class which encapsulates all
Stripe API interactions. All Stripe calls should go through this
adapter to ensure consistent error handling, timeouts, idempotency,
and observability.

Features:
- Configurable timeouts on all API calls
- Pinned API version so payload shapes stay stable
- Automatic error translation to domain exceptions
- Structured logging with timing metrics
- Idempotency support for safe retries

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_API_VERSION: API version requests are made with
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: Network retries performed by the Stripe client

Usage:
    from billing.adapters import StripeAdapter, CreateRemoteSubscriptionParams

    price = StripeAdapter.get_or_create_price(
        CreatePriceParams(
            lookup_key="creator_42_monthly_500",
            unit_amount_cents=500,
            currency="usd",
            product_name="Monthly subscription",
        )
    )
    remote = StripeAdapter.create_subscription(
        CreateRemoteSubscriptionParams(
            customer_id="cus_xxx",
            price_id=price.id,
            payment_method_id="pm_xxx",
            idempotency_key="create_subscription:...",
        )
    )
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from typing import Any

import stripe
from django.conf import settings

from billing.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


# =============================================================================
# Payload Helpers
# =============================================================================


def stripe_field(obj: Any, name: str, default: Any = None) -> Any:
    """
    Read a field from a Stripe object or a plain webhook dict.

    API responses are StripeObjects while webhook payloads are parsed JSON,
    so every parser goes through this helper.
    """
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def from_timestamp(value: Any) -> datetime | None:
    """Convert a Stripe epoch-seconds timestamp to an aware datetime."""
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)


def expandable_id(value: Any) -> str | None:
    """Return the id of an expandable field, expanded or not."""
    if value is None or isinstance(value, str):
        return value
    return stripe_field(value, "id")


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreatePriceParams:
    """
    Parameters for resolving a monthly recurring Price.

    Attributes:
        lookup_key: Deterministic key; the same key always maps to one Price
        unit_amount_cents: Price in smallest currency unit
        currency: ISO 4217 currency code
        product_name: Name of the product created alongside a new Price
        metadata: Key-value pairs to attach to the Price
    """

    lookup_key: str
    unit_amount_cents: int
    currency: str
    product_name: str
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.unit_amount_cents <= 0:
            raise ValueError("unit_amount_cents must be positive")
        if not self.lookup_key:
            raise ValueError("lookup_key is required")


@dataclass
class CreateRemoteSubscriptionParams:
    """
    Parameters for creating a Stripe Subscription.

    Payment is attempted immediately; when it needs customer action the
    subscription comes back `incomplete` with the PaymentIntent attached.
    """

    customer_id: str
    price_id: str
    payment_method_id: str
    idempotency_key: str
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
        if not self.customer_id or not self.price_id:
            raise ValueError("customer_id and price_id are required")


@dataclass
class PriceResult:
    id: str
    lookup_key: str | None
    unit_amount_cents: int
    currency: str

    @classmethod
    def from_stripe(cls, price: Any) -> PriceResult:
        return cls(
            id=stripe_field(price, "id"),
            lookup_key=stripe_field(price, "lookup_key"),
            unit_amount_cents=int(stripe_field(price, "unit_amount") or 0),
            currency=stripe_field(price, "currency") or "usd",
        )


@dataclass
class PaymentIntentResult:
    """
    Result from Stripe PaymentIntent reads.

    Attributes:
        id: PaymentIntent ID (pi_xxx)
        status: requires_action, processing, succeeded, ...
        amount_cents: Amount in cents
        currency: Currency code
        client_secret: Secret the client uses to finish authentication
        failure_message: last_payment_error.message, if any
    """

    id: str
    status: str
    amount_cents: int
    currency: str
    client_secret: str | None = None
    failure_message: str | None = None
    invoice_id: str | None = None

    @classmethod
    def from_stripe(cls, intent: Any) -> PaymentIntentResult:
        last_error = stripe_field(intent, "last_payment_error")
        return cls(
            id=stripe_field(intent, "id"),
            status=stripe_field(intent, "status") or "",
            amount_cents=int(stripe_field(intent, "amount") or 0),
            currency=stripe_field(intent, "currency") or "usd",
            client_secret=stripe_field(intent, "client_secret"),
            failure_message=stripe_field(last_error, "message"),
            invoice_id=expandable_id(stripe_field(intent, "invoice")),
        )

    @property
    def requires_action(self) -> bool:
        return self.status == "requires_action"

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@dataclass
class InvoiceResult:
    """Fields of a Stripe Invoice the billing handlers care about."""

    id: str
    subscription_id: str | None
    payment_intent_id: str | None
    customer_id: str | None
    amount_paid_cents: int
    amount_due_cents: int
    currency: str
    billing_reason: str | None = None
    failure_message: str | None = None

    @classmethod
    def from_stripe(cls, invoice: Any) -> InvoiceResult:
        payment_intent = stripe_field(invoice, "payment_intent")
        failure_message = None
        if payment_intent is not None and not isinstance(payment_intent, str):
            failure_message = stripe_field(
                stripe_field(payment_intent, "last_payment_error"), "message"
            )
        return cls(
            id=stripe_field(invoice, "id"),
            subscription_id=expandable_id(stripe_field(invoice, "subscription")),
            payment_intent_id=expandable_id(payment_intent),
            customer_id=expandable_id(stripe_field(invoice, "customer")),
            amount_paid_cents=int(stripe_field(invoice, "amount_paid") or 0),
            amount_due_cents=int(stripe_field(invoice, "amount_due") or 0),
            currency=stripe_field(invoice, "currency") or "usd",
            billing_reason=stripe_field(invoice, "billing_reason"),
            failure_message=failure_message,
        )


@dataclass
class SubscriptionResult:
    """
    Result from Stripe Subscription operations and subscription webhooks.

    Attributes:
        id: Subscription ID (sub_xxx)
        status: Stripe status (incomplete, active, past_due, canceled, ...)
        customer_id: Stripe Customer ID
        price_id / unit_amount_cents / currency: From the first subscription item
        current_period_start/end: Current billing period
        metadata: Our subscriber_id / creator_id markers
        latest_invoice_id: ID of the latest invoice
        payment_intent: Latest invoice's PaymentIntent, when expanded
        default_payment_method_id: Card charged for renewals
    """

    id: str
    status: str
    customer_id: str | None
    price_id: str | None = None
    unit_amount_cents: int | None = None
    currency: str | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    metadata: dict[str, str] = field(default_factory=dict)
    latest_invoice_id: str | None = None
    payment_intent: PaymentIntentResult | None = None
    created: datetime | None = None
    default_payment_method_id: str | None = None

    @classmethod
    def from_stripe(cls, subscription: Any) -> SubscriptionResult:
        items = stripe_field(stripe_field(subscription, "items"), "data") or []
        first_item = items[0] if items else None
        price = stripe_field(first_item, "price")

        # Newer API versions moved the billing period onto the items
        period_start = stripe_field(subscription, "current_period_start")
        period_end = stripe_field(subscription, "current_period_end")
        if period_start is None:
            period_start = stripe_field(first_item, "current_period_start")
        if period_end is None:
            period_end = stripe_field(first_item, "current_period_end")

        latest_invoice = stripe_field(subscription, "latest_invoice")
        payment_intent = None
        if latest_invoice is not None and not isinstance(latest_invoice, str):
            intent = stripe_field(latest_invoice, "payment_intent")
            if intent is not None and not isinstance(intent, str):
                payment_intent = PaymentIntentResult.from_stripe(intent)

        metadata = stripe_field(subscription, "metadata") or {}
        unit_amount = stripe_field(price, "unit_amount")

        return cls(
            id=stripe_field(subscription, "id"),
            status=stripe_field(subscription, "status") or "",
            customer_id=expandable_id(stripe_field(subscription, "customer")),
            price_id=stripe_field(price, "id"),
            unit_amount_cents=int(unit_amount) if unit_amount is not None else None,
            currency=stripe_field(price, "currency") or stripe_field(subscription, "currency"),
            current_period_start=from_timestamp(period_start),
            current_period_end=from_timestamp(period_end),
            cancel_at_period_end=bool(stripe_field(subscription, "cancel_at_period_end")),
            metadata={str(k): str(v) for k, v in dict(metadata).items()},
            latest_invoice_id=expandable_id(latest_invoice),
            payment_intent=payment_intent,
            created=from_timestamp(stripe_field(subscription, "created")),
            default_payment_method_id=expandable_id(
                stripe_field(subscription, "default_payment_method")
            ),
        )


@dataclass
class PaymentMethodResult:
    """
    A saved payment method, with card details when it is a card.

    Only display fields are kept; the full card number never leaves Stripe.
    """

    id: str
    type: str
    customer_id: str | None
    card_brand: str | None = None
    card_last4: str | None = None
    card_exp_month: int | None = None
    card_exp_year: int | None = None

    @classmethod
    def from_stripe(cls, payment_method: Any) -> PaymentMethodResult:
        card = stripe_field(payment_method, "card")
        exp_month = stripe_field(card, "exp_month")
        exp_year = stripe_field(card, "exp_year")
        return cls(
            id=stripe_field(payment_method, "id"),
            type=stripe_field(payment_method, "type") or "",
            customer_id=expandable_id(stripe_field(payment_method, "customer")),
            card_brand=stripe_field(card, "brand"),
            card_last4=stripe_field(card, "last4"),
            card_exp_month=int(exp_month) if exp_month is not None else None,
            card_exp_year=int(exp_year) if exp_year is not None else None,
        )


@dataclass
class SetupIntentResult:
    id: str
    status: str
    client_secret: str | None
    customer_id: str | None
    payment_method_id: str | None
    payment_method: PaymentMethodResult | None = None

    @classmethod
    def from_stripe(cls, intent: Any) -> SetupIntentResult:
        payment_method = stripe_field(intent, "payment_method")
        return cls(
            id=stripe_field(intent, "id"),
            status=stripe_field(intent, "status") or "",
            client_secret=stripe_field(intent, "client_secret"),
            customer_id=expandable_id(stripe_field(intent, "customer")),
            payment_method_id=expandable_id(payment_method),
            payment_method=(
                PaymentMethodResult.from_stripe(payment_method)
                if payment_method is not None and not isinstance(payment_method, str)
                else None
            ),
        )


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    The hash component provides uniqueness across deployments sharing a
    Stripe account while the structured format aids debugging.

    Example:
        key = IdempotencyKeyGenerator.generate(
            operation="create_subscription",
            entity_id=request_id,
        )
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained, so the
    class itself can be injected wherever an adapter is expected (tests pass
    a stub with the same method names).
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key, version and timeout."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.api_version = settings.STRIPE_API_VERSION
        stripe.max_network_retries = settings.STRIPE_MAX_RETRIES
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def _call(
        cls,
        operation: str,
        log_context: dict[str, Any],
        func,
        *args,
        **kwargs,
    ) -> Any:
        """
        Run one Stripe SDK call with timing, logging and error translation.

        Args:
            operation: Name used in logs
            log_context: Extra logging fields (ids, keys)
            func: The Stripe SDK callable
            *args, **kwargs: Arguments for the SDK call

        Returns:
            Whatever the SDK call returns
        """
        cls._configure_stripe()
        logger = cls.get_logger()
        log_context = {"operation": operation, **log_context}

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            response = func(*args, **kwargs)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise  # _handle_stripe_error always raises

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={**log_context, "duration_ms": duration_ms},
        )
        return response

    # =========================================================================
    # Customers & Payment Methods
    # =========================================================================

    @classmethod
    def create_customer(
        cls,
        email: str,
        user_id: str,
        idempotency_key: str,
    ) -> str:
        """
        Create a Stripe Customer for a user.

        Returns:
            The new Customer ID (cus_xxx)
        """
        customer = cls._call(
            "create_customer",
            {"user_id": user_id, "idempotency_key": idempotency_key},
            stripe.Customer.create,
            email=email or None,
            metadata={"user_id": user_id},
            idempotency_key=idempotency_key,
        )
        return stripe_field(customer, "id")

    @classmethod
    def create_setup_intent(cls, customer_id: str) -> SetupIntentResult:
        """Create an off-session card SetupIntent for the customer."""
        intent = cls._call(
            "create_setup_intent",
            {"customer_id": customer_id},
            stripe.SetupIntent.create,
            customer=customer_id,
            payment_method_types=["card"],
            usage="off_session",
        )
        return SetupIntentResult.from_stripe(intent)

    @classmethod
    def retrieve_setup_intent(cls, setup_intent_id: str) -> SetupIntentResult:
        """Read a SetupIntent with its payment method expanded."""
        intent = cls._call(
            "retrieve_setup_intent",
            {"setup_intent_id": setup_intent_id},
            stripe.SetupIntent.retrieve,
            setup_intent_id,
            expand=["payment_method"],
        )
        return SetupIntentResult.from_stripe(intent)

    # =========================================================================
    # Payment Methods
    # =========================================================================

    @classmethod
    def retrieve_payment_method(cls, payment_method_id: str) -> PaymentMethodResult:
        payment_method = cls._call(
            "retrieve_payment_method",
            {"payment_method_id": payment_method_id},
            stripe.PaymentMethod.retrieve,
            payment_method_id,
        )
        return PaymentMethodResult.from_stripe(payment_method)

    @classmethod
    def detach_payment_method(cls, payment_method_id: str) -> PaymentMethodResult:
        """Detach a payment method from its customer; it can no longer be charged."""
        payment_method = cls._call(
            "detach_payment_method",
            {"payment_method_id": payment_method_id},
            stripe.PaymentMethod.detach,
            payment_method_id,
        )
        return PaymentMethodResult.from_stripe(payment_method)

    # =========================================================================
    # Prices
    # =========================================================================

    @classmethod
    def get_or_create_price(cls, params: CreatePriceParams) -> PriceResult:
        """
        Resolve the monthly Price for a lookup key, creating it if missing.

        Repeated calls with the same lookup key reuse the same Price. The
        creation request is idempotent on the lookup key as well, so two
        concurrent first calls converge on one object.
        """
        log_context = {
            "lookup_key": params.lookup_key,
            "unit_amount_cents": params.unit_amount_cents,
            "currency": params.currency,
        }

        existing = cls._call(
            "list_prices",
            log_context,
            stripe.Price.list,
            lookup_keys=[params.lookup_key],
            active=True,
            limit=1,
        )
        data = stripe_field(existing, "data") or []
        if data:
            return PriceResult.from_stripe(data[0])

        price = cls._call(
            "create_price",
            log_context,
            stripe.Price.create,
            unit_amount=params.unit_amount_cents,
            currency=params.currency,
            recurring={"interval": "month"},
            product_data={"name": params.product_name},
            lookup_key=params.lookup_key,
            metadata=params.metadata,
            idempotency_key=IdempotencyKeyGenerator.generate(
                "create_price", params.lookup_key
            ),
        )
        return PriceResult.from_stripe(price)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    @classmethod
    def create_subscription(
        cls,
        params: CreateRemoteSubscriptionParams,
    ) -> SubscriptionResult:
        """
        Create a Stripe Subscription and attempt the first payment.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInvalidRequestError: Invalid parameters
            StripeAPIUnavailableError: Stripe service unavailable
            StripeTimeoutError: Request timed out
        """
        subscription = cls._call(
            "create_subscription",
            {
                "customer_id": params.customer_id,
                "price_id": params.price_id,
                "idempotency_key": params.idempotency_key,
            },
            stripe.Subscription.create,
            customer=params.customer_id,
            items=[{"price": params.price_id}],
            default_payment_method=params.payment_method_id,
            payment_behavior="allow_incomplete",
            expand=["latest_invoice.payment_intent"],
            metadata=params.metadata,
            idempotency_key=params.idempotency_key,
        )
        return SubscriptionResult.from_stripe(subscription)

    @classmethod
    def retrieve_subscription(cls, subscription_id: str) -> SubscriptionResult:
        subscription = cls._call(
            "retrieve_subscription",
            {"stripe_subscription_id": subscription_id},
            stripe.Subscription.retrieve,
            id=subscription_id,
            expand=["latest_invoice.payment_intent"],
        )
        return SubscriptionResult.from_stripe(subscription)

    @classmethod
    def cancel_subscription(cls, subscription_id: str) -> SubscriptionResult:
        """Cancel a Stripe Subscription immediately."""
        subscription = cls._call(
            "cancel_subscription",
            {"stripe_subscription_id": subscription_id},
            stripe.Subscription.cancel,
            subscription_id,
        )
        return SubscriptionResult.from_stripe(subscription)

    @classmethod
    def schedule_cancellation(cls, subscription_id: str) -> SubscriptionResult:
        """Stop renewing at the end of the current period."""
        subscription = cls._call(
            "schedule_cancellation",
            {"stripe_subscription_id": subscription_id},
            stripe.Subscription.modify,
            id=subscription_id,
            cancel_at_period_end=True,
        )
        return SubscriptionResult.from_stripe(subscription)

    @classmethod
    def list_recent_subscriptions(
        cls,
        created_after: datetime,
        created_before: datetime | None = None,
        page_size: int = 100,
    ) -> list[SubscriptionResult]:
        """
        List every subscription created inside a window, newest first.

        Follows `has_more` page by page so a busy window is read in full.
        Used by reconciliation to find remote subscriptions that never got
        a local row.

        Args:
            created_after: Inclusive lower bound
            created_before: Inclusive upper bound, None for "up to now"
            page_size: Subscriptions per request (Stripe allows up to 100)
        """
        created = {"gte": int(created_after.timestamp())}
        if created_before is not None:
            created["lte"] = int(created_before.timestamp())

        results: list[SubscriptionResult] = []
        starting_after = None
        while True:
            params = {"created": created, "status": "all", "limit": page_size}
            if starting_after is not None:
                params["starting_after"] = starting_after
            page = cls._call(
                "list_subscriptions",
                {
                    "created_after": created_after.isoformat(),
                    "starting_after": starting_after,
                },
                stripe.Subscription.list,
                **params,
            )
            data = stripe_field(page, "data") or []
            results.extend(SubscriptionResult.from_stripe(sub) for sub in data)
            if not data or not stripe_field(page, "has_more", False):
                return results
            starting_after = stripe_field(data[-1], "id")

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to domain exceptions.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInvalidRequestError: Invalid request parameters or auth
            StripeRateLimitError: Rate limited
            StripeTimeoutError: Request timed out
            StripeAPIUnavailableError: API unavailable or unknown failure
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )
            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
                decline_code=decline_code,
            ) from error

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise StripeInvalidRequestError(
                str(error),
                stripe_code=error.code,
            ) from error

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            ) from error

        elif isinstance(error, stripe.APIConnectionError):
            if "timed out" in str(error).lower():
                logger.error("Stripe request timed out", extra=log_context)
                raise StripeTimeoutError(
                    "Stripe request timed out. Retry with the same idempotency key.",
                    stripe_code="timeout",
                ) from error
            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            ) from error

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeInvalidRequestError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            ) from error

        elif isinstance(error, stripe.StripeError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            ) from error

        else:
            logger.error(
                f"Unexpected error from Stripe call: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                f"Unexpected Stripe error: {error}",
                stripe_code="unknown_error",
            ) from error
