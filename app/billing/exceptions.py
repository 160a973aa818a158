"""
Billing-specific exceptions.

Exception Hierarchy:
    BillingError (base for the billing domain)
    ├── SubscriptionNotFoundError - Subscription lookup failures
    ├── CompensationRequiredError - Local persist failed after remote creation
    ├── LockAcquisitionError - Per-pair subscribe lock not acquired (409)
    ├── WebhookError - Base for inbound webhook failures
    │   ├── InvalidSignatureError - Forged/tampered request (400, never retried)
    │   ├── MalformedEventError - Body is not a usable event envelope (400)
    │   └── WebhookMisconfiguredError - Signing secret missing (500)
    └── StripeError - Base for all Stripe API errors
        ├── StripeCardDeclinedError - Card declined (permanent)
        ├── StripeInvalidRequestError - Invalid request params (permanent)
        ├── StripeRateLimitError - Rate limited (transient, retry)
        ├── StripeAPIUnavailableError - API unavailable (transient, retry)
        └── StripeTimeoutError - Request timeout (transient, retry)

    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)

Usage:
    from billing.exceptions import InvalidSignatureError, StripeError

    try:
        event = verify_event(payload, signature, secret)
    except InvalidSignatureError:
        return HttpResponse(status=400)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError, NotFoundError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Billing Domain Exceptions
# =============================================================================


class BillingError(BaseApplicationError):
    """Base exception for all billing domain errors."""

    default_error_code: str = "BILLING_ERROR"


class SubscriptionNotFoundError(BillingError, NotFoundError):
    default_error_code: str = "SUBSCRIPTION_NOT_FOUND"


class CompensationRequiredError(BillingError):
    """
    Local persistence failed after the remote subscription was created.

    Raised inside the orchestrator only. Whoever catches it must cancel the
    remote subscription named in `stripe_subscription_id` before reporting
    the failure, otherwise Stripe keeps billing a subscription we have no
    record of.
    """

    default_error_code: str = "COMPENSATION_REQUIRED"

    def __init__(
        self,
        message: str,
        stripe_subscription_id: str,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        details["stripe_subscription_id"] = stripe_subscription_id
        super().__init__(message, details=details)
        self.stripe_subscription_id = stripe_subscription_id


class InvalidStateTransitionError(ConflictError):
    default_error_code: str = "INVALID_STATE_TRANSITION"


class LockAcquisitionError(BillingError, ConflictError):
    """Another process holds the distributed lock and it was not released in time."""

    default_error_code: str = "LOCK_NOT_ACQUIRED"


# =============================================================================
# Webhook Exceptions
# =============================================================================


class WebhookError(BillingError):
    """
    Base for failures while accepting an inbound webhook.

    `status_code` is the HTTP status the endpoint answers with.
    """

    default_error_code: str = "WEBHOOK_ERROR"
    status_code: int = 400


class InvalidSignatureError(WebhookError):
    """
    The Stripe-Signature header is missing or does not match the raw body.

    Treated as a client/attacker error: 400, never retried by Stripe.
    """

    default_error_code: str = "INVALID_SIGNATURE"
    status_code: int = 400


class MalformedEventError(WebhookError):
    """The signed body is not a JSON event envelope with id, type and data."""

    default_error_code: str = "MALFORMED_EVENT"
    status_code: int = 400


class WebhookMisconfiguredError(WebhookError):
    """
    No webhook signing secret is configured.

    An operator error, distinct from a bad signature. Answered with 500 so
    Stripe keeps retrying until the deployment is fixed.
    """

    default_error_code: str = "WEBHOOK_MISCONFIGURED"
    status_code: int = 500


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(BillingError):
    """
    Base exception for all Stripe-related errors.

    Attributes:
        stripe_code: Stripe's internal error code
        decline_code: Card decline code (if applicable)
        is_retryable: Whether the operation can be retried with backoff
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeCardDeclinedError(StripeError):
    """
    Card was declined by the issuing bank.

    The decline_code attribute carries the specific reason
    (generic_decline, insufficient_funds, expired_card, ...).
    """

    default_error_code: str = "CARD_DECLINED"
    is_retryable: bool = False


class StripeInvalidRequestError(StripeError):
    """
    Invalid request parameters sent to Stripe.

    This usually indicates a bug in our code, not a user error.
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry with backoff)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """Stripe could not be reached or returned a server error."""

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """
    Request to Stripe timed out.

    The operation may or may not have completed; retry with the SAME
    idempotency key so Stripe returns the original result.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True
