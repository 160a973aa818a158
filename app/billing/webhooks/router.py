"""
Handler registry for Stripe webhook events.

Every WebhookEventType member has exactly one handler. Handlers register
themselves with @register_handler; BillingConfig.ready() calls
verify_registry() so a missing handler stops the process at startup rather
than surfacing as a silently ignored event in production.

Usage:
    from billing.webhooks.router import dispatch, register_handler

    @register_handler(WebhookEventType.SETUP_INTENT_SUCCEEDED)
    def handle_setup_intent_succeeded(webhook_event: WebhookEvent) -> HandlerOutcome:
        ...

    outcome = dispatch(WebhookEventType.SETUP_INTENT_SUCCEEDED, webhook_event)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from django.core.exceptions import ImproperlyConfigured

from billing.webhooks.events import HandlerOutcome, WebhookEventType

if TYPE_CHECKING:
    from billing.models import WebhookEvent


logger = logging.getLogger(__name__)

Handler = Callable[["WebhookEvent"], HandlerOutcome]

# Maps event types to their handler functions
WEBHOOK_HANDLERS: dict[WebhookEventType, Handler] = {}


def register_handler(event_type: WebhookEventType) -> Callable[[Handler], Handler]:
    """
    Decorator to register the handler for an event type.

    Raises:
        ImproperlyConfigured: A different handler is already registered
    """

    def decorator(func: Handler) -> Handler:
        existing = WEBHOOK_HANDLERS.get(event_type)
        if existing is not None and existing is not func:
            raise ImproperlyConfigured(
                f"Webhook handler for {event_type.value} registered twice: "
                f"{existing.__name__} and {func.__name__}"
            )
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type.value}")
        return func

    return decorator


def verify_registry() -> None:
    """
    Check that every event type has a handler.

    Raises:
        ImproperlyConfigured: Listing the event types without a handler
    """
    missing = [member.value for member in WebhookEventType if member not in WEBHOOK_HANDLERS]
    if missing:
        raise ImproperlyConfigured(
            f"No webhook handler registered for: {', '.join(sorted(missing))}"
        )


def dispatch(event_type: WebhookEventType, webhook_event: WebhookEvent) -> HandlerOutcome:
    """Run the handler registered for event_type."""
    handler = WEBHOOK_HANDLERS.get(event_type)
    if handler is None:
        raise ImproperlyConfigured(f"No webhook handler registered for {event_type.value}")

    logger.info(
        f"Dispatching {event_type.value} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )
    return handler(webhook_event)
