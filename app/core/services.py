"""
Service layer building blocks.

- ServiceResult: outcome of an operation whose failures are expected
  (validation, business rules, declined payments)
- BaseService: per-class logger for service classes

Expected failures travel as ServiceResult; anything unexpected (database
errors, bugs) is raised.

Usage:
    from core.services import BaseService, ServiceResult

    class SubscriptionOrchestrator(BaseService):
        def cancel_subscription(self, user, stripe_subscription_id):
            if subscription.is_canceled:
                return ServiceResult.failure(
                    "Subscription already canceled",
                    error_code="ALREADY_CANCELED",
                )
            ...
            return ServiceResult.success(subscription)

    # In a view
    result = orchestrator.cancel_subscription(request.user, subscription_id)
    if not result.success:
        return Response({"error": result.error}, status=400)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful
        error: Human-readable message if failed
        error_code: Machine-readable code the API layer maps to a status
        errors: Field-level errors for validation failures
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        return cls(success=False, error=error, error_code=error_code, errors=errors)

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """
        Failed result from an exception.

        Application errors keep their own message and error code; anything
        else falls back to the exception class name.
        """
        code = error_code or getattr(exc, "error_code", None)
        message = getattr(exc, "message", None) or str(exc)
        return cls(
            success=False,
            error=message,
            error_code=code or exc.__class__.__name__.upper(),
        )


class BaseService:
    """
    Base class for service classes.

    Services without injected collaborators use classmethods; the
    orchestrator takes its Stripe adapter in __init__ so tests can swap it.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named after the service class, e.g. billing.services.earnings.EarningsService."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")
