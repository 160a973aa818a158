"""
Application exception hierarchy.

    BaseApplicationError
    ├── ValidationError - request rejected by a business rule
    ├── NotFoundError   - referenced resource does not exist
    └── ConflictError   - operation clashes with current state

Domain apps subclass these (see billing.exceptions) and set their own
default_error_code. Services catch them at their boundary and turn them
into ServiceResult failures; DRF keeps handling serializer and
authentication errors.

Usage:
    from core.exceptions import ValidationError

    raise ValidationError("Price must be positive", error_code="INVALID_PRICE")
"""

from __future__ import annotations

from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for application errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional context (remote ids, field names, ...)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """Duplicates and invalid state transitions (HTTP 409)."""

    default_error_code: str = "CONFLICT"
