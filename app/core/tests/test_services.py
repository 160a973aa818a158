"""
Tests for ServiceResult, BaseService and the application exceptions.
"""

from __future__ import annotations

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.services import BaseService, ServiceResult


class TestServiceResult:
    def test_success(self):
        result = ServiceResult.success({"id": 1})

        assert result.success
        assert result.data == {"id": 1}
        assert result.error is None

    def test_failure(self):
        result = ServiceResult.failure("Creator not found", error_code="CREATOR_NOT_FOUND")

        assert not result.success
        assert result.data is None
        assert result.error_code == "CREATOR_NOT_FOUND"

    def test_from_application_error_keeps_code(self):
        result = ServiceResult.from_exception(
            ConflictError("Already subscribed", error_code="ALREADY_SUBSCRIBED")
        )

        assert result.error == "Already subscribed"
        assert result.error_code == "ALREADY_SUBSCRIBED"

    def test_from_plain_exception_uses_class_name(self):
        result = ServiceResult.from_exception(KeyError("creator_id"))

        assert not result.success
        assert result.error_code == "KEYERROR"


class TestApplicationErrors:
    def test_default_error_codes(self):
        assert ValidationError("bad").error_code == "VALIDATION_ERROR"
        assert NotFoundError("missing").error_code == "NOT_FOUND"
        assert ConflictError("clash").error_code == "CONFLICT"

    def test_str_includes_code(self):
        error = NotFoundError("Creator not found", error_code="CREATOR_NOT_FOUND")

        assert str(error) == "[CREATOR_NOT_FOUND] Creator not found"
        assert error.details == {}


class TestBaseService:
    def test_logger_named_after_class(self):
        class ExampleService(BaseService):
            pass

        assert ExampleService.get_logger().name == f"{__name__}.ExampleService"
