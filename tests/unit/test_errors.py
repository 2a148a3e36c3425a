"""Unit tests for error classification and backend error translation."""

import pytest

from taskmirror.core.db_client import translate_response_error
from taskmirror.core.errors import (
    BackendError,
    ConstraintViolationError,
    ErrorCategory,
    ErrorCode,
    ErrorSeverity,
    NetworkError,
    NotAuthenticatedError,
    PartialWorkflowFailure,
    RecordNotFoundError,
    SyncError,
    classify_error,
    classify_error_with_response,
)
from taskmirror.models.service_models import SyncResult


@pytest.mark.unit
class TestTranslateResponseError:
    """Tests for mapping PocketBase error responses onto SyncError subclasses."""

    def test_transport_failure_is_network_error(self):
        error = translate_response_error(status=0, data=None, message="connection refused", transport_failure=True)

        assert isinstance(error, NetworkError)
        assert error.code == ErrorCode.ERR_NETWORK_ERROR

    def test_status_zero_is_network_error(self):
        assert isinstance(translate_response_error(status=0, data=None, message="aborted"), NetworkError)

    def test_404_is_record_not_found(self):
        error = translate_response_error(status=404, data={}, message="missing")

        assert isinstance(error, RecordNotFoundError)
        assert error.status == 404

    def test_not_unique_validation_is_constraint_violation(self):
        data = {"data": {"coupon_code": {"code": "validation_not_unique", "message": "Value must be unique"}}}
        error = translate_response_error(status=400, data=data, message="Failed to create record")

        assert isinstance(error, ConstraintViolationError)
        assert error.code == ErrorCode.ERR_CONSTRAINT_VIOLATION

    def test_other_validation_error_is_backend_error(self):
        data = {"data": {"title": {"code": "validation_required", "message": "Missing required value"}}}
        error = translate_response_error(status=400, data=data, message="Failed to create record")

        assert type(error) is BackendError
        assert error.code == "ERR_BACKEND_400"

    def test_401_is_not_authenticated(self):
        assert isinstance(translate_response_error(status=401, data=None, message="no token"), NotAuthenticatedError)

    def test_403_is_permission_denied(self):
        error = translate_response_error(status=403, data=None, message="forbidden")

        assert isinstance(error, BackendError)
        assert error.code == ErrorCode.ERR_PERMISSION_DENIED


@pytest.mark.unit
class TestClassifyError:
    """Tests for classify_error function."""

    def test_network_error(self):
        category, message = classify_error(NetworkError("boom"))

        assert category == ErrorCategory.NETWORK_ERROR
        assert "connection" in message.lower()

    def test_not_authenticated(self):
        category, message = classify_error(NotAuthenticatedError("No user logged in"))

        assert category == ErrorCategory.NOT_AUTHENTICATED
        assert "sign in" in message.lower()

    def test_not_found(self):
        category, _ = classify_error(RecordNotFoundError("gone", status=404))

        assert category == ErrorCategory.NOT_FOUND

    def test_constraint_violation_keeps_message(self):
        category, message = classify_error(ConstraintViolationError("Coupon already used", status=400))

        assert category == ErrorCategory.CONSTRAINT_VIOLATION
        assert message == "Coupon already used"

    def test_partial_workflow(self):
        category, _ = classify_error(PartialWorkflowFailure("stopped", failed_step="confirm"))

        assert category == ErrorCategory.PARTIAL_WORKFLOW

    def test_untyped_timeout_falls_back_to_network(self):
        category, _ = classify_error(Exception("Request timeout after 30s"))

        assert category == ErrorCategory.NETWORK_ERROR

    def test_untyped_forbidden_is_permission_denied(self):
        category, _ = classify_error(Exception("HTTP 403 Forbidden"))

        assert category == ErrorCategory.PERMISSION_DENIED

    def test_unknown_error(self):
        category, message = classify_error(ValueError("something odd"))

        assert category == ErrorCategory.UNKNOWN
        assert "unexpected" in message.lower()


@pytest.mark.unit
class TestClassifyErrorWithResponse:
    """Tests for classify_error_with_response function."""

    def test_network_error_response(self):
        response = classify_error_with_response(NetworkError("down"))

        assert response.code == ErrorCode.ERR_NETWORK_ERROR
        assert response.severity == ErrorSeverity.MEDIUM

    def test_partial_workflow_is_high_severity(self):
        response = classify_error_with_response(PartialWorkflowFailure("stopped"))

        assert response.code == ErrorCode.ERR_PARTIAL_WORKFLOW
        assert response.severity == ErrorSeverity.HIGH
        assert "retry" in response.suggestion.lower()

    def test_custom_code_is_preserved(self):
        error = ConstraintViolationError("Coupon already used", code=ErrorCode.ERR_COUPON_ALREADY_USED, status=400)
        response = classify_error_with_response(error)

        assert response.code == ErrorCode.ERR_COUPON_ALREADY_USED

    def test_not_found_is_low_severity(self):
        response = classify_error_with_response(RecordNotFoundError("gone", status=404))

        assert response.severity == ErrorSeverity.LOW


@pytest.mark.unit
class TestSyncResult:
    """Tests for the SyncResult wrapper."""

    def test_success_unwraps_data(self):
        result = SyncResult.success([1, 2])

        assert result.ok
        assert result.unwrap() == [1, 2]
        assert result.error_response is None

    def test_failure_unwrap_raises_error(self):
        error = SyncError("bad")
        result = SyncResult.failure(error, data=[])

        assert not result.ok
        assert result.data == []
        with pytest.raises(SyncError, match="bad"):
            result.unwrap()

    def test_failure_exposes_error_response(self):
        result = SyncResult.failure(NotAuthenticatedError("No user logged in"))

        assert result.error_response is not None
        assert result.error_response.code == ErrorCode.ERR_NOT_AUTHENTICATED
