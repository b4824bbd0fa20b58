"""Tests for exception handling."""

from scheduling_service.utils.errors import (
    BusinessRejectionError,
    CircuitOpenError,
    DatabaseError,
    MalformedMessageError,
    MissingExternalIdError,
    NotFoundError,
    QueueError,
    RetryExhaustedError,
    SchedulingException,
    ValidationError,
)


def test_scheduling_exception():
    """Test base SchedulingException."""
    exc = SchedulingException("Test error", status_code=400, code="TEST_ERROR")
    assert exc.message == "Test error"
    assert exc.status_code == 400
    assert exc.code == "TEST_ERROR"
    assert exc.to_dict() == {
        "error": {
            "message": "Test error",
            "code": "TEST_ERROR",
            "status_code": 400,
            "details": {},
        }
    }


def test_default_code_is_class_name():
    exc = SchedulingException("x")
    assert exc.code == "SchedulingException"
    assert exc.status_code == 500


def test_validation_error():
    exc = ValidationError("Validation failed", errors=[{"field": "patientId"}])
    assert exc.status_code == 400
    assert exc.code == "VALIDATION_ERROR"
    assert exc.details["validation_errors"] == [{"field": "patientId"}]


def test_not_found_error():
    exc = NotFoundError("Appointment", "abc")
    assert exc.status_code == 404
    assert exc.code == "NOT_FOUND"
    assert exc.message == "Appointment not found with id: abc"
    assert exc.details == {"resource": "Appointment", "resource_id": "abc"}


def test_missing_external_id_error():
    exc = MissingExternalIdError("abc")
    assert exc.status_code == 400
    assert exc.code == "MISSING_EXTERNAL_ID"
    assert "abc" in exc.message


def test_business_rejection_error():
    exc = BusinessRejectionError("Slot taken", adapter="MockSchedulingAdapter")
    assert exc.status_code == 422
    assert exc.code == "BUSINESS_REJECTION"
    assert exc.details == {"adapter": "MockSchedulingAdapter"}


def test_circuit_open_error():
    exc = CircuitOpenError(retry_after=12.345)
    assert exc.status_code == 503
    assert exc.code == "SERVICE_UNAVAILABLE"
    assert exc.message == "Circuit breaker is OPEN - service temporarily unavailable"
    assert exc.details == {"retry_after": 12.3}


def test_retry_exhausted_error():
    cause = ConnectionError("timeout")
    exc = RetryExhaustedError(3, cause)
    assert exc.status_code == 502
    assert exc.attempts == 3
    assert exc.last_error is cause
    assert exc.message == "Operation failed after 3 attempts: timeout"
    assert exc.details == {"attempts": 3, "last_error": "ConnectionError"}


def test_retry_exhausted_error_without_cause():
    exc = RetryExhaustedError(2)
    assert exc.message == "Operation failed after 2 attempts"
    assert exc.details["last_error"] is None


def test_infrastructure_errors():
    assert MalformedMessageError().status_code == 400
    assert MalformedMessageError().code == "MALFORMED_MESSAGE"
    assert DatabaseError().status_code == 500
    assert QueueError().status_code == 502
    assert QueueError().code == "QUEUE_ERROR"
