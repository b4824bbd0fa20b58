"""Custom exception classes for the Scheduling service."""

from typing import Any, Dict, Optional


class SchedulingException(Exception):
    """Base exception for all Scheduling service errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "status_code": self.status_code,
                "details": self.details,
            }
        }


class ValidationError(SchedulingException):
    """Exception raised for validation errors."""

    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if errors:
            error_details["validation_errors"] = errors
        super().__init__(
            message=message,
            status_code=400,
            code="VALIDATION_ERROR",
            details=error_details,
        )


class NotFoundError(SchedulingException):
    """Exception raised when a resource is not found."""

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        message = f"{resource} not found"
        if resource_id:
            message += f" with id: {resource_id}"
        error_details = details or {}
        error_details["resource"] = resource
        if resource_id:
            error_details["resource_id"] = resource_id
        super().__init__(
            message=message,
            status_code=404,
            code="NOT_FOUND",
            details=error_details,
        )


class MissingExternalIdError(SchedulingException):
    """Raised when an appointment was never confirmed by the external system."""

    def __init__(self, appointment_id: str):
        super().__init__(
            message=f"Appointment {appointment_id} does not have an external ID",
            status_code=400,
            code="MISSING_EXTERNAL_ID",
            details={"appointment_id": appointment_id},
        )


class BusinessRejectionError(SchedulingException):
    """The external system answered but refused the operation."""

    def __init__(
        self,
        message: str,
        adapter: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if adapter:
            error_details["adapter"] = adapter
        super().__init__(
            message=message,
            status_code=422,
            code="BUSINESS_REJECTION",
            details=error_details,
        )


class CircuitOpenError(SchedulingException):
    """Raised when the circuit breaker rejects a call without running it."""

    def __init__(
        self,
        message: str = "Circuit breaker is OPEN - service temporarily unavailable",
        retry_after: Optional[float] = None,
    ):
        details: Dict[str, Any] = {}
        if retry_after is not None:
            details["retry_after"] = round(retry_after, 1)
        super().__init__(
            message=message,
            status_code=503,
            code="SERVICE_UNAVAILABLE",
            details=details,
        )


class RetryExhaustedError(SchedulingException):
    """Raised when every retry attempt of an operation failed."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        message = f"Operation failed after {attempts} attempts"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(
            message=message,
            status_code=502,
            code="RETRY_EXHAUSTED",
            details={
                "attempts": attempts,
                "last_error": type(last_error).__name__ if last_error else None,
            },
        )


class MalformedMessageError(SchedulingException):
    """Raised when a broker payload is structurally invalid."""

    def __init__(self, message: str = "Invalid message format", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=400,
            code="MALFORMED_MESSAGE",
            details=details,
        )


class DatabaseError(SchedulingException):
    """Exception raised for database-related errors."""

    def __init__(
        self,
        message: str = "Database operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=500,
            code="DATABASE_ERROR",
            details=details,
        )


class QueueError(SchedulingException):
    """Exception raised for message queue errors."""

    def __init__(
        self,
        message: str = "Message queue operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=502,
            code="QUEUE_ERROR",
            details=details,
        )
