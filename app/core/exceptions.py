"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    code = "internal_error"

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with message, status code and optional details."""
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    code = "not_found"

    def __init__(self, message: str = "Resource not found", details: dict[str, Any] | None = None):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404, details=details)


class ConflictException(AppException):
    """Conflict exception."""

    code = "conflict"

    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409, details=details)


class ValidationException(AppException):
    """Validation error exception."""

    code = "validation_error"

    def __init__(self, message: str = "Validation error", details: dict[str, Any] | None = None):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422, details=details)


class IllegalTransitionException(ConflictException):
    """A state-table violation: the requested transition is not legal from the current status."""

    code = "illegal_transition"

    def __init__(
        self,
        entity: str,
        from_status: str | None,
        to_status: str,
        action: str | None = None,
        message: str | None = None,
    ):
        """Initialize with the offending (from, to) pair for diagnostics."""
        self.entity = entity
        self.from_status = from_status
        self.to_status = to_status
        self.action = action or to_status
        if message is None:
            message = (
                f"cannot {self.action}: {entity} is already {from_status}"
                f" ({from_status} -> {to_status} is not a legal transition)"
            )
        super().__init__(
            message,
            details={
                "entity": entity,
                "from_status": from_status,
                "to_status": to_status,
                "action": self.action,
            },
        )


class SlotUnavailableException(ConflictException):
    """No availability window accepts the requested slot."""

    code = "slot_unavailable"

    def __init__(self, reason: str, details: dict[str, Any] | None = None):
        """Initialize with the reason the slot cannot be booked."""
        self.reason = reason
        super().__init__(
            f"Time slot not available: {reason}",
            details={"reason": reason, **(details or {})},
        )


class DoubleBookingException(ConflictException):
    """The requested interval overlaps an existing booking for the same doctor."""

    code = "double_booking"

    def __init__(self, conflicting_appointment_id: Any):
        """Initialize with the id of the appointment that holds the slot."""
        self.conflicting_appointment_id = conflicting_appointment_id
        super().__init__(
            "Time slot already booked for this doctor",
            details={"conflicting_appointment_id": str(conflicting_appointment_id)},
        )


class LockTimeoutException(AppException):
    """The scheduling serialization lock could not be acquired in time."""

    code = "lock_timeout"

    def __init__(self, key: str):
        """Initialize with 503 status code."""
        super().__init__(
            "Scheduling is busy for this doctor and date, please retry",
            status_code=503,
            details={"lock_key": key},
        )
