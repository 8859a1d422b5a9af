"""
Typed outcomes of the availability and booking engine.

Raised by the service layer and rendered by the exception handler in
main.py. Everything except UnavailableError is an expected outcome of
normal operation.
"""


class BookingEngineError(Exception):
    """Base exception for all booking engine errors."""

    code = "booking_error"
    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(BookingEngineError):
    """Malformed input: unknown date range, misaligned start, bad location."""

    code = "validation_error"
    status_code = 400


class NotFoundError(BookingEngineError):
    """Service, staff member or booking missing, or owned by another tenant."""

    code = "not_found"
    status_code = 404


class ConflictError(BookingEngineError):
    """Requested interval is no longer free."""

    code = "conflict"
    status_code = 409


class InfeasibleTravelError(ConflictError):
    """Staff member cannot reach the home-visit location in time."""

    code = "travel_infeasible"


class OutOfServiceAreaError(BookingEngineError):
    """Home-visit location is not covered by any active service area."""

    code = "out_of_service_area"
    status_code = 422


class InvalidTransitionError(BookingEngineError):
    """Booking status change not allowed by the lifecycle."""

    code = "invalid_transition"
    status_code = 409


class UnavailableError(BookingEngineError):
    """Backing store failed; the caller may retry."""

    code = "unavailable"
    status_code = 503
