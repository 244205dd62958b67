"""
Domain error taxonomy.

Every error raised by the session manager, the availability engine and the
booking flow is a RentalError. The app error handler turns them into the
standard JSON error envelope with the status code declared here.
"""


class RentalError(Exception):
    """
    Base class for user-facing errors.

    Attributes:
        message: Human-readable message (French UI copy)
        field: Form field the error relates to, if any
    """

    status_code = 400

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def extra(self) -> dict:
        """Additional fields merged into the JSON error envelope."""
        return {'field': self.field} if self.field else {}


class ValidationError(RentalError):
    """Malformed or missing user input."""
    status_code = 400


class AuthError(RentalError):
    """Invalid credentials or unverified email."""

    status_code = 401

    def __init__(self, message: str, can_resend_verification: bool = False):
        super().__init__(message)
        self.can_resend_verification = can_resend_verification

    def extra(self) -> dict:
        return {'can_resend_verification': self.can_resend_verification}


class NotAuthenticatedError(RentalError):
    """Operation requiring a current user invoked without one."""
    status_code = 401


class ConflictError(RentalError):
    """Duplicate username or email at sign-up; field names the collision."""
    status_code = 409


class InvalidTransitionError(RentalError):
    """Booking flow or booking status change not allowed from the current state."""
    status_code = 409


class RegistrationError(RentalError):
    """Account creation failed after retries."""
    status_code = 503


class BookingError(RentalError):
    """Booking could not be persisted."""
    status_code = 503


class NetworkError(RentalError):
    """Backend unreachable after retries."""
    status_code = 503
