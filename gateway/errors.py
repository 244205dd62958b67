"""
Backend gateway errors.
Every failure coming out of a backend call is raised as a GatewayError.
"""


class GatewayError(Exception):
    """
    Error raised by a backend call.

    Attributes:
        message: Raw message returned by the backend
        code: Machine-readable error code (e.g. 'invalid_credentials')
        status: HTTP status code when the backend is remote
        transient: True if retrying the same call may succeed
    """

    def __init__(self, message: str, code: str = None, status: int = None, transient: bool = False):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.transient = transient

    def __repr__(self):
        return f'{type(self).__name__}({self.message!r}, code={self.code!r}, status={self.status!r})'


class GatewayTimeout(GatewayError):
    """The backend did not answer within the allotted time."""

    def __init__(self, message: str = 'Request timed out', code: str = 'timeout'):
        super().__init__(message, code=code, transient=True)


# Error codes shared by both backends
INVALID_CREDENTIALS = 'invalid_credentials'
EMAIL_NOT_CONFIRMED = 'email_not_confirmed'
USER_ALREADY_EXISTS = 'user_already_exists'
INVALID_TOKEN = 'invalid_token'
NOT_FOUND = 'not_found'
CONSTRAINT_VIOLATION = 'constraint_violation'
CONNECTION_ERROR = 'connection_error'


def is_transient(exc: BaseException) -> bool:
    """
    Tell whether an exception is worth retrying.

    Args:
        exc: Exception raised by a backend call

    Returns:
        True for transient gateway errors, timeouts and connection errors
    """
    if isinstance(exc, GatewayError):
        return exc.transient
    return isinstance(exc, (ConnectionError, TimeoutError))
