"""Custom exception hierarchy for the study engine."""


class StudyClientError(Exception):
    """Base exception for all study engine errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialize exception with message and optional HTTP status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class InvalidRequestError(StudyClientError):
    """Malformed URL, identifier or parameter. Never retried."""


class TransportError(StudyClientError):
    """Network-level failure before any HTTP response was received."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        """Initialize with message and the underlying transport exception."""
        self.cause = cause
        super().__init__(message)


class AuthorizationError(StudyClientError):
    """The server rejected the credential (HTTP 401)."""

    def __init__(self, message: str = "Unauthorized request") -> None:
        """Initialize with message and 401 status code."""
        super().__init__(message, status_code=401)


class AuthenticationExpiredError(AuthorizationError):
    """Authorization failed again after the credential was invalidated."""

    def __init__(self, message: str = "Authentication failed. Please sign in again.") -> None:
        """Initialize with the sign-in-again message."""
        super().__init__(message)


class ServerError(StudyClientError):
    """Non-2xx, non-401 response, or a 2xx envelope reporting failure."""

    def __init__(self, status_code: int, message: str | None = None) -> None:
        """Initialize with status code and optional server message."""
        super().__init__(message or f"Server returned {status_code}", status_code=status_code)


class DecodeError(StudyClientError):
    """Response payload violates the required-field contract."""

    def __init__(self, reason: str, raw_body: str | bytes | None = None) -> None:
        """Initialize with the failure reason and the raw body for diagnostics."""
        self.reason = reason
        self.raw_body = raw_body
        super().__init__(f"Failed to decode response: {reason}")


class SessionStateError(StudyClientError):
    """Controller operation invoked from a state that does not allow it."""

    def __init__(self, operation: str, state: str) -> None:
        """Initialize with the rejected operation and the current state."""
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while session is {state}")


class SessionBusyError(SessionStateError):
    """Another session operation is still in flight."""

    def __init__(self, operation: str) -> None:
        """Initialize with the rejected operation."""
        self.operation = operation
        self.state = "busy"
        StudyClientError.__init__(
            self, f"Cannot {operation} while another session operation is in flight"
        )
