"""Exception hierarchy for the device-command pipeline.

All exceptions inherit from HearthError, which carries the error_code and
status_code a caller needs to render a consistent message. Expected
outcomes (duplicate key, rate limit exceeded) are returned as structured
results by the components; exceptions are reserved for failures.
"""

from hearth.resilience.errors import ErrorCode


class HearthError(Exception):
    """Base exception for all pipeline errors."""

    status_code: int = 500
    error_code: str = ErrorCode.INTERNAL_ERROR.value

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class DeviceCommandError(HearthError):
    """A device API call failed with a classified error code."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = code
        if status_code is not None:
            self.status_code = status_code

    @property
    def code(self) -> str:
        return self.error_code


class RetryError(HearthError):
    """Raised when every retry attempt failed with a transient error."""

    status_code = 503
    error_code = ErrorCode.SERVICE_UNAVAILABLE.value

    def __init__(self, message: str, attempts: int, last_error: Exception) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class RateLimitedError(HearthError):
    """Raised when a caller must wait before hitting an endpoint again."""

    status_code = 429
    error_code = ErrorCode.RATE_LIMITED.value

    def __init__(self, message: str, next_allowed_in_ms: int) -> None:
        super().__init__(message)
        self.next_allowed_in_ms = next_allowed_in_ms


class StoreUnavailableError(HearthError):
    """Raised when the shared key-value store cannot be reached."""

    status_code = 503
    error_code = ErrorCode.STORE_ERROR.value
