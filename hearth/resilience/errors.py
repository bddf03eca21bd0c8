"""Device API error codes and the transient/permanent taxonomy.

Vendor proxies answer failures with a JSON payload ``{"code": ..., "error": ...}``.
The ``code`` decides whether a call is worth retrying.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable error codes of the device API error payload."""

    # Auth
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    SESSION_EXPIRED = "SESSION_EXPIRED"

    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"

    # Resources
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    CONFLICT = "CONFLICT"

    # Network / upstream
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    EXTERNAL_API_ERROR = "EXTERNAL_API_ERROR"

    # Stove
    STOVE_OFFLINE = "STOVE_OFFLINE"
    STOVE_TIMEOUT = "STOVE_TIMEOUT"
    STOVE_ERROR = "STOVE_ERROR"
    MAINTENANCE_REQUIRED = "MAINTENANCE_REQUIRED"

    # Thermostat
    NETATMO_NOT_CONNECTED = "NETATMO_NOT_CONNECTED"
    NETATMO_TOKEN_EXPIRED = "NETATMO_TOKEN_EXPIRED"
    NETATMO_TOKEN_INVALID = "NETATMO_TOKEN_INVALID"
    NETATMO_RECONNECT_REQUIRED = "NETATMO_RECONNECT_REQUIRED"

    # Lights
    HUE_NOT_CONNECTED = "HUE_NOT_CONNECTED"
    HUE_BRIDGE_NOT_FOUND = "HUE_BRIDGE_NOT_FOUND"
    HUE_LINK_BUTTON_NOT_PRESSED = "HUE_LINK_BUTTON_NOT_PRESSED"
    HUE_NOT_ON_LOCAL_NETWORK = "HUE_NOT_ON_LOCAL_NETWORK"

    # Infrastructure
    STORE_ERROR = "STORE_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.UNAUTHORIZED: "Not signed in",
    ErrorCode.FORBIDDEN: "Access denied",
    ErrorCode.SESSION_EXPIRED: "Session expired, sign in again",
    ErrorCode.VALIDATION_ERROR: "Invalid data",
    ErrorCode.INVALID_INPUT: "Invalid input",
    ErrorCode.MISSING_REQUIRED_FIELD: "Required field missing",
    ErrorCode.NOT_FOUND: "Resource not found",
    ErrorCode.ALREADY_EXISTS: "Resource already exists",
    ErrorCode.CONFLICT: "Conflicts with the current state",
    ErrorCode.NETWORK_ERROR: "Connection error",
    ErrorCode.TIMEOUT: "Request timed out",
    ErrorCode.SERVICE_UNAVAILABLE: "Service unavailable",
    ErrorCode.EXTERNAL_API_ERROR: "Device service error",
    ErrorCode.STOVE_OFFLINE: "Stove unreachable",
    ErrorCode.STOVE_TIMEOUT: "Stove did not answer in time",
    ErrorCode.STOVE_ERROR: "Stove error",
    ErrorCode.MAINTENANCE_REQUIRED: "Maintenance required - cleaning needed",
    ErrorCode.NETATMO_NOT_CONNECTED: "Thermostat not connected",
    ErrorCode.NETATMO_TOKEN_EXPIRED: "Thermostat token expired",
    ErrorCode.NETATMO_TOKEN_INVALID: "Thermostat token invalid",
    ErrorCode.NETATMO_RECONNECT_REQUIRED: "Reconnect the thermostat account",
    ErrorCode.HUE_NOT_CONNECTED: "Lights not connected",
    ErrorCode.HUE_BRIDGE_NOT_FOUND: "Hue bridge not found",
    ErrorCode.HUE_LINK_BUTTON_NOT_PRESSED: "Press the link button on the Hue bridge",
    ErrorCode.HUE_NOT_ON_LOCAL_NETWORK: "Not on the Hue bridge's local network",
    ErrorCode.STORE_ERROR: "Database error",
    ErrorCode.RATE_LIMITED: "Too many requests, try again later",
    ErrorCode.INTERNAL_ERROR: "Internal server error",
    ErrorCode.NOT_IMPLEMENTED: "Not implemented",
}

# Failures expected to clear up on their own; everything else fails fast.
TRANSIENT_ERROR_CODES: frozenset[str] = frozenset({
    ErrorCode.NETWORK_ERROR.value,
    ErrorCode.TIMEOUT.value,
    ErrorCode.SERVICE_UNAVAILABLE.value,
    ErrorCode.EXTERNAL_API_ERROR.value,
    ErrorCode.STOVE_TIMEOUT.value,
})

_STATUS_CODES: dict[int, ErrorCode] = {
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    408: ErrorCode.TIMEOUT,
    409: ErrorCode.CONFLICT,
    429: ErrorCode.RATE_LIMITED,
    502: ErrorCode.EXTERNAL_API_ERROR,
    503: ErrorCode.SERVICE_UNAVAILABLE,
    504: ErrorCode.TIMEOUT,
}


def is_transient_error(code: str | None) -> bool:
    """Return True if a failure with this code may succeed on retry.

    Unknown and missing codes are permanent.
    """
    if code is None:
        return False
    if isinstance(code, ErrorCode):
        code = code.value
    return code in TRANSIENT_ERROR_CODES


def code_for_status(status_code: int) -> str:
    """Classify an error response that carries no ``code`` field."""
    mapped = _STATUS_CODES.get(status_code)
    if mapped is not None:
        return mapped.value
    if status_code >= 500:
        return ErrorCode.EXTERNAL_API_ERROR.value
    return ErrorCode.VALIDATION_ERROR.value


def message_for_code(code: str) -> str:
    """User-facing message for an error code, with a generic fallback."""
    try:
        return ERROR_MESSAGES[ErrorCode(code)]
    except ValueError:
        return "Command failed"
