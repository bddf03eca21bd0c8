"""Unit tests for error code classification."""

import pytest

from hearth.resilience.errors import (
    ERROR_MESSAGES,
    ErrorCode,
    code_for_status,
    is_transient_error,
    message_for_code,
)

TRANSIENT = {
    ErrorCode.NETWORK_ERROR,
    ErrorCode.TIMEOUT,
    ErrorCode.SERVICE_UNAVAILABLE,
    ErrorCode.EXTERNAL_API_ERROR,
    ErrorCode.STOVE_TIMEOUT,
}


class TestIsTransientError:
    """Tests for is_transient_error."""

    @pytest.mark.parametrize("code", sorted(TRANSIENT, key=lambda c: c.value))
    def test_transient_codes(self, code: ErrorCode) -> None:
        """Network, timeout and upstream failures are transient."""
        assert is_transient_error(code.value) is True

    @pytest.mark.parametrize(
        "code",
        sorted(set(ErrorCode) - TRANSIENT, key=lambda c: c.value),
    )
    def test_every_other_code_is_permanent(self, code: ErrorCode) -> None:
        """Validation, auth and device-state errors fail fast."""
        assert is_transient_error(code.value) is False

    def test_unknown_and_missing_codes_are_permanent(self) -> None:
        """Codes outside the table are never retried."""
        assert is_transient_error("SOMETHING_NEW") is False
        assert is_transient_error("") is False
        assert is_transient_error(None) is False

    def test_accepts_enum_members(self) -> None:
        """Enum members classify like their string values."""
        assert is_transient_error(ErrorCode.STOVE_TIMEOUT) is True
        assert is_transient_error(ErrorCode.MAINTENANCE_REQUIRED) is False


class TestCodeForStatus:
    """Tests for status-based classification of payloads without a code."""

    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            (401, ErrorCode.UNAUTHORIZED),
            (403, ErrorCode.FORBIDDEN),
            (404, ErrorCode.NOT_FOUND),
            (408, ErrorCode.TIMEOUT),
            (409, ErrorCode.CONFLICT),
            (422, ErrorCode.VALIDATION_ERROR),
            (429, ErrorCode.RATE_LIMITED),
            (500, ErrorCode.EXTERNAL_API_ERROR),
            (502, ErrorCode.EXTERNAL_API_ERROR),
            (503, ErrorCode.SERVICE_UNAVAILABLE),
            (504, ErrorCode.TIMEOUT),
        ],
    )
    def test_status_mapping(self, status: int, expected: ErrorCode) -> None:
        assert code_for_status(status) == expected.value


class TestMessages:
    """Tests for user-facing messages."""

    def test_every_code_has_a_message(self) -> None:
        assert set(ERROR_MESSAGES) == set(ErrorCode)

    def test_unknown_code_gets_generic_message(self) -> None:
        assert message_for_code("NOPE") == "Command failed"

    def test_maintenance_message(self) -> None:
        assert "Maintenance" in message_for_code("MAINTENANCE_REQUIRED")
