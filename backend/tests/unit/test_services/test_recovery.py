"""
Error Classification Unit Tests
"""

import pytest

from app.providers.base import TransportError, TransportErrorCode
from app.services.recovery import RecoveryAction, classify_error


@pytest.mark.parametrize(
    "code",
    [
        TransportErrorCode.SESSION_NOT_FOUND,
        TransportErrorCode.SESSION_NOT_ACTIVE,
        TransportErrorCode.SESSION_EXPIRED,
        TransportErrorCode.TRANSPORT_ERROR,
        TransportErrorCode.DECRYPTION_FAILED,
        TransportErrorCode.CONNECTION_CLOSED,
    ],
)
def test_session_class_codes_renew(code):
    assert classify_error(TransportError("x", code=code)) == RecoveryAction.RENEW_SESSION


@pytest.mark.parametrize(
    "code",
    [
        TransportErrorCode.INSUFFICIENT_FUNDS,
        TransportErrorCode.MODEL_NOT_AVAILABLE,
        TransportErrorCode.RATE_LIMITED,
        TransportErrorCode.BACKEND_ERROR,
        TransportErrorCode.UNKNOWN,
    ],
)
def test_other_codes_fail(code):
    assert classify_error(TransportError("session not found", code=code)) == RecoveryAction.FAIL


def test_connection_and_timeout_errors_renew():
    assert classify_error(ConnectionResetError("reset")) == RecoveryAction.RENEW_SESSION
    assert classify_error(TimeoutError()) == RecoveryAction.RENEW_SESSION


@pytest.mark.parametrize(
    "message",
    [
        "Session 42 is not active",
        "SESSION_NOT_FOUND",
        "Failed to decrypt response chunk",
        "WebSocket closed unexpectedly",
    ],
)
def test_uncoded_messages_fall_back_to_fragments(message):
    assert classify_error(RuntimeError(message)) == RecoveryAction.RENEW_SESSION


def test_unrelated_error_fails():
    assert classify_error(ValueError("model output invalid")) == RecoveryAction.FAIL
