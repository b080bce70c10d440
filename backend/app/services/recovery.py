"""
Backend Error Classification

Maps a failure raised by the transport onto the recovery action the
session bridge takes. A broken encrypted channel cannot be told apart from
a dead session, so both are answered with a fresh session.
"""

from enum import Enum

from app.providers.base import TransportError, TransportErrorCode


class RecoveryAction(str, Enum):
    """What the bridge does after a failed attempt"""

    # Discard the session, open a new one and retry once
    RENEW_SESSION = "renew_session"
    # Count the failure and surface it
    FAIL = "fail"


_RENEW_CODES = frozenset(
    {
        TransportErrorCode.SESSION_NOT_FOUND,
        TransportErrorCode.SESSION_NOT_ACTIVE,
        TransportErrorCode.SESSION_EXPIRED,
        TransportErrorCode.TRANSPORT_ERROR,
        TransportErrorCode.DECRYPTION_FAILED,
        TransportErrorCode.CONNECTION_CLOSED,
    }
)

# Lower-case fragments recognized in messages of errors that carry no code
_RENEW_MESSAGE_FRAGMENTS = (
    "session_not_found",
    "session not found",
    "session_not_active",
    "not active",
    "session expired",
    "decrypt",
    "encryption",
    "connection closed",
    "connection reset",
    "websocket",
    "socket hang up",
    "econnreset",
)


def classify_error(error: BaseException) -> RecoveryAction:
    """
    Classify a failed backend attempt

    Args:
        error: Exception raised by the transport

    Returns:
        RecoveryAction: RENEW_SESSION for session-class and transport faults, FAIL otherwise
    """
    if isinstance(error, TransportError) and error.code is not None:
        return RecoveryAction.RENEW_SESSION if error.code in _RENEW_CODES else RecoveryAction.FAIL

    if isinstance(error, (ConnectionError, TimeoutError)):
        return RecoveryAction.RENEW_SESSION

    message = str(error).lower()
    if any(fragment in message for fragment in _RENEW_MESSAGE_FRAGMENTS):
        return RecoveryAction.RENEW_SESSION
    return RecoveryAction.FAIL
