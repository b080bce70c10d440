"""
Error Definitions

Defines custom exception classes used in the application for unified error handling.
"""

from typing import Any, Optional


class AppError(Exception):
    """
    Application Base Exception

    Base class for all custom exceptions, containing error message, type, and code.
    """

    def __init__(
        self,
        message: str,
        error_type: str = "api_error",
        code: str = "internal_error",
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500,
    ):
        """
        Initialize exception

        Args:
            message: Error message
            error_type: Error type (reported to callers as `error.type`)
            code: Error code
            details: Extra error details
            status_code: HTTP status code
        """
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.code = code
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary format (OpenAI-style error body)

        Returns:
            dict: Error information dictionary
        """
        result = {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "code": self.code,
            }
        }
        if self.details:
            result["error"]["details"] = self.details
        return result


class InvalidRequestError(AppError):
    """
    Request Validation Error

    Raised when the request body is missing required fields or is malformed.
    Always raised before the backend is contacted.
    """

    def __init__(
        self,
        message: str = "Invalid request",
        code: str = "invalid_request",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            error_type="invalid_request_error",
            code=code,
            details=details,
            status_code=400,
        )


class PromptConversionError(InvalidRequestError):
    """
    Prompt Conversion Error

    Raised when a conversation cannot be flattened into a prompt (e.g. no messages).
    """

    def __init__(self, message: str = "Cannot convert messages to a prompt"):
        super().__init__(message=message, code="prompt_conversion_error")


class AuthenticationError(AppError):
    """
    Authentication Error

    Raised when the caller does not present the configured bridge key.
    """

    def __init__(
        self,
        message: str = "Authentication failed",
        code: str = "invalid_api_key",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            error_type="authentication_error",
            code=code,
            details=details,
            status_code=401,
        )


class BackendError(AppError):
    """
    Backend Error

    Raised when the inference backend fails and local recovery did not help.
    """

    def __init__(
        self,
        message: str = "Backend inference failed",
        code: str = "backend_error",
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500,
    ):
        super().__init__(
            message=message,
            error_type="api_error",
            code=code,
            details=details,
            status_code=status_code,
        )


class CircuitOpenError(AppError):
    """
    Circuit Open Error

    Raised without contacting the backend while the circuit breaker is open.
    """

    def __init__(
        self,
        last_error: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        reason = last_error or "persistent session errors"
        super().__init__(
            message=f"Circuit breaker open: {reason}. Retry later.",
            error_type="overloaded_error",
            code="circuit_open",
            details=details,
            status_code=503,
        )
        self.last_error = last_error
