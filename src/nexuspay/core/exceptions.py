"""
Custom exception classes for NexusPay.
"""

from typing import Any, Dict, Optional
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
)


class NexusPayError(Exception):
    """Base exception for all NexusPay errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(NexusPayError):
    """Raised when request input is missing or invalid."""
    pass


class AuthenticationError(NexusPayError):
    """Raised when a request cannot be authenticated."""
    pass


class UserNotFoundError(NexusPayError):
    """Raised when a user is not found."""
    pass


class TransactionNotFoundError(NexusPayError):
    """Raised when a ramp transaction is not found."""
    pass


class InvalidStatusTransitionError(NexusPayError):
    """Raised when a ramp transaction is moved out of a terminal state."""
    pass


class UnsupportedTokenError(NexusPayError):
    """Raised when no configured chain supports the requested token."""
    pass


class HTTPExceptionHandler:
    """Maps domain exceptions to HTTP status codes and error bodies."""

    EXCEPTION_MAP = {
        ValidationError: HTTP_400_BAD_REQUEST,
        UnsupportedTokenError: HTTP_400_BAD_REQUEST,
        AuthenticationError: HTTP_401_UNAUTHORIZED,
        UserNotFoundError: HTTP_404_NOT_FOUND,
        TransactionNotFoundError: HTTP_404_NOT_FOUND,
        InvalidStatusTransitionError: HTTP_409_CONFLICT,
    }

    @classmethod
    def status_code_for(cls, exc: NexusPayError) -> int:
        return cls.EXCEPTION_MAP.get(type(exc), HTTP_500_INTERNAL_SERVER_ERROR)

    @classmethod
    def to_error_body(cls, exc: NexusPayError) -> Dict[str, Any]:
        """Machine-readable ``{code, message, details}`` body for an exception."""
        return {
            "code": exc.error_code or type(exc).__name__,
            "message": exc.message,
            "details": exc.details,
        }


def create_validation_error(message: str, code: str = "INVALID_INPUT", **details: Any) -> ValidationError:
    """Create a validation error with context."""
    return ValidationError(message=message, error_code=code, details=details)


def create_user_not_found_error(user_id: str) -> UserNotFoundError:
    """Create a user not found error."""
    return UserNotFoundError(
        message=f"User with ID '{user_id}' not found",
        error_code="USER_NOT_FOUND",
        details={"user_id": user_id}
    )


def create_transaction_not_found_error(transaction_id: str) -> TransactionNotFoundError:
    """Create a transaction not found error."""
    return TransactionNotFoundError(
        message=f"Ramp transaction '{transaction_id}' not found",
        error_code="TRANSACTION_NOT_FOUND",
        details={"transaction_id": transaction_id}
    )


def create_unsupported_token_error(token: str, chains: list) -> UnsupportedTokenError:
    """Create an unsupported token error."""
    return UnsupportedTokenError(
        message=f"Token {token} is not supported on any available chains",
        error_code="UNSUPPORTED_TOKEN",
        details={"token": token, "chains_searched": list(chains)}
    )


def create_invalid_transition_error(transaction_id: str, current: str, target: str) -> InvalidStatusTransitionError:
    """Create an invalid status transition error."""
    return InvalidStatusTransitionError(
        message=f"Cannot move transaction from '{current}' to '{target}'",
        error_code="INVALID_STATUS_TRANSITION",
        details={"transaction_id": transaction_id, "current": current, "target": target}
    )
