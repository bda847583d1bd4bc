"""
Error taxonomy for the identity core.

Domain errors (``IdentityError`` subclasses) describe expected failures of a
flow and carry a message that is safe to show to the caller. Infrastructure
errors (``InfraError``) wrap failures of the record store or the messaging
gateway; they carry a closed ``ErrorKind`` produced by the client layer, which
decides whether the call may be retried.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Closed set of infrastructure failure kinds."""
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    TIMEOUT = "timeout"
    NETWORK = "network"
    UNAVAILABLE = "unavailable"
    THROTTLED = "throttled"
    # Messaging-specific: the destination itself is the problem
    OPTED_OUT = "opted_out"
    INVALID_DESTINATION = "invalid_destination"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNKNOWN = "unknown"


NON_RETRYABLE_KINDS = frozenset({
    ErrorKind.AUTHORIZATION,
    ErrorKind.VALIDATION,
    ErrorKind.NOT_FOUND,
    ErrorKind.OPTED_OUT,
    ErrorKind.INVALID_DESTINATION,
    ErrorKind.QUOTA_EXCEEDED,
})

DELIVERY_KINDS = frozenset({
    ErrorKind.OPTED_OUT,
    ErrorKind.INVALID_DESTINATION,
    ErrorKind.QUOTA_EXCEEDED,
})

USER_MESSAGES = {
    ErrorKind.AUTHORIZATION: "Authentication error. Please log in again.",
    ErrorKind.VALIDATION: "Invalid data provided. Please check your input.",
    ErrorKind.NOT_FOUND: "Resource not found. It may have been deleted.",
    ErrorKind.CONFLICT: "Operation failed due to a conflict. Please try again.",
    ErrorKind.TIMEOUT: "Request timed out. Please try again.",
    ErrorKind.NETWORK: "Network connection error. Please check your internet connection.",
    ErrorKind.UNAVAILABLE: "Service temporarily unavailable. Please try again.",
    ErrorKind.THROTTLED: "Too many requests. Please try again shortly.",
    ErrorKind.OPTED_OUT: "This phone number has opted out of SMS. Please use a different number.",
    ErrorKind.INVALID_DESTINATION: "Invalid phone number format. Please check the number and try again.",
    ErrorKind.QUOTA_EXCEEDED: "SMS service temporarily unavailable. Please try again later.",
    ErrorKind.UNKNOWN: "An unexpected error occurred",
}


class IdentityError(Exception):
    """Base class for all identity core errors."""

    code = "error"
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None):
        self.user_message = message or self.default_message
        super().__init__(self.user_message)


class ValidationError(IdentityError):
    """Missing or malformed input."""
    code = "validation"
    default_message = "Invalid input"


class DuplicateError(IdentityError):
    """Email or phone already registered."""
    code = "duplicate"
    default_message = "User already exists with this email"


class NotFoundError(IdentityError):
    """User absent."""
    code = "not_found"
    default_message = "User not found"


class InvalidCredentialsError(IdentityError):
    """Login failed; never says which part was wrong."""
    code = "invalid_credentials"
    default_message = "Invalid email or password"


class ExpiredCodeError(IdentityError):
    code = "expired_code"
    default_message = "Code has expired. Please request a new one."


class InvalidCodeError(IdentityError):
    code = "invalid_code"
    default_message = "Invalid code"


class UnsupportedAccountTypeError(IdentityError):
    """Password reset requested on a delegated-identity-only account."""
    code = "unsupported_account"
    default_message = "This account uses Google sign-in. Password reset is not available."


class InfraError(IdentityError):
    """
    Failure of an external call (record store or messaging gateway).

    The user-facing message is derived from ``kind``; the internal detail is
    kept in ``detail`` and the chained ``__cause__`` for logging only.
    """

    code = "infra"

    def __init__(
        self,
        kind: ErrorKind,
        detail: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.kind = kind
        self.detail = detail or kind.value
        super().__init__(message or USER_MESSAGES[kind])

    @property
    def retryable(self) -> bool:
        return self.kind not in NON_RETRYABLE_KINDS

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.detail}"


class TransientInfraError(InfraError):
    """Infrastructure failure that may succeed on retry."""
    code = "transient_infra"


class PermanentInfraError(InfraError):
    """Infrastructure failure that will not succeed on retry."""
    code = "permanent_infra"

    @property
    def retryable(self) -> bool:
        return False


class DeliveryError(PermanentInfraError):
    """Messaging failure caused by the destination (opted out, malformed, quota)."""
    code = "delivery"


def infra_error_for(
    kind: ErrorKind,
    detail: Optional[str] = None,
    message: Optional[str] = None,
) -> InfraError:
    """Build the infra error class that matches a kind."""
    if kind in DELIVERY_KINDS:
        return DeliveryError(kind, detail, message)
    if kind in NON_RETRYABLE_KINDS:
        return PermanentInfraError(kind, detail, message)
    return TransientInfraError(kind, detail, message)
