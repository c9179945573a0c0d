"""
Exception classes for the DNS sync layer.

All exceptions inherit from DnsSyncError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional

from .enums import FailureKind


class DnsSyncError(Exception):
    """Base exception for all sync layer errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DnsSyncError):
    """Raised when input is rejected before any network call (tag limits, note length)."""

    pass


class NetworkError(DnsSyncError):
    """Raised when the remote backend cannot be reached (connection, timeout, TLS)."""

    pass


class RemoteError(DnsSyncError):
    """Raised when the backend answers with a structured application-level error."""

    @property
    def provider(self) -> Optional[str]:
        """Provider id reported by the backend, if any."""
        return self.details.get("provider")


class CredentialError(RemoteError):
    """Raised when a provider rejects the stored credentials of an account."""

    pass


class PersistenceError(DnsSyncError):
    """Raised when persistence operations fail (file I/O, malformed blob)."""

    pass


class TamperingError(PersistenceError):
    """Raised when HMAC validation of the storage file fails."""

    pass


def classify_error(error: BaseException) -> FailureKind:
    """
    Map an exception onto the closed set of failure kinds.

    Anything that is not one of our structured errors is treated as a
    transport failure, since it escaped the remote client unclassified.
    """
    if isinstance(error, ValidationError):
        return FailureKind.VALIDATION
    if isinstance(error, CredentialError):
        return FailureKind.CREDENTIAL
    if isinstance(error, RemoteError):
        return FailureKind.REMOTE
    return FailureKind.TRANSPORT
