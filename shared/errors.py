"""
Error taxonomy shared by the Timely services.

Every error raised across a service boundary derives from ``TimelyError`` so
callers can render a single message and decide whether a retry makes sense.
"""
from typing import Optional


class TimelyError(Exception):
    """Base class for Timely errors."""

    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class AuthenticationRequired(TimelyError):
    """No signed-in user (or no provider credentials) for the call."""

    def __init__(self, message: str = "You need to sign in first."):
        super().__init__(message)


class AuthenticationFailed(TimelyError):
    """Credentials were rejected by the identity service or a provider."""


class FederatedSignInError(AuthenticationFailed):
    """The single-sign-on exchange failed."""


class InvalidRequest(TimelyError):
    """A request could not be built from the given inputs."""


class ProviderApiError(TimelyError):
    """A conferencing provider answered with a non-success response."""

    retryable = True

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider


ApiError = ProviderApiError


class PersistenceError(TimelyError):
    """A remote read or write failed."""

    retryable = True


class ValidationError(TimelyError):
    """A remote document is missing required fields or has the wrong shape."""

    def __init__(self, message: str, document_id: Optional[str] = None):
        super().__init__(message)
        self.document_id = document_id


class NetworkError(TimelyError):
    """Transport failure: offline, DNS, connection reset, timeout."""

    retryable = True


__all__ = [
    "TimelyError",
    "AuthenticationRequired",
    "AuthenticationFailed",
    "FederatedSignInError",
    "InvalidRequest",
    "ProviderApiError",
    "ApiError",
    "PersistenceError",
    "ValidationError",
    "NetworkError",
]
