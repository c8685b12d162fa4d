"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing
    # str(exception). DON'T raise this directly - always use a specific subclass so callers
    # can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class ValidationError(DomainException):
    """Input validation failed.

    Raised when an upstream payload can't be converted into a DTO (missing id,
    wrong shape) or when a caller passes invalid arguments.

    Example:
        raise ValidationError("Track payload is missing 'id'")
    """

    pass


class ExternalServiceError(DomainException):
    """External service (Spotify) returned an error.

    Base class for every failure talking to the upstream provider.
    """

    pass


class UpstreamError(ExternalServiceError):
    """Upstream request failed permanently.

    Raised for non-retryable 4xx responses right away, and for 5xx / network
    failures once the retry budget is used up.

    Hey future me - status_code is None for network-level failures (no response at all)!
    attempts tells you how many times we actually hit the wire before giving up.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        url: str | None = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url
        self.attempts = attempts


class UpstreamThrottledError(UpstreamError):
    """Upstream kept answering 429 until the retry budget ran out.

    Throttling is normally absorbed by the limiter + executor; this only
    escapes when the provider refuses us on every single attempt.
    """

    def __init__(
        self,
        message: str,
        retry_after: float,
        url: str | None = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(message, status_code=429, url=url, attempts=attempts)
        self.retry_after = retry_after


class AuthenticationError(DomainException):
    """User is not authenticated or token expired."""

    pass


class UpstreamAuthError(AuthenticationError):
    """Spotify rejected the access token (401).

    Never retried - the same bad token will fail again. The host catches this
    and sends the user through re-authentication.
    """

    def __init__(
        self,
        message: str = "Spotify rejected the access token. Please re-authenticate.",
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.http_status = 401

    @property
    def requires_reauth(self) -> bool:
        """Always True: the credential itself is the problem."""
        return True


__all__ = [
    "DomainException",
    "ValidationError",
    "ExternalServiceError",
    "UpstreamError",
    "UpstreamThrottledError",
    "AuthenticationError",
    "UpstreamAuthError",
]
