"""Custom exceptions for the chatguard application."""


class ChatGuardException(Exception):
    """Base class for chatguard exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "Internal error"):
        self.message = message
        super().__init__(message)


class PayloadTooLargeError(ChatGuardException):
    """Raised when a declared body size or a measured field exceeds its ceiling.

    The message names the field and ceiling and is safe to show to users.
    Maps to HTTP 413 Payload Too Large.
    """
    status_code = 413


class RateLimitedError(ChatGuardException):
    """Raised when a token bucket has no token left for the caller.

    Maps to HTTP 429 Too Many Requests with a Retry-After header.
    """
    status_code = 429

    def __init__(
        self,
        retry_after_seconds: int,
        message: str = "Too many requests. Please retry later.",
    ):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message)


class ProviderError(ChatGuardException):
    """Base class for failures talking to the generation provider.

    Never rendered verbatim to clients; routes answer with a generic
    message and a request id instead.
    """
    status_code = 500


class ProviderNotConfiguredError(ProviderError):
    """Raised when no provider API key is configured."""

    def __init__(self, message: str = "Gemini API keys are not configured"):
        super().__init__(message)


class ProviderFatalError(ProviderError):
    """Raised for upstream errors that retrying cannot fix (400, 404, invalid argument)."""

    def __init__(self, message: str, attempt: int, status: int | None = None):
        self.attempt = attempt
        self.status = status
        super().__init__(message)


class ProviderRetryExhaustedError(ProviderError):
    """Raised once every attempt failed with a retryable error."""

    def __init__(self, message: str, attempts: int, status: int | None = None):
        self.attempts = attempts
        self.status = status
        super().__init__(message)
