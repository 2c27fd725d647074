"""Retry policy for generation provider calls.

This module decides which upstream failures are worth another attempt and
how long to wait in between. Backoff is linear: ``base_delay * (attempt + 1)``.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import httpx

FATAL_STATUSES: Tuple[int, ...] = (400, 404)
RETRYABLE_STATUSES: Tuple[int, ...] = (401, 403, 408, 429)

FATAL_MESSAGE_MARKERS: Tuple[str, ...] = ("invalid argument", "bad request")
RETRYABLE_MESSAGE_MARKERS: Tuple[str, ...] = (
    "rate",
    "overload",
    "timeout",
    "temporar",
    "unavailable",
    "network",
    "gateway",
    "429",
    "503",
)


def extract_status(exception: BaseException) -> Optional[int]:
    """Best-effort HTTP status of a provider error.

    Looks at ``status``, ``code``, ``status_code`` and ``response.status_code``.
    """
    for attr in ("status", "code", "status_code"):
        value = getattr(exception, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    response = getattr(exception, "response", None)
    if isinstance(exception, httpx.HTTPStatusError) or response is not None:
        try:
            value = getattr(response, "status_code", None)
        except RuntimeError:
            # httpx raises when .response is read on a request-only error
            value = None
        if isinstance(value, int):
            return value

    return None


@dataclass
class RetryPolicy:
    """Configuration for retry behavior with linear backoff.

    Attributes:
        max_attempts: Maximum number of attempts, first one included (default: 4)
        base_delay: Delay unit in seconds (default: 0.25)

    Example:
        >>> policy = RetryPolicy(max_attempts=4, base_delay=0.25)
        >>> policy.calculate_delay(attempt=2)
        0.75
    """

    max_attempts: int = 4
    base_delay: float = 0.25

    def calculate_delay(self, attempt: int) -> float:
        """Delay to wait after the failed ``attempt`` (0-indexed)."""
        return self.base_delay * (attempt + 1)

    def is_retryable(self, exception: BaseException) -> bool:
        """Classify a provider failure.

        400/404 and "invalid argument"/"bad request" messages are fatal.
        Auth hiccups, timeouts, throttling and 5xx are retryable, and so is
        anything unrecognised.
        """
        status = extract_status(exception)
        if status in FATAL_STATUSES:
            return False
        if status in RETRYABLE_STATUSES or (status is not None and status >= 500):
            return True

        if isinstance(exception, (httpx.TransportError, TimeoutError)):
            return True

        message = str(exception).lower()
        if any(marker in message for marker in FATAL_MESSAGE_MARKERS):
            return False
        if any(marker in message for marker in RETRYABLE_MESSAGE_MARKERS):
            return True

        # Unknown errors from third-party providers are usually transient
        return True
