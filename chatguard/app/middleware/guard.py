"""Request guard for AI routes.

Each AI endpoint calls the guard before doing real work. The guard checks
the declared payload size first and only then charges the rate limiter, so
oversized requests never consume tokens.

The audio limits and the ``aiTranscribe`` preset are provided for
transcription routes; no route here wires them yet.

Usage in routes:

    @router.post("/api/translate")
    async def translate(
        payload: TranslateRequest,
        _: None = Depends(require_guards("translate", "aiText", MAX_TEXT_REQUEST_BYTES)),
    ):
        ...

Or imperatively:

    rejection = await check_guards(request, limiter, route_key="translate",
                                   preset="aiText", max_body_bytes=MAX_TEXT_REQUEST_BYTES)
    if rejection:
        return rejection.to_response()
"""

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from chatguard.app.exceptions import (
    ChatGuardException,
    PayloadTooLargeError,
    RateLimitedError,
)
from chatguard.app.middleware.identity import extract_identity
from chatguard.app.middleware.rate_limit import RateLimiter, get_client_ip

KIB = 1024
MIB = 1024 * 1024

# Declared request ceilings
MAX_TEXT_REQUEST_BYTES = 32 * KIB
MAX_AUDIO_REQUEST_BYTES = 8 * MIB

# Field ceilings
MAX_TEXT_INPUT_CHARS = 5000
MAX_CONTEXT_INPUT_CHARS = 5000
MAX_CHAT_MESSAGE_CHARS = 4000
MAX_CHAT_TOTAL_CHARS = 12000
MAX_CHAT_MESSAGES = 30
MAX_AUDIO_INPUT_BYTES = 5 * MIB
MAX_LANGUAGE_TAG_CHARS = 32

RATE_LIMITED_MESSAGE = "Too many requests. Please retry later."


class RejectionReason(str, Enum):
    PAYLOAD_TOO_LARGE = "payload_too_large"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class GuardRejection:
    """Structured refusal returned by the guard and field limit checks."""
    reason: RejectionReason
    message: str
    retry_after_seconds: Optional[int] = None

    @property
    def status_code(self) -> int:
        return 429 if self.reason == RejectionReason.RATE_LIMITED else 413

    @property
    def headers(self) -> dict[str, str]:
        if self.retry_after_seconds is None:
            return {}
        return {"Retry-After": str(self.retry_after_seconds)}

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content={"error": self.message},
            headers=self.headers,
        )

    def to_exception(self) -> ChatGuardException:
        if self.reason == RejectionReason.RATE_LIMITED:
            return RateLimitedError(self.retry_after_seconds or 1, self.message)
        return PayloadTooLargeError(self.message)


def payload_too_large(message: str) -> GuardRejection:
    return GuardRejection(reason=RejectionReason.PAYLOAD_TOO_LARGE, message=message)


def rate_limited(retry_after_seconds: int) -> GuardRejection:
    return GuardRejection(
        reason=RejectionReason.RATE_LIMITED,
        message=RATE_LIMITED_MESSAGE,
        retry_after_seconds=retry_after_seconds,
    )


def enforce_content_length(request: Request, max_bytes: int) -> Optional[GuardRejection]:
    """Reject when the declared Content-Length exceeds ``max_bytes``.

    A missing, non-numeric or non-positive header is let through; measured
    field checks cover unsized bodies.
    """
    header = request.headers.get("content-length")
    if not header:
        return None

    try:
        content_length = int(header.strip())
    except ValueError:
        return None

    if content_length <= 0 or content_length <= max_bytes:
        return None

    return payload_too_large(
        f"Payload too large. Maximum request size is {max_bytes} bytes."
    )


def enforce_text_limit(field_name: str, value: str, max_chars: int) -> Optional[GuardRejection]:
    return enforce_character_count_limit(field_name, len(value), max_chars)


def enforce_character_count_limit(
    field_name: str, value_length: int, max_chars: int
) -> Optional[GuardRejection]:
    if value_length > max_chars:
        return payload_too_large(
            f"Payload too large. Maximum {field_name} length is {max_chars} characters."
        )
    return None


def enforce_array_size_limit(
    field_name: str, value_count: int, max_items: int
) -> Optional[GuardRejection]:
    if value_count > max_items:
        return payload_too_large(
            f"Payload too large. Maximum {field_name} size is {max_items} items."
        )
    return None


def enforce_blob_limit(field_name: str, size_bytes: int, max_bytes: int) -> Optional[GuardRejection]:
    if size_bytes > max_bytes:
        return payload_too_large(
            f"Payload too large. Maximum {field_name} size is {max_bytes} bytes."
        )
    return None


def raise_if_rejected(rejection: Optional[GuardRejection]) -> None:
    """Raise the exception form of a rejection; no-op for None."""
    if rejection is not None:
        raise rejection.to_exception()


async def check_guards(
    request: Request,
    limiter: RateLimiter,
    *,
    route_key: str,
    preset: str,
    max_body_bytes: int,
    now: Optional[float] = None,
) -> Optional[GuardRejection]:
    """Run the size check, then the rate limit check.

    Returns:
        None when the request may proceed, else the first rejection
    """
    too_large = enforce_content_length(request, max_body_bytes)
    if too_large:
        return too_large

    identity = extract_identity(request.headers, request.cookies)
    result = await limiter.check(
        route_key,
        preset,
        client_ip=get_client_ip(request),
        identity=identity,
        now=now,
    )
    if not result.allowed:
        return rate_limited(result.retry_after_seconds)

    return None


def get_rate_limiter(request: Request) -> RateLimiter:
    """Rate limiter created by the application lifespan."""
    return request.app.state.rate_limiter


def require_guards(
    route_key: str, preset: str, max_body_bytes: int
) -> Callable[[Request], Awaitable[None]]:
    """Build a FastAPI dependency that raises on guard rejection.

    The raised PayloadTooLargeError / RateLimitedError is rendered by the
    application's exception handlers.
    """
    async def dependency(request: Request) -> None:
        rejection = await check_guards(
            request,
            get_rate_limiter(request),
            route_key=route_key,
            preset=preset,
            max_body_bytes=max_body_bytes,
        )
        raise_if_rejected(rejection)

    return dependency
