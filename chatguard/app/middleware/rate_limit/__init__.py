"""Rate limiting for AI routes.

Every admitted request is charged against two independent token buckets:
one keyed by route and client address, and, when the caller carries an
identity hint, one keyed by route and identity. Both must pass and the
first failure wins.
"""

import time
from typing import Dict, Literal, Optional

from starlette.requests import Request

from chatguard.app.core.logging import get_log_context, get_logger
from chatguard.app.middleware.identity import IdentityHint
from chatguard.app.middleware.rate_limit.models import (
    RateLimitConfig,
    RateLimitResult,
    TokenBucket,
    TokenBucketConfig,
)
from chatguard.app.middleware.rate_limit.store import InMemoryBucketStore

logger = get_logger(__name__)

__all__ = [
    # Models
    "RateLimitConfig",
    "RateLimitResult",
    "TokenBucket",
    "TokenBucketConfig",
    # Store
    "InMemoryBucketStore",
    # Main classes
    "GuardPreset",
    "PRESET_RATE_LIMITS",
    "RateLimiter",
    "get_client_ip",
]

GuardPreset = Literal["aiText", "aiTranscribe"]

PRESET_RATE_LIMITS: Dict[str, RateLimitConfig] = {
    "aiText": RateLimitConfig(
        ip=TokenBucketConfig.per_minute(20),
        user=TokenBucketConfig.per_minute(40),
    ),
    "aiTranscribe": RateLimitConfig(
        ip=TokenBucketConfig.per_minute(6),
        user=TokenBucketConfig.per_minute(12),
    ),
}

UNKNOWN_CLIENT = "unknown"


def get_client_ip(request: Request) -> str:
    """Resolve the client address behind proxies and CDNs.

    Order: first X-Forwarded-For entry, X-Real-IP, CF-Connecting-IP, the
    transport peer, then the literal ``"unknown"``.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header, "").strip()
        if value:
            return value

    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN_CLIENT


class RateLimiter:
    """Applies per-route presets to an injected bucket store."""

    def __init__(
        self,
        store: Optional[InMemoryBucketStore] = None,
        presets: Optional[Dict[str, RateLimitConfig]] = None,
    ):
        """Initialize the limiter.

        Args:
            store: Bucket store shared by every route (a fresh one if omitted)
            presets: Preset name to limits mapping (defaults to PRESET_RATE_LIMITS)
        """
        self.store = store if store is not None else InMemoryBucketStore()
        self.presets = presets if presets is not None else PRESET_RATE_LIMITS

    def get_preset(self, preset: str) -> RateLimitConfig:
        try:
            return self.presets[preset]
        except KeyError:
            raise ValueError(f"Unknown rate limit preset: {preset}") from None

    async def check(
        self,
        route_key: str,
        preset: str,
        client_ip: str,
        identity: Optional[IdentityHint] = None,
        now: Optional[float] = None,
    ) -> RateLimitResult:
        """Charge one request against the address and identity buckets.

        Args:
            route_key: Logical route name the buckets are scoped to
            preset: Name of the limits to apply
            client_ip: Resolved client address
            identity: Identity hint, None for anonymous callers
            now: Clock override in seconds (defaults to time.time())

        Returns:
            The first rejecting result, else the last allowing one
        """
        limits = self.get_preset(preset)
        now = time.time() if now is None else now

        await self.store.sweep(now)

        result = await self.store.take_token(f"ip:{route_key}:{client_ip}", limits.ip, now)
        if not result.allowed:
            logger.info(
                "Rate limit exceeded for client address",
                extra=get_log_context(
                    route=route_key,
                    client_ip=client_ip,
                    retry_after=result.retry_after_seconds,
                ),
            )
            return result

        if identity is None:
            return result

        result = await self.store.take_token(f"user:{route_key}:{identity.subject}", limits.user, now)
        if not result.allowed:
            logger.info(
                "Rate limit exceeded for identity",
                extra=get_log_context(
                    route=route_key,
                    client_ip=client_ip,
                    retry_after=result.retry_after_seconds,
                ),
            )
        return result
