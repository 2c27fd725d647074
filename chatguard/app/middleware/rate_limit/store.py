"""In-memory token bucket store.

Buckets live in a plain dict owned by one store instance. The store is
created in the application lifespan and injected where needed, so tests
build their own isolated instance.
"""

import asyncio
import math
import time
from typing import Dict, Optional

from chatguard.app.core.config import settings
from chatguard.app.core.logging import get_logger
from chatguard.app.middleware.rate_limit.models import (
    RateLimitResult,
    TokenBucket,
    TokenBucketConfig,
)

logger = get_logger(__name__)


class InMemoryBucketStore:
    """Process-local continuous-refill token buckets.

    Suitable for single-instance deployments only; nothing is persisted.

    Memory is bounded by a sweep: once the store holds ``sweep_threshold``
    buckets, buckets idle for longer than ``stale_ttl_seconds`` are dropped.
    """

    def __init__(
        self,
        sweep_threshold: Optional[int] = None,
        stale_ttl_seconds: Optional[float] = None,
        fallback_window_seconds: Optional[int] = None,
    ):
        """Initialize the store.

        Args:
            sweep_threshold: Bucket count at which stale entries are swept
            stale_ttl_seconds: Idle time after which a bucket is stale
            fallback_window_seconds: Retry-After used when a bucket never refills
        """
        self.sweep_threshold = (
            sweep_threshold if sweep_threshold is not None
            else settings.rate_limit_sweep_threshold
        )
        self.stale_ttl_seconds = (
            stale_ttl_seconds if stale_ttl_seconds is not None
            else settings.rate_limit_stale_ttl_seconds
        )
        self.fallback_window_seconds = (
            fallback_window_seconds if fallback_window_seconds is not None
            else settings.rate_limit_fallback_window_seconds
        )
        self._buckets: Dict[str, TokenBucket] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._buckets)

    def get(self, key: str) -> Optional[TokenBucket]:
        """Return the bucket for ``key`` without touching it."""
        return self._buckets.get(key)

    async def take_token(
        self,
        key: str,
        config: TokenBucketConfig,
        now: Optional[float] = None,
    ) -> RateLimitResult:
        """Refill the bucket for ``key`` and try to consume one token.

        The first request for a key is charged: the new bucket starts at
        ``capacity - 1``.
        """
        now = time.time() if now is None else now
        async with self._lock:
            return self._take_token(key, config, now)

    def _take_token(self, key: str, config: TokenBucketConfig, now: float) -> RateLimitResult:
        bucket = self._buckets.get(key)

        if bucket is None:
            tokens = max(config.capacity - 1, 0.0)
            self._buckets[key] = TokenBucket(tokens=tokens, last_refill=now, last_update=now)
            return RateLimitResult(allowed=True, remaining=math.floor(tokens))

        refill_rate = max(config.refill_tokens_per_second, 0.0)
        elapsed = max(0.0, now - bucket.last_refill)
        bucket.tokens = min(config.capacity, bucket.tokens + elapsed * refill_rate)
        bucket.last_refill = now
        bucket.last_update = now

        if bucket.tokens >= 1:
            bucket.tokens -= 1
            return RateLimitResult(allowed=True, remaining=math.floor(bucket.tokens))

        if refill_rate > 0:
            retry_after = math.ceil((1 - bucket.tokens) / refill_rate)
        else:
            retry_after = self.fallback_window_seconds

        return RateLimitResult(
            allowed=False,
            remaining=0,
            retry_after_seconds=max(1, retry_after),
        )

    async def sweep(self, now: Optional[float] = None) -> None:
        """Drop stale buckets once the store has grown past the threshold."""
        now = time.time() if now is None else now
        async with self._lock:
            if len(self._buckets) < self.sweep_threshold:
                return

            expired = [
                key for key, bucket in self._buckets.items()
                if now - bucket.last_update > self.stale_ttl_seconds
            ]
            for key in expired:
                del self._buckets[key]

        if expired:
            logger.debug(f"Swept {len(expired)} stale rate limit buckets")

    def reset(self) -> None:
        """Forget every bucket. Intended for tests."""
        self._buckets.clear()
