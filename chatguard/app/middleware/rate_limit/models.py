"""Rate limiting data models.

This module contains dataclasses for token bucket state, limits and results.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TokenBucketConfig:
    """Capacity and continuous refill rate for one bucket scope."""
    capacity: float
    refill_tokens_per_second: float

    @classmethod
    def per_minute(cls, requests: int) -> "TokenBucketConfig":
        """Bucket holding ``requests`` tokens that refills fully in a minute."""
        return cls(capacity=float(requests), refill_tokens_per_second=requests / 60)


@dataclass(frozen=True)
class RateLimitConfig:
    """Per-route limits for the client-address and identity scopes."""
    ip: TokenBucketConfig
    user: TokenBucketConfig


@dataclass
class TokenBucket:
    """Token bucket state for one bucket key."""
    tokens: float
    last_refill: float
    last_update: float


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    remaining: int
    retry_after_seconds: int = 0
