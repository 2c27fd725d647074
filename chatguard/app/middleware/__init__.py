"""Middleware package: request guard, rate limiting and request plumbing."""

from chatguard.app.middleware.guard import GuardRejection, check_guards, require_guards
from chatguard.app.middleware.identity import IdentityHint, extract_identity
from chatguard.app.middleware.rate_limit import InMemoryBucketStore, RateLimiter
from chatguard.app.middleware.request_id import RequestIdMiddleware, get_request_id
from chatguard.app.middleware.request_size import RequestSizeLimitMiddleware

__all__ = [
    "GuardRejection",
    "check_guards",
    "require_guards",
    "IdentityHint",
    "extract_identity",
    "InMemoryBucketStore",
    "RateLimiter",
    "RequestIdMiddleware",
    "RequestSizeLimitMiddleware",
    "get_request_id",
]
