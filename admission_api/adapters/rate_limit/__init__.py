"""Rate limiting adapters.

In-process token buckets keyed by route. The HTTP layer only sees
``AbstractRateLimiter``; ``AdmissionController`` is the implementation.
"""

from admission_api.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from admission_api.adapters.rate_limit.controller import AdmissionController
from admission_api.adapters.rate_limit.policy import (
    FALLBACK_LIMITER_CONFIG,
    LimiterConfig,
    RateLimitPolicy,
)
from admission_api.adapters.rate_limit.token_bucket import LimiterSnapshot, TokenBucketLimiter

__all__ = [
    "AbstractRateLimiter",
    "AdmissionController",
    "FALLBACK_LIMITER_CONFIG",
    "LimiterConfig",
    "LimiterSnapshot",
    "RateLimitPolicy",
    "RateLimitResult",
    "TokenBucketLimiter",
]
