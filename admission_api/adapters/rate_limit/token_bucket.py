"""Single token bucket with lazy, on-call refill.

No timer runs per bucket. Each call computes how many tokens accrued since
the previous call and clamps the total to the bucket capacity.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: each bucket owns its lock, so buckets never contend.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from admission_api.adapters.rate_limit.base import RateLimitResult
from admission_api.adapters.rate_limit.policy import LimiterConfig

# Float slack on token comparisons: elapsed * rate after exactly 1/R seconds
# can land a few ulps below 1.0.
_TOKEN_EPSILON = 1e-9


@dataclass(frozen=True)
class LimiterSnapshot:
    """Point-in-time view of a bucket, for diagnostics."""

    requests_per_second: float
    burst_size: int
    tokens: float


class TokenBucketLimiter:
    """Token bucket refilled continuously at ``requests_per_second``.

    The bucket starts full. A request costing ``n`` is admitted when at least
    ``n`` tokens are available; a denied request takes nothing. The refill
    timestamp advances on every call, admitted or not, so time elapsed
    between repeated denials still counts towards the next refill.

    A capacity of 0 is accepted and yields a bucket that never admits.
    """

    def __init__(
        self,
        *,
        requests_per_second: float,
        burst_size: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize a full bucket.

        Args:
            requests_per_second: Refill rate, finite and > 0.
            burst_size: Bucket capacity, >= 0.
            clock: Monotonic time source in seconds.

        Raises:
            ValueError: If the rate or capacity are out of range.
        """
        if not math.isfinite(requests_per_second) or requests_per_second <= 0:
            raise ValueError("requests_per_second must be a finite number > 0")
        if burst_size < 0:
            raise ValueError("burst_size must be >= 0")

        self._rate = float(requests_per_second)
        self._burst = int(burst_size)
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens = float(self._burst)
        self._last_refill = clock()

    @classmethod
    def from_config(
        cls, config: LimiterConfig, *, clock: Callable[[], float] = time.monotonic
    ) -> "TokenBucketLimiter":
        return cls(
            requests_per_second=config.requests_per_second,
            burst_size=config.burst_size,
            clock=clock,
        )

    @property
    def config(self) -> LimiterConfig:
        return LimiterConfig(requests_per_second=self._rate, burst_size=self._burst)

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"TokenBucketLimiter(requests_per_second={self._rate}, "
            f"burst_size={self._burst}, tokens={self._tokens:.3f})"
        )

    def _refilled(self, now: float) -> float:
        elapsed = max(0.0, now - self._last_refill)
        return min(float(self._burst), self._tokens + elapsed * self._rate)

    def consume(self, cost: int = 1) -> RateLimitResult:
        """Take ``cost`` tokens if available.

        Args:
            cost: Tokens required by the request (default 1).

        Returns:
            RateLimitResult with the decision and remaining budget.

        Raises:
            ValueError: If cost is < 1.
        """
        if cost < 1:
            raise ValueError("cost must be >= 1")

        with self._lock:
            now = self._clock()
            tokens = self._refilled(now)
            self._last_refill = now

            if tokens + _TOKEN_EPSILON >= cost:
                self._tokens = max(0.0, tokens - cost)
                return RateLimitResult(
                    allowed=True,
                    limit=self._burst,
                    remaining=int(self._tokens),
                )

            self._tokens = tokens

        retry_after = None
        if cost <= self._burst:
            retry_after = (cost - tokens) / self._rate
        return RateLimitResult(
            allowed=False,
            limit=self._burst,
            remaining=int(tokens),
            retry_after_seconds=retry_after,
        )

    def snapshot(self) -> LimiterSnapshot:
        """Tokens available right now, without consuming or advancing state."""
        with self._lock:
            tokens = self._refilled(self._clock())
        return LimiterSnapshot(
            requests_per_second=self._rate,
            burst_size=self._burst,
            tokens=tokens,
        )
