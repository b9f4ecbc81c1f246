"""Rate limiter interfaces.

The HTTP layer depends on this abstraction rather than on the token bucket
controller directly, so it can be exercised with a stub in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single admission decision.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Bucket capacity (burst size) of the limiter that decided.
        remaining: Whole tokens left after the decision.
        retry_after_seconds: Seconds until the request could be admitted.
            None when allowed, or when the bucket can never hold enough tokens.
    """

    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: float | None = None


class AbstractRateLimiter(ABC):
    """Interface for keyed rate limiters."""

    @abstractmethod
    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Consume budget for ``key``.

        Args:
            key: Route key; unknown keys are valid.
            cost: Units to consume (default 1).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    def admit(self, key: str) -> bool:
        """Return True when one request for ``key`` may proceed."""
        return self.consume(key).allowed
