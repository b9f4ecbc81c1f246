"""Admission controller: route key -> token bucket, plus hot reload.

The controller owns every bucket. Its mutable state is a single frozen
``_ControllerState`` reference; ``reload`` builds a replacement and swaps it
in with one assignment, so ``consume`` reads the route map without taking
any controller-wide lock. Only the bucket that serves the request is locked.

Buckets are created eagerly for the default limit and every override when a
policy is loaded. A reload recreates (full) only the buckets whose limits
changed; the rest keep their accumulated state.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Mapping

from admission_api.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from admission_api.adapters.rate_limit.policy import (
    DEFAULT_KEY,
    LimiterConfig,
    RateLimitPolicy,
    reserved_key_warning,
    sanitize_limiter_config,
)
from admission_api.adapters.rate_limit.token_bucket import LimiterSnapshot, TokenBucketLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _ControllerState:
    policy: RateLimitPolicy
    default: TokenBucketLimiter
    limiters: Mapping[str, TokenBucketLimiter]
    warnings: tuple[str, ...]


class AdmissionController(AbstractRateLimiter):
    """Per-route token bucket rate limiter.

    Example:
        >>> policy = RateLimitPolicy(
        ...     default=LimiterConfig(requests_per_second=10, burst_size=10),
        ...     custom_limits={"/v1/login": LimiterConfig(1, 3)},
        ... )
        >>> controller = AdmissionController(policy)
        >>> controller.admit("/v1/login")
        True
    """

    def __init__(
        self,
        policy: RateLimitPolicy,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Build buckets for ``policy``.

        Malformed limits never make construction fail: each one is replaced
        by the fallback config and reported through ``warnings`` and a
        ``rate_limit.config_coerced`` log record.

        Args:
            policy: Default limit and per-route overrides.
            clock: Monotonic time source in seconds, shared by all buckets.
        """
        self._clock = clock
        self._write_lock = threading.Lock()
        self._state = self._build_state(policy, previous=None)

    @property
    def policy(self) -> RateLimitPolicy:
        """Active policy, after coercion of malformed limits."""
        return self._state.policy

    @property
    def warnings(self) -> tuple[str, ...]:
        """Coercion warnings from the last construction or reload."""
        return self._state.warnings

    def _limiter_for(
        self,
        config: LimiterConfig,
        current: TokenBucketLimiter | None,
    ) -> TokenBucketLimiter:
        if current is not None and current.config == config:
            return current
        return TokenBucketLimiter.from_config(config, clock=self._clock)

    def _build_state(
        self,
        policy: RateLimitPolicy,
        previous: _ControllerState | None,
    ) -> _ControllerState:
        warnings: list[str] = []

        default_config, warning = sanitize_limiter_config(policy.default, label=DEFAULT_KEY)
        if warning:
            warnings.append(warning)
        default = self._limiter_for(default_config, previous.default if previous else None)

        configs: dict[str, LimiterConfig] = {}
        limiters: dict[str, TokenBucketLimiter] = {}
        for key, raw_config in policy.custom_limits.items():
            if key == DEFAULT_KEY:
                warnings.append(reserved_key_warning(key))
                continue
            config, warning = sanitize_limiter_config(raw_config, label=key)
            if warning:
                warnings.append(warning)
            configs[key] = config
            current = previous.limiters.get(key) if previous else None
            limiters[key] = self._limiter_for(config, current)

        for warning in warnings:
            logger.warning("rate_limit.config_coerced", extra={"detail": warning})

        return _ControllerState(
            policy=RateLimitPolicy(default=default_config, custom_limits=configs),
            default=default,
            limiters=MappingProxyType(limiters),
            warnings=tuple(warnings),
        )

    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Decide whether a request for ``key`` may proceed.

        ``key`` is matched exactly against the override map; anything else,
        including the empty string, draws from the shared default bucket.

        Args:
            key: Route key, typically the request path.
            cost: Tokens the request needs (default 1).

        Returns:
            RateLimitResult; ``allowed`` is False when the bucket is empty.
        """
        state = self._state
        limiter = state.limiters.get(key, state.default)
        return limiter.consume(cost)

    def reload(self, policy: RateLimitPolicy) -> tuple[str, ...]:
        """Atomically replace the active policy.

        Routes whose limits changed get a new bucket that starts full. Routes
        with unchanged limits keep their bucket and its tokens. Routes absent
        from ``policy`` fall back to the default bucket from now on.

        Returns:
            Coercion warnings produced for ``policy``.
        """
        with self._write_lock:
            previous = self._state
            state = self._build_state(policy, previous=previous)
            self._state = state

        replaced = sorted(
            key for key, limiter in state.limiters.items() if previous.limiters.get(key) is not limiter
        )
        removed = sorted(set(previous.limiters) - set(state.limiters))
        logger.info(
            "rate_limit.policy_reloaded",
            extra={
                "default_replaced": previous.default is not state.default,
                "replaced_routes": replaced,
                "removed_routes": removed,
                "route_count": len(state.limiters),
                "warning_count": len(state.warnings),
            },
        )
        return state.warnings

    def snapshot(self) -> dict[str, LimiterSnapshot]:
        """Current bucket levels keyed by route, with ``"*"`` for the default."""
        state = self._state
        snapshots = {DEFAULT_KEY: state.default.snapshot()}
        for key, limiter in state.limiters.items():
            snapshots[key] = limiter.snapshot()
        return snapshots
