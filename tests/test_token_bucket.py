"""Unit tests for the single token bucket."""

import math

import pytest

from admission_api.adapters.rate_limit.policy import LimiterConfig
from admission_api.adapters.rate_limit.token_bucket import TokenBucketLimiter


def test_starts_full_and_absorbs_burst(clock) -> None:
    bucket = TokenBucketLimiter(requests_per_second=1, burst_size=3, clock=clock)

    results = [bucket.consume() for _ in range(3)]

    assert all(r.allowed for r in results)
    assert [r.remaining for r in results] == [2, 1, 0]
    assert bucket.consume().allowed is False


def test_denied_request_consumes_nothing(clock) -> None:
    bucket = TokenBucketLimiter(requests_per_second=2, burst_size=1, clock=clock)
    assert bucket.consume().allowed is True

    clock.advance(0.25)
    assert bucket.consume().allowed is False
    clock.advance(0.25)
    # 0.25s + 0.25s at 2 tok/s: exactly one token, nothing lost to the denial
    assert bucket.consume().allowed is True


def test_refill_is_clamped_to_burst(clock) -> None:
    bucket = TokenBucketLimiter(requests_per_second=10, burst_size=2, clock=clock)
    bucket.consume()
    bucket.consume()

    clock.advance(3600)

    assert bucket.snapshot().tokens == 2
    assert bucket.consume().allowed is True
    assert bucket.consume().allowed is True
    assert bucket.consume().allowed is False


def test_blocked_result_reports_retry_after(clock) -> None:
    bucket = TokenBucketLimiter(requests_per_second=4, burst_size=1, clock=clock)
    bucket.consume()

    blocked = bucket.consume()

    assert blocked.allowed is False
    assert blocked.limit == 1
    assert blocked.remaining == 0
    assert blocked.retry_after_seconds == pytest.approx(0.25)


def test_zero_burst_never_admits(clock) -> None:
    bucket = TokenBucketLimiter(requests_per_second=100, burst_size=0, clock=clock)

    for _ in range(5):
        clock.advance(10)
        result = bucket.consume()
        assert result.allowed is False
        assert result.retry_after_seconds is None


def test_cost_larger_than_burst_is_never_admitted(clock) -> None:
    bucket = TokenBucketLimiter(requests_per_second=1, burst_size=2, clock=clock)

    result = bucket.consume(cost=3)

    assert result.allowed is False
    assert result.retry_after_seconds is None
    assert bucket.consume(cost=2).allowed is True


def test_clock_going_backwards_does_not_drain(clock) -> None:
    bucket = TokenBucketLimiter(requests_per_second=1, burst_size=1, clock=clock)
    clock.advance(-5)

    assert bucket.consume().allowed is True


def test_snapshot_does_not_consume(clock) -> None:
    bucket = TokenBucketLimiter(requests_per_second=1, burst_size=2, clock=clock)

    bucket.snapshot()
    bucket.snapshot()

    assert bucket.snapshot().tokens == 2
    assert bucket.consume().remaining == 1


def test_from_config_round_trips_parameters(clock) -> None:
    config = LimiterConfig(requests_per_second=2.5, burst_size=7)

    bucket = TokenBucketLimiter.from_config(config, clock=clock)

    assert bucket.config == config


@pytest.mark.parametrize(
    "kwargs",
    [
        {"requests_per_second": 0, "burst_size": 1},
        {"requests_per_second": -1, "burst_size": 1},
        {"requests_per_second": math.inf, "burst_size": 1},
        {"requests_per_second": math.nan, "burst_size": 1},
        {"requests_per_second": 1, "burst_size": -1},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        TokenBucketLimiter(**kwargs)


def test_invalid_cost() -> None:
    bucket = TokenBucketLimiter(requests_per_second=1, burst_size=1)

    with pytest.raises(ValueError):
        bucket.consume(cost=0)
