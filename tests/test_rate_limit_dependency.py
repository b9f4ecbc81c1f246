"""Tests for the HTTP rate limiting dependency (429 adapter)."""

from unittest.mock import MagicMock, patch

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from admission_api.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from admission_api.adapters.rate_limit.controller import AdmissionController
from admission_api.adapters.rate_limit.policy import LimiterConfig, RateLimitPolicy
from admission_api.core.app_factory import create_app
from admission_api.core.config import AppSettings
from admission_api.core.rate_limit import build_admission_controller, enforce_rate_limit

POLICY_PATH = "/v1/rate-limit/policy"
LIMITERS_PATH = "/v1/rate-limit/limiters"


class StubLimiter(AbstractRateLimiter):
    def __init__(self, result: RateLimitResult) -> None:
        self.result = result
        self.keys: list[str] = []

    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        self.keys.append(key)
        return self.result


def _request(path: str) -> MagicMock:
    request = MagicMock()
    request.url.path = path
    return request


@pytest.fixture
def controller(clock) -> AdmissionController:
    policy = RateLimitPolicy(
        default=LimiterConfig(requests_per_second=1, burst_size=3),
        custom_limits={POLICY_PATH: LimiterConfig(requests_per_second=1, burst_size=2)},
    )
    return AdmissionController(policy, clock=clock)


@pytest.fixture
def client(controller: AdmissionController) -> TestClient:
    return TestClient(create_app(controller=controller))


def test_override_route_is_throttled_after_burst(client: TestClient, api_key_headers) -> None:
    assert client.get(POLICY_PATH, headers=api_key_headers).status_code == 200
    assert client.get(POLICY_PATH, headers=api_key_headers).status_code == 200

    response = client.get(POLICY_PATH, headers=api_key_headers)

    assert response.status_code == 429
    assert response.json() == {"detail": "Too many requests"}
    assert response.headers["X-RateLimit-Limit"] == "2"
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert response.headers["Retry-After"] == "1"


def test_other_routes_use_the_default_bucket(client: TestClient, api_key_headers) -> None:
    for _ in range(2):
        client.get(POLICY_PATH, headers=api_key_headers)
    assert client.get(POLICY_PATH, headers=api_key_headers).status_code == 429

    statuses = [client.get(LIMITERS_PATH, headers=api_key_headers).status_code for _ in range(4)]

    assert statuses == [200, 200, 200, 429]


def test_bucket_refills_with_time(client: TestClient, clock, api_key_headers) -> None:
    for _ in range(2):
        client.get(POLICY_PATH, headers=api_key_headers)
    assert client.get(POLICY_PATH, headers=api_key_headers).status_code == 429

    clock.advance(1)

    assert client.get(POLICY_PATH, headers=api_key_headers).status_code == 200


def test_health_is_never_rate_limited(client: TestClient) -> None:
    statuses = {client.get("/health").status_code for _ in range(20)}

    assert statuses == {200}
    assert client.get("/healthz").text == "OK"


def test_query_string_is_not_part_of_the_key(client: TestClient, api_key_headers) -> None:
    client.get(f"{POLICY_PATH}?a=1", headers=api_key_headers)
    client.get(f"{POLICY_PATH}?a=2", headers=api_key_headers)

    assert client.get(f"{POLICY_PATH}?a=3", headers=api_key_headers).status_code == 429


@pytest.mark.asyncio
async def test_allowed_request_passes_through() -> None:
    limiter = StubLimiter(RateLimitResult(allowed=True, limit=5, remaining=4))

    await enforce_rate_limit(_request("/v1/thing"), limiter)

    assert limiter.keys == ["/v1/thing"]


@pytest.mark.asyncio
async def test_denied_request_raises_429_with_headers() -> None:
    limiter = StubLimiter(
        RateLimitResult(allowed=False, limit=5, remaining=0, retry_after_seconds=2.2)
    )

    with pytest.raises(HTTPException) as exc_info:
        await enforce_rate_limit(_request("/v1/thing"), limiter)

    assert exc_info.value.status_code == 429
    assert exc_info.value.headers == {
        "X-RateLimit-Limit": "5",
        "X-RateLimit-Remaining": "0",
        "Retry-After": "3",
    }


@pytest.mark.asyncio
async def test_denial_is_logged_as_warning_not_error(caplog: pytest.LogCaptureFixture) -> None:
    limiter = StubLimiter(RateLimitResult(allowed=False, limit=1, remaining=0))

    with pytest.raises(HTTPException):
        await enforce_rate_limit(_request("/v1/thing"), limiter)

    records = [r for r in caplog.records if r.getMessage() == "rate_limit.exceeded"]
    assert len(records) == 1
    assert records[0].levelname == "WARNING"


@pytest.mark.asyncio
@patch("admission_api.core.rate_limit.settings")
async def test_headers_can_be_disabled(mock_settings) -> None:
    mock_settings.app.rate_limit_enabled = True
    mock_settings.app.rate_limit_include_headers = False
    limiter = StubLimiter(
        RateLimitResult(allowed=False, limit=5, remaining=0, retry_after_seconds=1.0)
    )

    with pytest.raises(HTTPException) as exc_info:
        await enforce_rate_limit(_request("/v1/thing"), limiter)

    assert exc_info.value.headers is None


@pytest.mark.asyncio
@patch("admission_api.core.rate_limit.settings")
async def test_disabled_rate_limiting_skips_the_limiter(mock_settings) -> None:
    mock_settings.app.rate_limit_enabled = False
    limiter = StubLimiter(RateLimitResult(allowed=False, limit=1, remaining=0))

    await enforce_rate_limit(_request("/v1/thing"), limiter)

    assert limiter.keys == []


def test_build_admission_controller_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_RATE_LIMIT_REQUESTS_PER_SECOND", "-1")
    monkeypatch.setenv(
        "APP_RATE_LIMIT_CUSTOM_LIMITS",
        '{"/v1/login": {"requests_per_second": 2, "burst_size": 4}}',
    )

    controller = build_admission_controller(AppSettings())

    assert controller.policy.default == LimiterConfig(1.0, 1)
    assert controller.policy.custom_limits["/v1/login"] == LimiterConfig(2.0, 4)
