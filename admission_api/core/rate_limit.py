"""Rate limiting dependency for FastAPI routes.

This module wires the admission controller into the HTTP layer. The
controller instance is created by the app factory and stored on
``app.state``; routes only depend on ``enforce_rate_limit``.

Strategy:
- Route key is the exact request path.
- Paths listed in the policy's overrides get their own bucket, every other
  path shares the default bucket.
- A denied request becomes HTTP 429. It is expected backpressure, so it is
  logged as a warning, never as an error.
"""

from __future__ import annotations

import logging
import math
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from admission_api.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from admission_api.adapters.rate_limit.controller import AdmissionController
from admission_api.adapters.rate_limit.policy import RateLimitPolicy
from admission_api.core.config import AppSettings, settings

logger = logging.getLogger(__name__)


def build_admission_controller(app_settings: AppSettings | None = None) -> AdmissionController:
    """Create a controller from settings, logging any coerced limits.

    Args:
        app_settings: Settings to read; defaults to the global settings.

    Returns:
        AdmissionController ready to serve requests.
    """

    cfg = app_settings or settings.app
    policy, warnings = RateLimitPolicy.from_settings(cfg)
    for warning in warnings:
        logger.warning("rate_limit.settings_invalid", extra={"detail": warning})

    controller = AdmissionController(policy)
    logger.info(
        "rate_limit.controller_ready",
        extra={
            "enabled": cfg.rate_limit_enabled,
            "default": controller.policy.default.as_dict(),
            "custom_routes": sorted(controller.policy.custom_limits),
        },
    )
    return controller


def get_admission_controller(request: Request) -> AbstractRateLimiter:
    """Return the controller installed on the running application."""

    return request.app.state.admission_controller


def build_rate_limit_key(request: Request) -> str:
    """Route key for the current request: the path, without query string."""

    return request.url.path


def _rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
    }
    if result.retry_after_seconds is not None:
        headers["Retry-After"] = str(max(1, math.ceil(result.retry_after_seconds)))
    return headers


async def enforce_rate_limit(
    request: Request,
    limiter: Annotated[AbstractRateLimiter, Depends(get_admission_controller)],
) -> None:
    """FastAPI dependency enforcing per-route rate limits.

    Consumes one token from the bucket selected by the request path.

    Args:
        request: FastAPI request.
        limiter: Controller taken from ``app.state``.

    Raises:
        HTTPException: 429 Too Many Requests when the bucket is empty.
    """

    if not settings.app.rate_limit_enabled:
        return

    key = build_rate_limit_key(request)
    result = limiter.consume(key)
    if result.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={"route_key": key, "limit": result.limit, "remaining": result.remaining},
        )
        return

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "route_key": key,
            "limit": result.limit,
            "remaining": result.remaining,
            "retry_after_s": result.retry_after_seconds,
        },
    )

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Too many requests",
        headers=_rate_limit_headers(result) if settings.app.rate_limit_include_headers else None,
    )
