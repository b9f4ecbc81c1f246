from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from admission_api.adapters.rate_limit.controller import AdmissionController
from admission_api.adapters.rate_limit.policy import LimiterConfig, RateLimitPolicy
from admission_api.core.auth import verify_api_key
from admission_api.core.errors import ValidationAppError
from admission_api.core.rate_limit import enforce_rate_limit, get_admission_controller
from admission_api.schemas.rate_limit import (
    LimiterSnapshotSchema,
    LimiterSnapshotsResponse,
    RateLimitPolicyResponse,
    RateLimitPolicySchema,
)


router = APIRouter(
    prefix="/rate-limit",
    tags=["Rate Limit"],
    dependencies=[Depends(verify_api_key), Depends(enforce_rate_limit)],
)

Controller = Annotated[AdmissionController, Depends(get_admission_controller)]


def _policy_response(controller: AdmissionController) -> RateLimitPolicyResponse:
    return RateLimitPolicyResponse(
        policy=RateLimitPolicySchema.model_validate(controller.policy.as_dict()),
        warnings=list(controller.warnings),
    )


@router.get("/policy", response_model=RateLimitPolicyResponse)
async def get_policy(controller: Controller) -> RateLimitPolicyResponse:
    """Return the active policy and any warnings from loading it."""
    return _policy_response(controller)


@router.put("/policy", response_model=RateLimitPolicyResponse)
async def replace_policy(
    payload: RateLimitPolicySchema,
    controller: Controller,
) -> RateLimitPolicyResponse:
    """Hot-reload the rate limit policy.

    Routes whose limits change get a fresh, full bucket; unchanged routes
    keep their state; routes left out fall back to the default bucket.

    Raises:
        ValidationAppError: If a route key is not an absolute path.
    """
    for key in payload.custom_limits:
        if not key.startswith("/"):
            raise ValidationAppError(
                code="invalid_route_key",
                message="Route keys must be absolute request paths starting with '/'",
                details={"route_key": key},
            )

    policy = RateLimitPolicy(
        default=LimiterConfig(**payload.default.model_dump()),
        custom_limits={
            key: LimiterConfig(**cfg.model_dump()) for key, cfg in payload.custom_limits.items()
        },
    )
    controller.reload(policy)
    return _policy_response(controller)


@router.get("/limiters", response_model=LimiterSnapshotsResponse)
async def list_limiters(controller: Controller) -> LimiterSnapshotsResponse:
    """Current token levels of every bucket."""
    return LimiterSnapshotsResponse(
        limiters={
            key: LimiterSnapshotSchema(
                requests_per_second=snap.requests_per_second,
                burst_size=snap.burst_size,
                tokens=snap.tokens,
            )
            for key, snap in controller.snapshot().items()
        }
    )
