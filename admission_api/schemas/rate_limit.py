"""Pydantic schemas for the rate limit administration endpoints."""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, Field


class LimiterConfigSchema(BaseModel):
    """Token bucket parameters.

    No range constraints here: out-of-range values are coerced to the
    fallback limit and reported in ``warnings`` instead of being rejected.
    """

    requests_per_second: float = Field(
        ..., description="Refill rate in tokens per second (must be > 0 to be honoured)."
    )
    burst_size: int = Field(
        ..., description="Bucket capacity, i.e. peak instantaneous allowance (>= 1)."
    )


class RateLimitPolicySchema(BaseModel):
    """Full policy: default limit plus exact-path overrides."""

    default: LimiterConfigSchema = Field(..., description="Limit for paths without an override.")
    custom_limits: Dict[str, LimiterConfigSchema] = Field(
        default_factory=dict,
        description="Overrides keyed by exact request path, e.g. '/v1/rate-limit/policy'.",
    )


class RateLimitPolicyResponse(BaseModel):
    """Active policy together with the warnings raised while loading it."""

    policy: RateLimitPolicySchema
    warnings: List[str] = Field(
        default_factory=list,
        description="Limits that were malformed and replaced by the fallback (1 req/s, burst 1).",
    )


class LimiterSnapshotSchema(BaseModel):
    requests_per_second: float
    burst_size: int
    tokens: float = Field(..., description="Tokens currently available.")


class LimiterSnapshotsResponse(BaseModel):
    limiters: Dict[str, LimiterSnapshotSchema] = Field(
        ..., description="Bucket levels keyed by route; '*' is the shared default bucket."
    )
