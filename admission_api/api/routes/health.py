from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe for load balancers. Never rate limited."""

    return {"status": "ok"}


@router.get("/healthz", response_class=PlainTextResponse)
def healthz() -> str:
    return "OK"
