"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
owns the admission controller's lifetime: one controller per app, stored on
``app.state`` and injected into the rate limit dependency.
"""

from __future__ import annotations

from fastapi import FastAPI

from admission_api import __version__
from admission_api.adapters.rate_limit.base import AbstractRateLimiter
from admission_api.api.routes import health_router, rate_limit_router
from admission_api.core.config import settings
from admission_api.core.exception_handlers import setup_exception_handlers
from admission_api.core.logging import configure_logging
from admission_api.core.middleware import request_id_middleware
from admission_api.core.openapi import apply_openapi_customizations
from admission_api.core.rate_limit import build_admission_controller


def create_app(controller: AbstractRateLimiter | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        controller: Rate limiter to install. Built from settings when omitted.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Route Admission API",
        description=(
            "Per-route token bucket rate limiting. Every /v1 request is admitted "
            "or rejected with 429 by an in-process admission controller whose "
            "policy can be inspected and hot-reloaded."
        ),
        version=__version__,
        debug=settings.app.debug,
    )

    if controller is None:
        controller = build_admission_controller(settings.app)
    app.state.admission_controller = controller

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(rate_limit_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
