from __future__ import annotations

"""Application factory for the FastAPI app.

Centralizes app construction (metadata, lifespan, middleware, handlers,
routers) so tests can build fresh instances.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.routes import health_router, rate_limits_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import rate_limit_middleware, request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import get_rate_limiters
from app.core.sweeper import RateLimitSweeper


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the expired-window sweep for as long as the app is serving."""
    sweeper = RateLimitSweeper(
        registry_source=get_rate_limiters,
        interval_seconds=settings.rate_limit.sweep_interval_seconds,
    )
    sweeper.start()
    app.state.rate_limit_sweeper = sweeper
    try:
        yield
    finally:
        await sweeper.stop()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Storefront Rate Limiter",
        description=(
            "Fixed-window rate limiting for the storefront request pipeline. "
            "Requests are counted per client key in a process-local store; "
            "callers over quota receive HTTP 429 with X-RateLimit-* headers. "
            "Admin endpoints expose and reset individual windows."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Added last runs first: request id wraps rate limiting
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(rate_limits_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
