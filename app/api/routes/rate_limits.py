from fastapi import APIRouter, Depends, Response, status

from app.adapters.rate_limit.fixed_window import FixedWindowRateLimiter
from app.core.auth import verify_api_key
from app.core.config import settings
from app.core.errors import NotFoundAppError, ValidationAppError
from app.core.rate_limit import get_rate_limiters
from app.core.sweeper import RateLimitSweeper
from app.schemas.rate_limit import (
    KeyStatusResponse,
    LimiterInfo,
    RateLimitOverview,
    SweepResponse,
)

router = APIRouter(
    prefix="/rate-limits",
    tags=["Rate Limits"],
    dependencies=[Depends(verify_api_key)],
)


@router.get("", response_model=RateLimitOverview)
async def list_rate_limiters() -> RateLimitOverview:
    """Describe every configured limiter and the shared store size."""
    registry = get_rate_limiters()
    return RateLimitOverview(
        backend=settings.rate_limit.backend,
        entries=len(registry.store),
        limiters=[
            LimiterInfo(
                name=limiter.name,
                max_requests=limiter.max_requests,
                window_ms=limiter.window_ms,
            )
            for limiter in registry
        ],
    )


def _limiter_for_key(limiter_name: str, key: str) -> FixedWindowRateLimiter:
    limiter = get_rate_limiters().get(limiter_name)
    if not limiter.owns_key(key):
        raise ValidationAppError(
            code="rate_limit_key_outside_namespace",
            message=f"Key does not belong to the {limiter_name} limiter",
            details={"limiter": limiter_name, "expected_prefix": limiter.key_prefix},
        )
    return limiter


@router.get("/{limiter_name}/{key:path}", response_model=KeyStatusResponse)
async def get_key_status(limiter_name: str, key: str) -> KeyStatusResponse:
    """Report a key's current window.

    The key is the full namespaced key (``auth:1.2.3.4``, ``1.2.3.4:/api/x``).

    Raises:
        NotFoundAppError: Unknown limiter, or the key has no window.
        ValidationAppError: The key lies outside the limiter's namespace.
    """
    limiter = _limiter_for_key(limiter_name, key)
    window = limiter.get_status(key)
    if window is None:
        raise NotFoundAppError(
            code="rate_limit_key_not_found",
            message="No rate limit window for this key",
            details={"limiter": limiter_name},
        )

    return KeyStatusResponse(
        limiter=limiter.name,
        key=key,
        count=window.count,
        remaining=window.remaining,
        reset_at=window.reset_at_iso,
    )


@router.delete(
    "/{limiter_name}/{key:path}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def reset_key(limiter_name: str, key: str) -> Response:
    """Forget a key's window so its next request starts fresh."""
    limiter = _limiter_for_key(limiter_name, key)
    if not limiter.reset(key):
        raise NotFoundAppError(
            code="rate_limit_key_not_found",
            message="No rate limit window for this key",
            details={"limiter": limiter_name},
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/sweep", response_model=SweepResponse)
async def sweep_now() -> SweepResponse:
    """Evict expired windows immediately instead of waiting for the timer."""
    registry = get_rate_limiters()
    evicted = RateLimitSweeper(registry.store, clock=registry.clock).run_once()
    return SweepResponse(evicted=evicted, entries=len(registry.store))
