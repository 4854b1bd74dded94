"""Rate limiting wiring for the HTTP layer.

This module owns the process-wide store and the named limiters built on top
of it, and turns rejected results into 429 responses.

Limiters (all sharing one store, separated by key namespace):
- default: per client IP
- api:     per client IP and route path
- auth:    ``auth:<ip>``
- upload:  ``upload:<ip>``
- search:  ``search:<ip>``
- payment: ``payment:<ip>``

Lifecycle: ``get_rate_limiters()`` builds the registry on first use;
``reset_rate_limiters()`` discards it (tests, settings reload). The app
lifespan starts the sweep for whichever registry is current.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterator

from fastapi import Request
from fastapi.responses import JSONResponse

from app.adapters.rate_limit.base import AbstractRateLimitStore, RateLimitResult
from app.adapters.rate_limit.factory import create_rate_limit_store
from app.adapters.rate_limit.fixed_window import FixedWindowRateLimiter
from app.core.client_ip import client_ip_key, ip_path_key, purpose_key
from app.core.config import RateLimitSettings, settings
from app.core.errors import AppError, NotFoundAppError, RateLimitAppError
from app.core.logging import get_request_id, hash_identifier

logger = logging.getLogger(__name__)


# Most specific prefix first
_PATH_ROUTES: tuple[tuple[str, str], ...] = (
    ("/api/auth/", "auth"),
    ("/api/upload", "upload"),
    ("/api/search", "search"),
    ("/api/payments", "payment"),
    ("/api/", "api"),
)

_UNPREFIXED_KEYS = {"default": client_ip_key, "api": ip_path_key}
_PURPOSE_LIMITERS = ("auth", "upload", "search", "payment")
LIMITER_NAMES = (*_UNPREFIXED_KEYS, *_PURPOSE_LIMITERS)


@dataclass
class RateLimiterRegistry:
    """The shared store plus every named limiter that writes to it."""

    store: AbstractRateLimitStore
    clock: Callable[[], float] = time.time
    limiters: dict[str, FixedWindowRateLimiter] = field(default_factory=dict)

    def get(self, name: str) -> FixedWindowRateLimiter:
        """Look up a limiter by name.

        Raises:
            NotFoundAppError: If no limiter has that name.
        """
        try:
            return self.limiters[name]
        except KeyError:
            raise NotFoundAppError(
                code="rate_limiter_not_found",
                message=f"Unknown rate limiter: {name}",
                details={"limiter": name},
            ) from None

    def __iter__(self) -> Iterator[FixedWindowRateLimiter]:
        return iter(self.limiters.values())

    def select(self, path: str) -> FixedWindowRateLimiter:
        return self.limiters[select_limiter_name(path)]


def select_limiter_name(path: str) -> str:
    """Pick the limiter responsible for a request path.

    Examples:
        >>> select_limiter_name("/api/auth/login")
        'auth'
        >>> select_limiter_name("/api/products")
        'api'
        >>> select_limiter_name("/v1/rate-limits")
        'default'
    """
    for prefix, name in _PATH_ROUTES:
        if path.startswith(prefix):
            return name
    return "default"


def build_rate_limiters(
    cfg: RateLimitSettings,
    *,
    store: AbstractRateLimitStore | None = None,
    clock: Callable[[], float] | None = None,
) -> RateLimiterRegistry:
    """Build the named limiters over one store.

    Args:
        cfg: Rate limit settings.
        store: Store to share; a fresh one from the factory when omitted.
        clock: Optional time source (UNIX seconds) injected into every limiter.

    Returns:
        RateLimiterRegistry with default, api, auth, upload, search and payment.
    """
    store = store if store is not None else create_rate_limit_store()
    extra = {"clock": clock} if clock is not None else {}

    specs = (
        ("default", cfg.max, cfg.window_ms),
        ("api", cfg.api_max, cfg.api_window_ms),
        ("auth", cfg.auth_max, cfg.auth_window_ms),
        ("upload", cfg.upload_max, cfg.upload_window_ms),
        ("search", cfg.search_max, cfg.search_window_ms),
        ("payment", cfg.payment_max, cfg.payment_window_ms),
    )

    registry = RateLimiterRegistry(store=store, **extra)
    for name, max_requests, window_ms in specs:
        if name in _PURPOSE_LIMITERS:
            key_generator, key_prefix = purpose_key(name), f"{name}:"
        else:
            key_generator, key_prefix = _UNPREFIXED_KEYS[name], None
        registry.limiters[name] = FixedWindowRateLimiter(
            store,
            max_requests=max_requests,
            window_ms=window_ms,
            key_generator=key_generator,
            name=name,
            key_prefix=key_prefix,
            **extra,
        )
    return registry


_registry: RateLimiterRegistry | None = None


def get_rate_limiters() -> RateLimiterRegistry:
    """Return the process-wide registry, building it on first use."""

    global _registry

    if _registry is None:
        _registry = build_rate_limiters(settings.rate_limit)
        logger.info(
            "rate_limit.registry_built",
            extra={
                "backend": settings.rate_limit.backend,
                "limiters": sorted(_registry.limiters),
            },
        )
    return _registry


def set_rate_limiters(registry: RateLimiterRegistry | None) -> None:
    """Install a specific registry (or None to rebuild lazily)."""

    global _registry
    _registry = registry


def reset_rate_limiters() -> None:
    """Drop the current registry and all of its counters."""

    global _registry

    if _registry is not None:
        _registry.store.clear()
    _registry = None


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """X-RateLimit-* headers describing the caller's window."""

    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": result.reset_at_iso,
    }


def build_rate_limit_response(result: RateLimitResult) -> JSONResponse:
    """Render a rejected result as the 429 response.

    Args:
        result: A result with ``allowed=False``.

    Returns:
        JSONResponse with status 429, X-RateLimit-* and Retry-After headers.
    """
    retry_after = result.retry_after_seconds or 0
    error: dict[str, object] = {
        "message": "Rate limit exceeded",
        "code": "RATE_LIMIT_EXCEEDED",
        "statusCode": 429,
        "timestamp": _utc_now_iso(),
        "retryAfter": retry_after,
    }
    request_id = get_request_id()
    if request_id:
        error["requestId"] = request_id

    headers = rate_limit_headers(result)
    headers["Retry-After"] = str(retry_after)

    return JSONResponse(status_code=429, content={"error": error}, headers=headers)


def log_rejection(result: RateLimitResult, request: Request) -> None:
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "limiter": result.limiter,
            "key_hash": hash_identifier(result.key),
            "limit": result.limit,
            "remaining": result.remaining,
            "reset_at": result.reset_at_iso,
            "retry_after_s": result.retry_after_seconds,
            "path": request.url.path,
            "method": request.method,
        },
    )


CONSUMED_RESULT_STATE = "rate_limit_result"


def _already_consumed(request: Request, key: str) -> bool:
    """True if the middleware already counted this request against ``key``."""
    consumed: RateLimitResult | None = getattr(request.state, CONSUMED_RESULT_STATE, None)
    return consumed is not None and consumed.key == key


def rate_limit(
    name: str,
    *,
    max_requests: int | None = None,
    window_ms: int | None = None,
) -> Callable:
    """Build a FastAPI dependency that consumes from a limiter.

    With only a name, the dependency uses that registry limiter. Passing
    ``max_requests`` and/or ``window_ms`` gives the route its own quota
    instead, keyed ``<name>:<ip>`` on the shared store; a missing value
    falls back to the default limiter's setting.

    A request the middleware already counted under the same key is not
    counted again.

    Usage:
        @router.post("/login", dependencies=[Depends(rate_limit("auth"))])
        @router.post("/checkout", dependencies=[Depends(rate_limit("checkout", max_requests=3))])

    Raises:
        ValueError: If a custom quota reuses a registry limiter name.
        RateLimitAppError: (from the dependency) When the caller's window is exhausted.
    """
    custom = max_requests is not None or window_ms is not None
    if custom and name in LIMITER_NAMES:
        raise ValueError(f"custom rate limit cannot reuse the {name!r} limiter name")

    built: tuple[RateLimiterRegistry, FixedWindowRateLimiter] | None = None

    def _limiter() -> FixedWindowRateLimiter:
        nonlocal built

        registry = get_rate_limiters()
        if not custom:
            return registry.get(name)
        if built is None or built[0] is not registry:
            cfg = settings.rate_limit
            limiter = FixedWindowRateLimiter(
                registry.store,
                max_requests=max_requests if max_requests is not None else cfg.max,
                window_ms=window_ms if window_ms is not None else cfg.window_ms,
                key_generator=purpose_key(name),
                name=name,
                key_prefix=f"{name}:",
                clock=registry.clock,
            )
            built = (registry, limiter)
        return built[1]

    async def _enforce(request: Request) -> None:
        cfg = settings.rate_limit
        if not cfg.enabled:
            return

        try:
            limiter = _limiter()
            key = limiter.key_for(request)
            if _already_consumed(request, key):
                return
            result = limiter.consume_key(key)
        except AppError:
            raise
        except Exception as exc:
            logger.error(
                "rate_limit.internal_error",
                extra={
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                    "limiter": name,
                    "path": request.url.path,
                    "method": request.method,
                    "fail_open": cfg.fail_open,
                },
            )
            if cfg.fail_open:
                return
            raise

        if result.allowed:
            logger.debug(
                "rate_limit.allowed",
                extra={
                    "limiter": result.limiter,
                    "key_hash": hash_identifier(result.key),
                    "remaining": result.remaining,
                },
            )
            return

        log_rejection(result, request)
        raise RateLimitAppError(result)

    _enforce.__name__ = f"rate_limit_{name}"
    return _enforce
