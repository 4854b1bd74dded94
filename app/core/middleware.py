"""HTTP middleware for request correlation and rate limiting.

The request ID middleware must wrap the rate limit middleware so that 429
responses and their log lines carry the correlation id:

    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)   # added last = outermost
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.logging import clear_request_id, get_request_id, set_request_id
from app.core.rate_limit import (
    CONSUMED_RESULT_STATE,
    build_rate_limit_response,
    get_rate_limiters,
    log_rejection,
    rate_limit_headers,
)

logger = logging.getLogger(__name__)


async def request_id_middleware(request: Request, call_next) -> Response:
    """Attach a correlation id to the request context and response.

    Uses the incoming ``X-Request-ID`` (header name configurable via
    ``LOG_REQUEST_ID_HEADER``) or generates a UUID. Also reports the total
    handling time in ``X-Request-Duration-ms``.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


def _is_skipped(path: str) -> bool:
    return any(path.startswith(prefix) for prefix in settings.rate_limit.skip_paths)


def _limiter_failure_response() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


async def rate_limit_middleware(request: Request, call_next) -> Response:
    """Consume one unit from the limiter owning this path.

    Rejected requests get the 429 payload and never reach the route. Accepted
    results are left on ``request.state`` so route dependencies on the same key
    do not count the request twice. If the limiter itself raises, the request
    is refused with a 500 unless ``RATE_LIMIT_FAIL_OPEN`` is set.
    """

    cfg = settings.rate_limit
    path = request.url.path
    if not cfg.enabled or _is_skipped(path):
        return await call_next(request)

    try:
        limiter = get_rate_limiters().select(path)
        result = limiter.consume(request)
    except Exception as exc:
        logger.error(
            "rate_limit.internal_error",
            extra={
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
                "path": path,
                "method": request.method,
                "fail_open": cfg.fail_open,
            },
        )
        if cfg.fail_open:
            return await call_next(request)
        return _limiter_failure_response()

    if not result.allowed:
        log_rejection(result, request)
        return build_rate_limit_response(result)

    setattr(request.state, CONSUMED_RESULT_STATE, result)
    response = await call_next(request)
    if cfg.include_headers:
        for name, value in rate_limit_headers(result).items():
            response.headers.setdefault(name, value)
    return response
