"""Tests for the named limiter registry and the 429 response."""

import json
from unittest.mock import Mock, patch

import pytest

from app.adapters.rate_limit.base import RateLimitResult
from app.adapters.rate_limit.factory import create_rate_limit_store
from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from app.core.config import RateLimitSettings
from app.core.errors import NotFoundAppError, ValidationAppError
from app.core.logging import clear_request_id, set_request_id
from app.core.rate_limit import (
    build_rate_limit_response,
    build_rate_limiters,
    get_rate_limiters,
    reset_rate_limiters,
    select_limiter_name,
)


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("/api/auth/signin", "auth"),
        ("/api/upload/image", "upload"),
        ("/api/search/advanced", "search"),
        ("/api/payments/create-intent", "payment"),
        ("/api/products", "api"),
        ("/v1/rate-limits", "default"),
        ("/products/42", "default"),
    ],
)
def test_select_limiter_name(path: str, expected: str) -> None:
    assert select_limiter_name(path) == expected


def test_build_rate_limiters_uses_configured_thresholds() -> None:
    registry = build_rate_limiters(RateLimitSettings())

    expected = {
        "default": (100, 900_000),
        "api": (100, 900_000),
        "auth": (5, 900_000),
        "upload": (10, 3_600_000),
        "search": (30, 60_000),
        "payment": (10, 3_600_000),
    }
    actual = {l.name: (l.max_requests, l.window_ms) for l in registry}
    assert actual == expected


def test_all_limiters_share_one_store() -> None:
    store = InMemoryRateLimitStore()
    registry = build_rate_limiters(RateLimitSettings(), store=store)

    assert all(limiter.store is store for limiter in registry)


def test_specialized_limiters_keep_separate_pools() -> None:
    clock = Mock(return_value=1000.0)
    registry = build_rate_limiters(RateLimitSettings(auth_max=1), clock=clock)

    assert registry.get("auth").consume_key("auth:1.2.3.4").allowed is True
    assert registry.get("auth").consume_key("auth:1.2.3.4").allowed is False
    assert registry.get("upload").consume_key("upload:1.2.3.4").allowed is True


def test_unknown_limiter_raises_not_found() -> None:
    registry = build_rate_limiters(RateLimitSettings())

    with pytest.raises(NotFoundAppError) as exc_info:
        registry.get("checkout")
    assert exc_info.value.code == "rate_limiter_not_found"


def test_registry_is_a_singleton_until_reset() -> None:
    first = get_rate_limiters()
    assert get_rate_limiters() is first

    reset_rate_limiters()
    assert get_rate_limiters() is not first


@patch("app.adapters.rate_limit.factory.settings")
def test_factory_rejects_unknown_backend(mock_settings) -> None:
    mock_settings.rate_limit.backend = "redis"

    with pytest.raises(ValidationAppError) as exc_info:
        create_rate_limit_store()
    assert exc_info.value.code == "rate_limit_unknown_backend"


def test_build_rate_limit_response_shape() -> None:
    result = RateLimitResult(
        allowed=False,
        limiter="auth",
        key="auth:1.2.3.4",
        limit=5,
        remaining=0,
        reset_at=60_000,
        retry_after_seconds=42,
    )
    set_request_id("req-429")
    try:
        response = build_rate_limit_response(result)
    finally:
        clear_request_id()

    assert response.status_code == 429
    assert response.headers["X-RateLimit-Limit"] == "5"
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert response.headers["X-RateLimit-Reset"] == "1970-01-01T00:01:00.000Z"
    assert response.headers["Retry-After"] == "42"

    error = json.loads(response.body)["error"]
    assert error["message"] == "Rate limit exceeded"
    assert error["code"] == "RATE_LIMIT_EXCEEDED"
    assert error["statusCode"] == 429
    assert error["retryAfter"] == 42
    assert error["requestId"] == "req-429"
    assert error["timestamp"].endswith("Z")
