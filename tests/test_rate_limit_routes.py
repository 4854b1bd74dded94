"""Tests for the rate limit admin endpoints."""

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from app.core.app_factory import create_app
from app.core.config import RateLimitSettings
from app.core.rate_limit import build_rate_limiters, set_rate_limiters


@pytest.fixture
def clock() -> Mock:
    return Mock(return_value=1000.0)


@pytest.fixture
def registry(clock):
    registry = build_rate_limiters(RateLimitSettings(), clock=clock)
    set_rate_limiters(registry)
    return registry


@pytest.fixture
def client(registry) -> TestClient:
    return TestClient(create_app())


@pytest.fixture
def headers() -> dict[str, str]:
    return {"X-API-Key": "test-api-key-123", "X-Forwarded-For": "198.51.100.1"}


def test_requires_api_key(client: TestClient) -> None:
    resp = client.get("/v1/rate-limits")

    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "missing_api_key"


def test_rejects_invalid_api_key(client: TestClient) -> None:
    resp = client.get("/v1/rate-limits", headers={"X-API-Key": "nope"})

    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "invalid_api_key"


def test_lists_limiters(client: TestClient, headers: dict[str, str]) -> None:
    resp = client.get("/v1/rate-limits", headers=headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["backend"] == "memory"
    names = {item["name"] for item in body["limiters"]}
    assert names == {"default", "api", "auth", "upload", "search", "payment"}
    # The listing request itself was counted by the default limiter
    assert body["entries"] == 1


def test_get_key_status(client: TestClient, headers: dict[str, str], registry) -> None:
    auth = registry.get("auth")
    auth.consume_key("auth:1.2.3.4")
    auth.consume_key("auth:1.2.3.4")

    resp = client.get("/v1/rate-limits/auth/auth:1.2.3.4", headers=headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["limiter"] == "auth"
    assert body["count"] == 2
    assert body["remaining"] == 3
    assert body["reset_at"].endswith("Z")


def test_key_status_supports_path_keys(client: TestClient, headers: dict[str, str], registry) -> None:
    registry.get("api").consume_key("1.2.3.4:/api/cart")

    resp = client.get("/v1/rate-limits/api/1.2.3.4:/api/cart", headers=headers)

    assert resp.status_code == 200
    assert resp.json()["key"] == "1.2.3.4:/api/cart"


def test_unknown_key_returns_404(client: TestClient, headers: dict[str, str]) -> None:
    resp = client.get("/v1/rate-limits/auth/auth:9.9.9.9", headers=headers)

    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "rate_limit_key_not_found"


def test_unknown_limiter_returns_404(client: TestClient, headers: dict[str, str]) -> None:
    resp = client.get("/v1/rate-limits/checkout/x", headers=headers)

    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "rate_limiter_not_found"


def test_reset_key(client: TestClient, headers: dict[str, str], registry) -> None:
    auth = registry.get("auth")
    for _ in range(5):
        auth.consume_key("auth:1.2.3.4")
    assert auth.consume_key("auth:1.2.3.4").allowed is False

    resp = client.delete("/v1/rate-limits/auth/auth:1.2.3.4", headers=headers)

    assert resp.status_code == 204
    assert auth.consume_key("auth:1.2.3.4").allowed is True
    assert client.delete("/v1/rate-limits/auth/auth:1.2.3.4", headers=headers).status_code == 204
    assert client.delete("/v1/rate-limits/auth/auth:5.5.5.5", headers=headers).status_code == 404


def test_sweep_endpoint(client: TestClient, headers: dict[str, str], registry, clock: Mock) -> None:
    search = registry.get("search")
    for i in range(4):
        search.consume_key(f"search:10.0.0.{i}")

    # Past the 1 minute search window but inside the 15 minute default window
    clock.return_value = 1000.0 + 120

    resp = client.post("/v1/rate-limits/sweep", headers=headers)

    assert resp.status_code == 200
    # The default limiter's own consume already swept the expired search keys
    assert resp.json() == {"evicted": 0, "entries": 1}
    assert len(registry.store) == 1


@pytest.mark.parametrize("method", ["get", "delete"])
def test_key_outside_limiter_namespace_is_rejected(
    client: TestClient, headers: dict[str, str], registry, method: str
) -> None:
    upload = registry.get("upload")
    upload.consume_key("upload:1.2.3.4")

    resp = getattr(client, method)("/v1/rate-limits/auth/upload:1.2.3.4", headers=headers)

    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["code"] == "rate_limit_key_outside_namespace"
    assert error["details"]["expected_prefix"] == "auth:"
    assert upload.get_status("upload:1.2.3.4").count == 1
