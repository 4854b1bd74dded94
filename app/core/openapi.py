"""OpenAPI customization.

Adds the ``X-API-Key`` security scheme, tag descriptions and the 429
response that the rate limit middleware can return on any limited path.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_RATE_LIMITED_RESPONSE: Dict[str, Any] = {
    "description": "Rate limit exceeded",
    "headers": {
        "X-RateLimit-Limit": {"schema": {"type": "integer"}},
        "X-RateLimit-Remaining": {"schema": {"type": "integer"}},
        "X-RateLimit-Reset": {"schema": {"type": "string", "format": "date-time"}},
        "Retry-After": {"schema": {"type": "integer"}},
    },
    "content": {
        "application/json": {
            "example": {
                "error": {
                    "message": "Rate limit exceeded",
                    "code": "RATE_LIMIT_EXCEEDED",
                    "statusCode": 429,
                    "timestamp": "2024-01-01T00:00:00.000Z",
                    "retryAfter": 42,
                }
            }
        }
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation.

    - API key scheme on every operation, with ``security: []`` on health
    - 429 response on every operation that is not in the skip list
    - Tag metadata
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        components.setdefault("securitySchemes", {}).setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Admin API key (APP_API_KEYS).",
            },
        )
        schema.setdefault("security", [{"ApiKeyAuth": []}])

        tags = schema.setdefault("tags", [])
        existing = {t.get("name") for t in tags}
        for tag in (
            {"name": "Rate Limits", "description": "Inspect and reset rate limit windows."},
            {"name": "Health", "description": "Liveness checks."},
        ):
            if tag["name"] not in existing:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            is_health = path.endswith("/health")
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                if is_health:
                    method_obj["security"] = []
                else:
                    method_obj.setdefault("responses", {}).setdefault(
                        "429", _RATE_LIMITED_RESPONSE
                    )

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
