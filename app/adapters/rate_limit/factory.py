"""Factory for the process-wide counter store."""

from app.adapters.rate_limit.base import AbstractRateLimitStore
from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from app.core.config import settings
from app.core.errors import ValidationAppError


def create_rate_limit_store() -> AbstractRateLimitStore:
    """Instantiate the store named by ``RATE_LIMIT_BACKEND``.

    Returns:
        AbstractRateLimitStore: Empty store instance.

    Raises:
        ValidationAppError: If the backend is unknown.
    """
    backend = settings.rate_limit.backend.lower()

    if backend == "memory":
        return InMemoryRateLimitStore()

    raise ValidationAppError(
        code="rate_limit_unknown_backend",
        message=f"Unsupported rate limit backend: {backend}",
        details={"backend": backend, "hint": "Set RATE_LIMIT_BACKEND=memory"},
    )
