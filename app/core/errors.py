"""Application-level exception types.

Domain errors shared by adapters, dependencies and handlers so that logging
and API responses stay consistent.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    limiter: str
    limit: int
    remaining: int
    reset_at: str
    retry_after: int
    backend: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class NotFoundAppError(AppError):
    """Raised when a requested limiter or key does not exist."""


class RateLimitAppError(AppError):
    """Raised by route dependencies when a caller exhausted its window.

    Exceeding a quota is an expected outcome, not a fault. The handler turns
    this into the same 429 payload the middleware emits.
    """

    def __init__(self, result: Any) -> None:
        super().__init__(
            code="RATE_LIMIT_EXCEEDED",
            message="Rate limit exceeded",
            details={
                "limiter": result.limiter,
                "limit": result.limit,
                "remaining": result.remaining,
                "reset_at": result.reset_at_iso,
                "retry_after": result.retry_after_seconds or 0,
            },
        )
        self.result = result
