"""Pydantic schemas for the rate limit admin endpoints."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class LimiterInfo(BaseModel):
    """Static configuration of one named limiter."""

    name: str = Field(..., description="Limiter name, e.g. 'auth' or 'api'.")
    max_requests: int = Field(..., description="Requests allowed per window.")
    window_ms: int = Field(..., description="Window length in milliseconds.")


class RateLimitOverview(BaseModel):
    """All limiters plus the size of the shared store."""

    backend: str = Field(..., description="Counter store backend in use.")
    entries: int = Field(..., description="Windows currently held in the shared store.")
    limiters: List[LimiterInfo] = Field(default_factory=list)


class KeyStatusResponse(BaseModel):
    """Window state of a single key."""

    limiter: str
    key: str
    count: int = Field(..., ge=0, description="Requests accepted in the current window.")
    remaining: int = Field(..., ge=0, description="Requests left before rejection.")
    reset_at: str = Field(..., description="ISO-8601 time at which the window resets.")


class SweepResponse(BaseModel):
    evicted: int = Field(..., ge=0, description="Expired windows removed by this sweep.")
    entries: int = Field(..., ge=0, description="Windows left in the store.")
