from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe.

    Never rate limited (see ``RATE_LIMIT_SKIP_PATHS``) and never requires an
    API key, so load balancers can poll it freely.
    """

    return {"status": "ok"}
