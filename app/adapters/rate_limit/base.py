"""Rate limiter interfaces.

Limiters depend on the store abstraction, not the concrete dict, so tests can
build isolated stores and a shared backend could be swapped in later.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator


def epoch_ms_to_iso(epoch_ms: int) -> str:
    """Render epoch milliseconds as an ISO-8601 UTC timestamp."""
    return (
        datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


@dataclass
class RateWindowEntry:
    """Counter state for one key.

    Attributes:
        key: Namespaced limiter key (e.g. ``auth:1.2.3.4``).
        count: Requests accepted in the current window.
        reset_at: Epoch milliseconds at which the window ends.
    """

    key: str
    count: int
    reset_at: int

    def is_expired(self, now_ms: int) -> bool:
        return self.reset_at < now_ms


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a check or check-and-consume.

    Attributes:
        allowed: Whether the request may proceed.
        limiter: Name of the limiter that produced the result.
        key: Key the decision was made for.
        limit: Max requests per window.
        remaining: Requests left in the window (0 when blocked).
        reset_at: Epoch milliseconds when the window resets.
        retry_after_seconds: Suggested wait when blocked, else None.
    """

    allowed: bool
    limiter: str
    key: str
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None

    @property
    def reset_at_iso(self) -> str:
        return epoch_ms_to_iso(self.reset_at)


@dataclass(frozen=True)
class RateLimitStatus:
    """Read-only view of a key's window."""

    count: int
    remaining: int
    reset_at: int

    @property
    def reset_at_iso(self) -> str:
        return epoch_ms_to_iso(self.reset_at)


class AbstractRateLimitStore(ABC):
    """Interface for the counter store shared by all limiters."""

    @abstractmethod
    def locked(self) -> AbstractContextManager:
        """Guard a read-modify-write sequence against concurrent mutation."""
        raise NotImplementedError

    @abstractmethod
    def get(self, key: str) -> RateWindowEntry | None:
        raise NotImplementedError

    @abstractmethod
    def put(self, entry: RateWindowEntry) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a key. Returns True when something was removed."""
        raise NotImplementedError

    @abstractmethod
    def sweep(self, now_ms: int) -> int:
        """Evict every entry whose window ended before ``now_ms``.

        Returns:
            Number of evicted entries.
        """
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def keys(self) -> Iterator[str]:
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError
