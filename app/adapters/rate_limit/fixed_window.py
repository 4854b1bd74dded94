"""Fixed-window rate limiter over a shared counter store.

Windows start at a key's first request and last ``window_ms``. Rollover is
lazy: a stale window is reset when the key is next seen, so the background
sweep only bounds memory and never decides anything.

A burst straddling a window boundary can admit up to ``2 * max - 1`` requests
in less than one window. That is the accepted imprecision of fixed-window
counting.
"""

from __future__ import annotations

import math
import time
from typing import Callable

from starlette.requests import Request

from app.adapters.rate_limit.base import (
    AbstractRateLimitStore,
    RateLimitResult,
    RateLimitStatus,
    RateWindowEntry,
)
from app.core.client_ip import KeyGenerator, client_ip_key


class FixedWindowRateLimiter:
    """Bound requests per key within a fixed window.

    Several limiters may share one store. They stay independent only through
    their key namespaces (``auth:``, ``upload:`` ...), so two limiters with
    overlapping key generators share quota.
    """

    def __init__(
        self,
        store: AbstractRateLimitStore,
        *,
        max_requests: int,
        window_ms: int,
        key_generator: KeyGenerator = client_ip_key,
        name: str = "default",
        key_prefix: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Counter store, usually the process-wide one.
            max_requests: Requests allowed per window.
            window_ms: Window length in milliseconds.
            key_generator: Maps a request to its quota key.
            name: Label used in logs and error payloads.
            key_prefix: Namespace every key of this limiter starts with, if any.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If max_requests or window_ms are not positive.
        """
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")

        self._store = store
        self._max = max_requests
        self._window_ms = window_ms
        self._key_generator = key_generator
        self._clock = clock
        self.name = name
        self.key_prefix = key_prefix

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"FixedWindowRateLimiter(name={self.name!r}, max_requests={self._max}, "
            f"window_ms={self._window_ms})"
        )

    @property
    def max_requests(self) -> int:
        return self._max

    @property
    def window_ms(self) -> int:
        return self._window_ms

    @property
    def store(self) -> AbstractRateLimitStore:
        return self._store

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def key_for(self, request: Request) -> str:
        return self._key_generator(request)

    def owns_key(self, key: str) -> bool:
        """True if the key lies in this limiter's namespace (always, without one)."""
        return self.key_prefix is None or key.startswith(self.key_prefix)

    def _current_entry(self, key: str, now_ms: int) -> RateWindowEntry:
        """Fetch the key's entry, creating it or rolling it over as needed.

        Caller must hold the store lock.
        """
        entry = self._store.get(key)
        if entry is None:
            entry = RateWindowEntry(key=key, count=0, reset_at=now_ms + self._window_ms)
            self._store.put(entry)
        elif entry.is_expired(now_ms):
            entry.count = 0
            entry.reset_at = now_ms + self._window_ms
        return entry

    def _blocked(self, key: str, reset_at: int, now_ms: int) -> RateLimitResult:
        retry_after = max(0, math.ceil((reset_at - now_ms) / 1000))
        return RateLimitResult(
            allowed=False,
            limiter=self.name,
            key=key,
            limit=self._max,
            remaining=0,
            reset_at=reset_at,
            retry_after_seconds=retry_after,
        )

    def _allowed(self, key: str, remaining: int, reset_at: int) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            limiter=self.name,
            key=key,
            limit=self._max,
            remaining=remaining,
            reset_at=reset_at,
            retry_after_seconds=None,
        )

    def consume_key(self, key: str) -> RateLimitResult:
        """Check the key's window and count the request if it fits.

        Rejected requests are not counted.

        Args:
            key: Quota key.

        Returns:
            RateLimitResult with the decision and window metadata.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        now_ms = self._now_ms()
        with self._store.locked():
            self._store.sweep(now_ms)
            entry = self._current_entry(key, now_ms)

            if entry.count >= self._max:
                return self._blocked(key, entry.reset_at, now_ms)

            entry.count += 1
            return self._allowed(key, max(0, self._max - entry.count), entry.reset_at)

    def consume(self, request: Request) -> RateLimitResult:
        """Derive the request's key and consume one unit for it."""
        return self.consume_key(self.key_for(request))

    def check_key(self, key: str) -> RateLimitResult:
        """Report what consume_key would decide, without counting or storing."""
        now_ms = self._now_ms()
        with self._store.locked():
            entry = self._store.get(key)
            if entry is None or entry.is_expired(now_ms):
                return self._allowed(key, self._max, now_ms + self._window_ms)
            if entry.count >= self._max:
                return self._blocked(key, entry.reset_at, now_ms)
            return self._allowed(key, self._max - entry.count, entry.reset_at)

    def check(self, request: Request) -> RateLimitResult:
        return self.check_key(self.key_for(request))

    def reset(self, key: str) -> bool:
        """Forget a key's window. Returns True if the key existed."""
        return self._store.delete(key)

    def get_status(self, key: str) -> RateLimitStatus | None:
        """Describe a key's window, or None if the key was never seen.

        An expired window is reported as fresh without being mutated.
        """
        now_ms = self._now_ms()
        with self._store.locked():
            entry = self._store.get(key)
            if entry is None:
                return None
            if entry.is_expired(now_ms):
                return RateLimitStatus(
                    count=0,
                    remaining=self._max,
                    reset_at=now_ms + self._window_ms,
                )
            return RateLimitStatus(
                count=entry.count,
                remaining=max(0, self._max - entry.count),
                reset_at=entry.reset_at,
            )

    def cleanup(self) -> int:
        """Evict expired entries from the shared store."""
        return self._store.sweep(self._now_ms())
