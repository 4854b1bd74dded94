"""In-memory counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: a re-entrant lock guards the dict, so limiters can hold it
  across a whole check-and-consume while still calling get/put.
"""

from __future__ import annotations

import logging
import threading
from contextlib import AbstractContextManager
from typing import Iterator

from app.adapters.rate_limit.base import AbstractRateLimitStore, RateWindowEntry

logger = logging.getLogger(__name__)


class InMemoryRateLimitStore(AbstractRateLimitStore):
    """Dict-backed store of fixed-window counters.

    Important:
        Counters vanish on restart. That is accepted: a restart simply hands
        every client a fresh window.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: dict[str, RateWindowEntry] = {}

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryRateLimitStore(entries={len(self._entries)})"

    def locked(self) -> AbstractContextManager:
        return self._lock

    def get(self, key: str) -> RateWindowEntry | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, entry: RateWindowEntry) -> None:
        with self._lock:
            self._entries[entry.key] = entry

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def sweep(self, now_ms: int) -> int:
        with self._lock:
            expired = [k for k, entry in self._entries.items() if entry.is_expired(now_ms)]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug(
                "rate_limit.store.swept",
                extra={"evicted": len(expired), "entries": len(self._entries)},
            )
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._entries))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
