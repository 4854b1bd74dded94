"""Background eviction of expired rate limit windows.

Limiters roll stale windows over lazily, so this task is housekeeping only:
it keeps the shared store from growing with keys that never come back.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Protocol

from app.adapters.rate_limit.base import AbstractRateLimitStore

logger = logging.getLogger(__name__)


class StoreSource(Protocol):
    store: AbstractRateLimitStore
    clock: Callable[[], float]


class RateLimitSweeper:
    """Periodically sweep a store on the running event loop.

    Give either a fixed ``store`` or a ``registry_source`` callable. The latter
    is resolved on every pass, so a registry rebuilt after
    ``reset_rate_limiters()`` is swept instead of the one seen at startup.
    """

    def __init__(
        self,
        store: AbstractRateLimitStore | None = None,
        *,
        interval_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
        registry_source: Callable[[], StoreSource] | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        if (store is None) == (registry_source is None):
            raise ValueError("pass exactly one of store or registry_source")

        self._store = store
        self._registry_source = registry_source
        self._interval = interval_seconds
        self._clock = clock
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _target(self) -> tuple[AbstractRateLimitStore, Callable[[], float]]:
        if self._registry_source is not None:
            registry = self._registry_source()
            return registry.store, registry.clock
        return self._store, self._clock

    def run_once(self) -> int:
        """Evict every expired entry now.

        Returns:
            Number of evicted entries.
        """
        store, clock = self._target()
        evicted = store.sweep(int(clock() * 1000))
        logger.info(
            "rate_limit.sweep",
            extra={"evicted": evicted, "entries": len(store)},
        )
        return evicted

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.run_once()
            except Exception:
                # Keep sweeping; a failed pass only delays eviction.
                logger.exception("rate_limit.sweep_failed")

    def start(self) -> None:
        """Schedule the sweep loop. Must be called from a running loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._loop(), name="rate-limit-sweeper"
        )
        logger.info("rate_limit.sweeper_started", extra={"interval_s": self._interval})

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("rate_limit.sweeper_stopped")
