"""Tests for the background sweep of expired windows."""

import asyncio

import pytest

from app.adapters.rate_limit.fixed_window import FixedWindowRateLimiter
from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from app.core.config import RateLimitSettings
from app.core.rate_limit import (
    build_rate_limiters,
    get_rate_limiters,
    reset_rate_limiters,
    set_rate_limiters,
)
from app.core.sweeper import RateLimitSweeper


def _populate(store, clock, count: int, window_ms: int = 1_000) -> None:
    limiter = FixedWindowRateLimiter(store, max_requests=5, window_ms=window_ms, clock=clock)
    for i in range(count):
        limiter.consume_key(f"192.168.0.{i}")


def test_run_once_evicts_only_expired_entries(clock) -> None:
    store = InMemoryRateLimitStore()
    _populate(store, clock, 100)
    sweeper = RateLimitSweeper(store, clock=clock)

    assert sweeper.run_once() == 0
    assert len(store) == 100

    clock.advance(1.5)

    assert sweeper.run_once() == 100
    assert len(store) == 0


def test_run_once_keeps_live_windows(clock) -> None:
    store = InMemoryRateLimitStore()
    _populate(store, clock, 3, window_ms=1_000)
    long_lived = FixedWindowRateLimiter(store, max_requests=5, window_ms=60_000, clock=clock)
    long_lived.consume_key("auth:10.0.0.1")

    clock.advance(1.5)

    assert RateLimitSweeper(store, clock=clock).run_once() == 3
    assert list(store.keys()) == ["auth:10.0.0.1"]


def test_invalid_interval() -> None:
    with pytest.raises(ValueError):
        RateLimitSweeper(InMemoryRateLimitStore(), interval_seconds=0)


def test_background_loop_sweeps_periodically(clock) -> None:
    store = InMemoryRateLimitStore()
    _populate(store, clock, 10)
    clock.advance(5)

    async def scenario() -> None:
        sweeper = RateLimitSweeper(store, interval_seconds=0.01, clock=clock)
        sweeper.start()
        assert sweeper.running is True
        for _ in range(100):
            if len(store) == 0:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()
        assert sweeper.running is False

    asyncio.run(scenario())
    assert len(store) == 0


def test_start_is_idempotent_and_stop_without_start_is_safe() -> None:
    async def scenario() -> None:
        sweeper = RateLimitSweeper(InMemoryRateLimitStore(), interval_seconds=60)
        await sweeper.stop()
        sweeper.start()
        task = sweeper._task
        sweeper.start()
        assert sweeper._task is task
        await sweeper.stop()

    asyncio.run(scenario())


def test_registry_source_follows_rebuilt_registry(clock) -> None:
    set_rate_limiters(build_rate_limiters(RateLimitSettings(), clock=clock))
    sweeper = RateLimitSweeper(registry_source=get_rate_limiters)

    reset_rate_limiters()
    fresh = build_rate_limiters(RateLimitSettings(), clock=clock)
    set_rate_limiters(fresh)
    _populate(fresh.store, clock, 4)
    clock.advance(1.5)

    assert sweeper.run_once() == 4
    assert len(fresh.store) == 0


@pytest.mark.parametrize("with_store", [True, False])
def test_requires_exactly_one_store_source(with_store: bool) -> None:
    kwargs = {"registry_source": get_rate_limiters} if with_store else {}
    store = InMemoryRateLimitStore() if with_store else None

    with pytest.raises(ValueError):
        RateLimitSweeper(store, **kwargs)
