# tests/test_limiter.py
import asyncio
import time

from pathbridge.aliyundrive.limiter import (
    DEFAULT_INTERVALS,
    LimiterRegistry,
    LimiterType,
    SimpleLimiter,
)


def test_default_intervals_match_api_budgets():
    assert DEFAULT_INTERVALS[LimiterType.LIST] == 1 / 3.9
    assert DEFAULT_INTERVALS[LimiterType.LINK] == 1 / 0.9
    assert DEFAULT_INTERVALS[LimiterType.OTHER] == 1 / 14.9


def test_simple_limiter_spaces_out_calls():
    async def scenario():
        limiter = SimpleLimiter(0.05)
        starts = []
        for _ in range(3):
            await limiter.wait()
            starts.append(time.monotonic())
        return starts

    starts = asyncio.run(scenario())
    # Small tolerance for timer granularity
    assert starts[1] - starts[0] >= 0.045
    assert starts[2] - starts[1] >= 0.045


def test_simple_limiter_serves_waiters_in_arrival_order():
    async def scenario():
        limiter = SimpleLimiter(0.01)
        order = []

        async def worker(i):
            await limiter.wait()
            order.append(i)

        await asyncio.gather(*(worker(i) for i in range(5)))
        return order

    assert asyncio.run(scenario()) == [0, 1, 2, 3, 4]


def test_concurrent_waiters_keep_minimum_interval():
    interval = 0.05

    async def scenario():
        limiter = SimpleLimiter(interval)
        starts = []

        async def worker():
            await limiter.wait()
            starts.append(time.monotonic())

        await asyncio.gather(*(worker() for _ in range(5)))
        return starts

    starts = asyncio.run(scenario())
    gaps = [later - earlier for earlier, later in zip(starts, starts[1:])]
    # Small tolerance for timer granularity
    assert all(gap >= interval - 0.005 for gap in gaps)
    assert starts[-1] - starts[0] >= 4 * interval - 0.005
    assert starts[-1] - starts[0] < 4 * interval + 0.5


def test_limiter_classes_are_independent():
    async def scenario():
        registry = LimiterRegistry(
            intervals={LimiterType.LIST: 10.0, LimiterType.LINK: 10.0, LimiterType.OTHER: 10.0}
        )
        limiter = registry.acquire("account")
        began = time.monotonic()
        # First call of each class never waits.
        await limiter.wait(LimiterType.LIST)
        await limiter.wait(LimiterType.LINK)
        await limiter.wait(LimiterType.OTHER)
        return time.monotonic() - began

    assert asyncio.run(scenario()) < 1.0


def test_registry_shares_limiters_per_account():
    registry = LimiterRegistry()
    first = registry.acquire("user-1")
    second = registry.acquire("user-1")
    other = registry.acquire("user-2")

    assert first is second
    assert first is not other
    assert first.used_by == 2
    assert len(registry) == 2


def test_registry_evicts_limiter_after_last_release():
    registry = LimiterRegistry()
    registry.acquire("user-1")
    registry.acquire("user-1")

    registry.release("user-1")
    assert "user-1" in registry
    registry.release("user-1")
    assert "user-1" not in registry
    assert registry.get("user-1") is None

    # Releasing an unknown account is harmless
    registry.release("missing")
