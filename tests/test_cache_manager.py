from unittest.mock import AsyncMock

import pytest

from ev_bets.data.cache import CacheManager, InMemoryCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> CacheManager:
    return CacheManager(InMemoryCache(clock=clock), key_prefix="optic_odds")


@pytest.mark.asyncio
async def test_entries_expire_after_ttl(cache, clock) -> None:
    await cache.set("fixtures:nba", [1, 2], data_type="fixtures")
    assert await cache.get("fixtures:nba") == [1, 2]

    clock.now += 299
    assert await cache.get("fixtures:nba") == [1, 2]

    clock.now += 1
    assert await cache.get("fixtures:nba") is None


@pytest.mark.asyncio
async def test_ttl_lookup_by_data_type(cache) -> None:
    await cache.set("books", ["betano"], data_type="sportsbooks")
    await cache.set("custom", "x", ttl_seconds=5)
    await cache.set("forever", "x", ttl_seconds=0)

    assert await cache.backend.get_ttl("optic_odds:books") == 3600
    assert await cache.backend.get_ttl("optic_odds:custom") == 5
    assert await cache.backend.get_ttl("optic_odds:forever") == -1
    assert await cache.backend.get_ttl("optic_odds:missing") is None


def test_ttl_overrides() -> None:
    cache = CacheManager.create_memory_cache(ttls={"odds": 60})
    assert cache.ttls["odds"] == 60
    assert cache.ttls["sportsbooks"] == 3600


@pytest.mark.asyncio
async def test_clear_prefix_and_namespace(clock) -> None:
    backend = InMemoryCache(clock=clock)
    odds = CacheManager(backend, key_prefix="optic_odds")
    stats = CacheManager(backend, key_prefix="balldontlie")

    await odds.set("fixtures:nba", 1)
    await odds.set("fixtures:epl", 2)
    await odds.set("books", 3)
    await stats.set("fixtures:nba", 4)

    assert await odds.clear_prefix("fixtures:") == 2
    assert await odds.exists("books")

    await odds.clear()
    assert not await odds.exists("books")
    assert await stats.get("fixtures:nba") == 4


@pytest.mark.asyncio
async def test_get_or_set_skips_empty_results(cache) -> None:
    factory = AsyncMock(side_effect=[[], ["a"], ["b"]])

    assert await cache.get_or_set("k", factory) == []
    assert await cache.get_or_set("k", factory) == ["a"]
    assert await cache.get_or_set("k", factory) == ["a"]
    assert factory.await_count == 2


@pytest.mark.asyncio
async def test_full_cache_evicts_expired_then_oldest(clock) -> None:
    backend = InMemoryCache(max_size=10, clock=clock)
    for i in range(10):
        await backend.set(f"k{i}", i, ttl_seconds=0 if i else 10)

    clock.now += 20
    await backend.set("new", 1, ttl_seconds=0)
    assert len(backend) == 10
    assert await backend.get("k0") is None

    await backend.set("newer", 2, ttl_seconds=0)
    assert len(backend) == 10
    assert await backend.get("k1") is None
    assert await backend.get("newer") == 2


@pytest.mark.asyncio
async def test_evict_expired(clock) -> None:
    backend = InMemoryCache(clock=clock)
    await backend.set("a", 1, ttl_seconds=10)
    await backend.set("b", 2, ttl_seconds=100)

    clock.now += 50
    assert await backend.evict_expired() == 1
    assert len(backend) == 1


@pytest.mark.asyncio
async def test_health_check(cache) -> None:
    assert await cache.health_check() == {"status": "healthy", "backend": "InMemoryCache"}
