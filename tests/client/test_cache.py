import asyncio

import pytest

from app.client.cache import QueryCache
from app.config import settings

pytestmark = pytest.mark.anyio


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class CountingLoader:
    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.values.pop(0)


async def test_fetch_caches_fresh_value():
    cache = QueryCache(stale_after=30)
    loader = CountingLoader(["a"], ["b"])

    assert await cache.fetch(("connections", 1, 50), loader) == ["a"]
    assert await cache.fetch(("connections", 1, 50), loader) == ["a"]
    assert loader.calls == 1


async def test_entry_goes_stale_after_window():
    clock = FakeClock()
    cache = QueryCache(stale_after=30, clock=clock)
    loader = CountingLoader(["a"], ["b"])

    await cache.fetch(("feed",), loader)
    clock.now = 29.9
    assert not cache.is_stale(("feed",))
    clock.now = 30
    assert cache.is_stale(("feed",))
    assert await cache.fetch(("feed",), loader) == ["b"]


async def test_invalidate_matches_key_prefix():
    cache = QueryCache()
    await cache.fetch(("connections", 1, 50), CountingLoader([]))
    await cache.fetch(("connections", 2, 50), CountingLoader([]))
    await cache.fetch(("suggestions", 1, 10), CountingLoader([]))

    matched = cache.invalidate(("connections",))

    assert set(matched) == {("connections", 1, 50), ("connections", 2, 50)}
    assert cache.is_stale(("connections", 1, 50))
    assert not cache.is_stale(("suggestions", 1, 10))
    assert cache.history[-1].key == ("connections",)


async def test_invalidated_entry_keeps_value_until_refetch():
    cache = QueryCache()
    loader = CountingLoader(["old"], ["new"])
    await cache.fetch(("pending_connections",), loader)

    cache.invalidate(("pending_connections",))

    assert cache.peek(("pending_connections",)) == ["old"]
    assert await cache.fetch(("pending_connections",), loader) == ["new"]
    assert not cache.is_stale(("pending_connections",))


async def test_concurrent_fetches_share_one_load():
    cache = QueryCache()
    release = asyncio.Event()
    calls = 0

    async def loader():
        nonlocal calls
        calls += 1
        await release.wait()
        return ["shared"]

    first = asyncio.ensure_future(cache.fetch(("feed",), loader))
    second = asyncio.ensure_future(cache.fetch(("feed",), loader))
    await asyncio.sleep(0)
    release.set()

    assert await first == ["shared"]
    assert await second == ["shared"]
    assert calls == 1


async def test_invalidation_during_load_stores_stale_result():
    cache = QueryCache()
    release = asyncio.Event()

    async def loader():
        await release.wait()
        return ["before mutation"]

    pending = asyncio.ensure_future(cache.fetch(("connections",), loader))
    await asyncio.sleep(0)
    assert cache.invalidate(("connections",)) == (("connections",),)
    release.set()

    assert await pending == ["before mutation"]
    assert cache.is_stale(("connections",))


async def test_fetch_after_invalidation_does_not_join_older_load():
    cache = QueryCache()
    server = {"value": "before"}
    read = asyncio.Event()
    release = asyncio.Event()

    async def loader():
        value = server["value"]
        read.set()
        await release.wait()
        return value

    first = asyncio.ensure_future(cache.fetch(("pending_connections",), loader))
    await read.wait()
    server["value"] = "after"
    cache.invalidate(("pending_connections",))
    second = asyncio.ensure_future(cache.fetch(("pending_connections",), loader))
    release.set()

    assert await second == "after"
    assert await first == "before"
    assert cache.peek(("pending_connections",)) == "after"
    assert not cache.is_stale(("pending_connections",))


async def test_older_load_finishing_last_keeps_newer_value():
    cache = QueryCache()
    slow_release = asyncio.Event()

    async def slow():
        await slow_release.wait()
        return "before"

    async def fast():
        return "after"

    first = asyncio.ensure_future(cache.fetch(("feed",), slow))
    await asyncio.sleep(0)
    cache.invalidate(("feed",))

    assert await cache.fetch(("feed",), fast) == "after"
    slow_release.set()
    assert await first == "before"

    assert cache.peek(("feed",)) == "after"
    assert not cache.is_stale(("feed",))


async def test_failed_load_is_not_cached():
    cache = QueryCache()

    async def failing():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await cache.fetch(("feed",), failing)

    assert ("feed",) not in cache
    assert await cache.fetch(("feed",), CountingLoader(["ok"])) == ["ok"]


async def test_invalidate_unknown_key_is_recorded():
    cache = QueryCache()
    assert cache.invalidate(("feed",)) == ()
    assert len(cache.history) == 1


async def test_history_drops_oldest_invalidations():
    cache = QueryCache(history_size=3)

    for name in ("connections", "suggestions", "pending_connections", "feed"):
        cache.invalidate((name,))

    assert [entry.key for entry in cache.history] == [
        ("suggestions",),
        ("pending_connections",),
        ("feed",),
    ]


def test_history_size_defaults_to_settings(monkeypatch):
    monkeypatch.setattr(settings, "cache_history_size", 7)

    assert QueryCache().history.maxlen == 7
