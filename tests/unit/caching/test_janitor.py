"""Tests for CacheJanitor — periodic sweeps and lifecycle."""

import asyncio

import pytest

from content_resolver.caching.janitor import CacheJanitor
from content_resolver.caching.response_cache import ResponseCache
from tests.conftest import PRIMARY, FakeClock


@pytest.fixture
def cache(clock: FakeClock) -> ResponseCache:
    return ResponseCache(ttl_seconds=10, clock=clock)


def test_run_once_evicts_expired(cache, clock):
    cache.store("QmA", b"x", "image/png", PRIMARY, 1.0)
    clock.advance(11)
    janitor = CacheJanitor(cache)

    assert janitor.run_once() == 1
    assert janitor.runs == 1
    assert cache.size == 0


def test_run_once_with_nothing_to_evict(cache):
    janitor = CacheJanitor(cache)
    assert janitor.run_once() == 0
    assert janitor.runs == 1


async def test_loop_sweeps_on_interval(cache, clock):
    cache.store("QmA", b"x", "image/png", PRIMARY, 1.0)
    clock.advance(11)
    janitor = CacheJanitor(cache, interval_seconds=0.01)

    janitor.start()
    try:
        for _ in range(100):
            if janitor.runs:
                break
            await asyncio.sleep(0.01)
    finally:
        await janitor.stop()

    assert janitor.runs >= 1
    assert cache.size == 0


async def test_start_is_idempotent(cache):
    janitor = CacheJanitor(cache, interval_seconds=60)
    janitor.start()
    task = janitor._task
    janitor.start()
    assert janitor._task is task
    await janitor.stop()


async def test_stop_cancels_loop(cache):
    janitor = CacheJanitor(cache, interval_seconds=60)
    janitor.start()
    assert janitor.running
    await janitor.stop()
    assert not janitor.running


async def test_stop_without_start_is_noop(cache):
    await CacheJanitor(cache).stop()


async def test_failed_sweep_does_not_kill_loop(cache, monkeypatch):
    calls = 0

    def flaky_sweep():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("boom")
        return 0

    monkeypatch.setattr(cache, "sweep", flaky_sweep)
    janitor = CacheJanitor(cache, interval_seconds=0.01)
    janitor.start()
    try:
        for _ in range(100):
            if calls >= 2:
                break
            await asyncio.sleep(0.01)
    finally:
        await janitor.stop()

    assert calls >= 2
