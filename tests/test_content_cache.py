"""Tests for the TTL content cache."""

import threading
import time

import pytest

from blockshare.sources.content_cache import ContentCache


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_hit_within_ttl():
    clock = Clock()
    cache = ContentCache(ttl_seconds=60, clock=clock)
    calls = []

    assert cache.get_or_load('doc', lambda: calls.append(1) or 'v1') == 'v1'
    clock.now = 59
    assert cache.get_or_load('doc', lambda: calls.append(1) or 'v2') == 'v1'

    assert len(calls) == 1
    assert cache.stats == {'hits': 1, 'misses': 1, 'coalesced': 0}


def test_expiry_reloads():
    clock = Clock()
    cache = ContentCache(ttl_seconds=60, clock=clock)
    cache.get_or_load('doc', lambda: 'v1')
    clock.now = 61
    assert cache.get('doc') is None
    assert cache.get_or_load('doc', lambda: 'v2') == 'v2'


def test_failures_not_cached():
    cache = ContentCache()

    def boom():
        raise RuntimeError("kernel down")

    with pytest.raises(RuntimeError):
        cache.get_or_load('doc', boom)
    assert cache.get_or_load('doc', lambda: 'ok') == 'ok'


def test_invalidate():
    cache = ContentCache()
    cache.get_or_load('a', lambda: 1)
    cache.get_or_load('b', lambda: 2)

    cache.invalidate('a')
    assert cache.get('a') is None
    assert len(cache) == 1

    cache.invalidate()
    assert len(cache) == 0


def test_concurrent_callers_share_one_load():
    cache = ContentCache()
    started = threading.Event()
    release = threading.Event()
    calls = []

    def slow_loader():
        calls.append(1)
        started.set()
        release.wait(5)
        return 'value'

    results = []
    owner = threading.Thread(target=lambda: results.append(cache.get_or_load('doc', slow_loader)))
    owner.start()
    started.wait(5)

    waiters = [
        threading.Thread(target=lambda: results.append(cache.get_or_load('doc', slow_loader)))
        for _ in range(3)
    ]
    for thread in waiters:
        thread.start()
    while cache.stats['coalesced'] < 3:
        time.sleep(0.01)
    release.set()

    for thread in [owner] + waiters:
        thread.join(5)

    assert results == ['value'] * 4
    assert len(calls) == 1
