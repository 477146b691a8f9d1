"""Tests for the prediction cache."""

import pytest

from cedear_advisor.cache import PredictionCache


@pytest.fixture
def cache(clock):
    return PredictionCache(default_ttl_seconds=60, max_entries=3, clock=clock)


def test_get_and_set(cache):
    assert cache.get("a") is None
    cache.set("a", {"value": 1})

    assert cache.get("a") == {"value": 1}
    assert cache.get_stats() == {"hits": 1, "misses": 1, "entries": 1}


def test_entries_expire(cache, clock):
    cache.set("short", 1, ttl_seconds=10)
    cache.set("default", 2)

    clock.advance(10)
    assert cache.get("short") is None
    assert cache.get("default") == 2

    clock.advance(50)
    assert cache.get("default") is None
    assert cache.get_stats()["entries"] == 0


def test_purge_expired(cache, clock):
    cache.set("a", 1, ttl_seconds=5)
    cache.set("b", 2, ttl_seconds=5)
    cache.set("c", 3)
    clock.advance(5)

    assert cache.purge_expired() == 2
    assert cache.get("c") == 3


def test_clear_by_prefix(cache):
    cache.set("trend_prediction:AAPL", 1)
    cache.set("trend_prediction:MSFT", 2)
    cache.set("quotes:AAPL", 3)

    assert cache.clear_by_prefix("trend_prediction:") == 2
    assert cache.get("quotes:AAPL") == 3


def test_full_cache_evicts_soonest_expiry(cache):
    cache.set("a", 1, ttl_seconds=30)
    cache.set("b", 2, ttl_seconds=10)
    cache.set("c", 3, ttl_seconds=20)
    cache.set("d", 4)

    assert cache.get("b") is None
    assert cache.get_stats()["entries"] == 3

    # Overwriting an existing key never evicts
    cache.set("a", 5)
    assert cache.get("c") == 3
    assert cache.get("a") == 5
