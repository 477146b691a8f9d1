"""Tests for the batch indicator runner."""

import asyncio
from datetime import datetime

import pytest

from conftest import FakePriceProvider, build_bars
from cedear_advisor.batch import BatchIndicatorRunner
from cedear_advisor.data import StaticInstrumentSource
from cedear_advisor.models import IndicatorKind
from cedear_advisor.ratelimit import RateLimiter
from cedear_advisor.storage import InMemoryIndicatorStore


@pytest.fixture
def provider(rising_bars):
    return FakePriceProvider({
        "AAPL": rising_bars,
        "TINY": build_bars([10.0 + i for i in range(10)]),
        "DOWN": RuntimeError("upstream timeout"),
        "MSFT": rising_bars,
    })


@pytest.fixture
def runner(provider, clock):
    return BatchIndicatorRunner(
        price_provider=provider,
        store=InMemoryIndicatorStore(),
        instruments=StaticInstrumentSource(["AAPL", "TINY", "DOWN", "MSFT"]),
        rate_limiter=RateLimiter(0.1, clock=clock, sleep=clock.sleep),
    )


def test_run_all_continues_past_bad_symbols(runner, provider):
    processed = asyncio.run(runner.run_all())

    assert processed == 2
    assert runner.last_run.processed == 2
    assert runner.last_run.skipped == 1
    assert runner.last_run.failed == 1
    assert runner.last_run.finished_at is not None
    assert runner.is_running is False
    assert [symbol for symbol, _ in provider.calls] == ["AAPL", "TINY", "DOWN", "MSFT"]
    assert all(days == 365 for _, days in provider.calls)


def test_run_all_stores_indicators(runner):
    asyncio.run(runner.run_all())

    stats = asyncio.run(runner.store.get_stats())
    assert stats["total_indicators"] == 10
    assert set(stats["by_symbol"]) == {"AAPL", "MSFT"}
    kinds = {r.kind for r in asyncio.run(runner.store.get_latest_indicators("AAPL"))}
    assert kinds == set(IndicatorKind)


def test_run_all_paces_requests(runner, clock):
    asyncio.run(runner.run_all())

    assert runner.rate_limiter.acquisitions == 4
    assert clock.sleeps == pytest.approx([0.1, 0.1, 0.1])


def test_overlapping_run_is_skipped(runner, provider):
    runner.is_running = True

    assert asyncio.run(runner.run_all()) == 0
    assert provider.calls == []


def test_run_symbol_propagates_errors(runner):
    with pytest.raises(RuntimeError):
        asyncio.run(runner.run_symbol("DOWN"))
    assert asyncio.run(runner.run_symbol("TINY")) is False
    assert asyncio.run(runner.run_symbol("AAPL")) is True


def test_cleanup_removes_old_indicators(runner):
    asyncio.run(runner.run_all())

    # Bars end in mid 2024, far outside a 90 day window from today
    assert asyncio.run(runner.cleanup(days_to_keep=90)) == 10
    assert asyncio.run(runner.store.get_stats())["total_indicators"] == 0


def test_cleanup_keeps_recent():
    store = InMemoryIndicatorStore()
    recent = build_bars([100.0 + i for i in range(60)], start=datetime.now().strftime("%Y-%m-%d"))
    runner = BatchIndicatorRunner(
        FakePriceProvider({"AAPL": recent}), store, StaticInstrumentSource(["AAPL"]),
        rate_limiter=RateLimiter(0),
    )
    asyncio.run(runner.run_all())

    assert asyncio.run(runner.cleanup()) == 0
