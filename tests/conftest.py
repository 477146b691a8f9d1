"""Shared fixtures and fake collaborators."""

from datetime import datetime

import pandas as pd
import pytest

from cedear_advisor.models import PriceBar


class FakeClock:
    """Manual clock; sleeping advances it instead of waiting."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakePriceProvider:
    """Serves canned bars per symbol; an Exception value is raised instead."""

    def __init__(self, histories=None, default=None):
        self.histories = histories or {}
        self.default = default if default is not None else []
        self.calls = []

    async def get_price_history(self, symbol, days):
        self.calls.append((symbol, days))
        history = self.histories.get(symbol, self.default)
        if isinstance(history, Exception):
            raise history
        return history


class FakeScoreAnalyzer:
    """Answers news, market sentiment and earnings requests with fixed payloads."""

    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error
        self.calls = 0

    async def _answer(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.payload

    async def get_news_sentiment(self, symbol):
        return await self._answer()

    async def get_market_sentiment(self, options):
        return await self._answer()

    async def get_earnings_analysis(self, symbol, options):
        return await self._answer()


def build_bars(closes, start="2024-01-01", spread=0.01):
    dates = pd.date_range(start=start, periods=len(closes), freq="D")
    return [
        PriceBar(
            date=date.to_pydatetime(),
            open=close,
            high=close * (1 + spread),
            low=close * (1 - spread),
            close=close,
            volume=1_000_000,
        )
        for date, close in zip(dates, closes)
    ]


@pytest.fixture
def make_bars():
    """Factory for daily bars from a list of closes."""
    return build_bars


@pytest.fixture
def rising_bars():
    """200 days of strictly increasing closes."""
    return build_bars([100.0 + i for i in range(200)])


@pytest.fixture
def zigzag_bars():
    """Rising trend with alternating +1 / -0.25 moves."""
    closes = [100.0]
    for i in range(199):
        closes.append(closes[-1] + (1.0 if i % 2 == 0 else -0.25))
    return build_bars(closes)


@pytest.fixture
def flat_bars():
    return build_bars([100.0] * 60, spread=0.0)


@pytest.fixture
def price_frame():
    """OHLCV DataFrame as returned by the Yahoo download, 200 rising days."""
    dates = pd.date_range(start="2024-01-01", periods=200, freq="D", name="date")
    close = pd.Series([100.0 + i for i in range(200)], index=dates)
    return pd.DataFrame({
        "open": close,
        "high": close * 1.01,
        "low": close * 0.99,
        "close": close,
        "volume": 1_000_000.0,
    })


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def as_of():
    return datetime(2024, 7, 18)
