"""Tests for the trend prediction service."""

import asyncio

import pytest

from conftest import FakeClock, FakePriceProvider, FakeScoreAnalyzer
from cedear_advisor.analysis import calculate_indicators
from cedear_advisor.cache import PredictionCache
from cedear_advisor.exceptions import AggregationError
from cedear_advisor.models import DeepAnalysis, Direction, PredictionOptions
from cedear_advisor.predictor import TrendPredictionService, cache_key
from cedear_advisor.storage import InMemoryIndicatorStore


class CountingStore(InMemoryIndicatorStore):
    def __init__(self):
        super().__init__()
        self.reads = 0

    async def get_latest_indicators(self, symbol):
        self.reads += 1
        return await super().get_latest_indicators(symbol)


class BrokenStore(InMemoryIndicatorStore):
    async def get_latest_indicators(self, symbol):
        return [object()]


class FakeDeepAnalyzer:
    def __init__(self, error=None):
        self.error = error
        self.contexts = []

    async def analyze(self, symbol, timeframe, context):
        self.contexts.append(context)
        if self.error is not None:
            raise self.error
        return DeepAnalysis(reasoning=f"{symbol} looks fine", confidence=80)


@pytest.fixture
def store(rising_bars):
    store = CountingStore()
    asyncio.run(store.save_indicators(calculate_indicators("AAPL", rising_bars)))
    return store


def test_all_sources_unavailable():
    """No data at all still yields a neutral prediction."""
    service = TrendPredictionService(FakePriceProvider(), InMemoryIndicatorStore())

    result = asyncio.run(service.predict_trend("aapl"))

    assert result.symbol == "AAPL"
    assert result.analysis.overall_score == 0
    assert result.analysis.factor_scores.available() == {}
    assert result.prediction.direction == Direction.SIDEWAYS
    assert result.prediction.confidence == 50
    assert result.scenarios[0].price_impact == 0
    assert result.deep_analysis is None


def test_prediction_combines_sources(store, rising_bars):
    prices = FakePriceProvider(default=rising_bars[-30:])
    news = FakeScoreAnalyzer({"sentimentScore": 60})
    sentiment = FakeScoreAnalyzer({"sentimentScore": 40})
    earnings = FakeScoreAnalyzer({
        "analysis": {"overallAssessment": "BEAT"},
        "historicalContext": {"consecutiveBeats": 3, "consecutiveMisses": 0},
    })
    service = TrendPredictionService(prices, store, news, sentiment, earnings)

    result = asyncio.run(service.predict_trend("AAPL", "1M"))

    scores = result.analysis.factor_scores
    assert set(scores.available()) == {"technical", "fundamental", "sentiment", "news"}
    assert scores.news == pytest.approx(48.0)
    assert prices.calls == [("AAPL", 30)]
    factor_names = [f.factor for f in result.analysis.key_factors]
    assert "Earnings Performance" in factor_names
    assert "News Coverage" in factor_names
    assert result.prediction.probability.bullish + result.prediction.probability.bearish \
        + result.prediction.probability.sideways == 100


def test_cached_prediction_skips_collaborators(store, rising_bars):
    prices = FakePriceProvider(default=rising_bars)
    news = FakeScoreAnalyzer({"sentimentScore": 10})
    service = TrendPredictionService(prices, store, news_analyzer=news)

    first = asyncio.run(service.predict_trend("AAPL", "3M"))
    second = asyncio.run(service.predict_trend("AAPL", "3M"))

    assert second is first
    assert len(prices.calls) == 1
    assert news.calls == 1
    assert store.reads == 1
    assert service.get_stats()["cache_stats"]["hits"] == 1


def test_cache_expires_after_ttl(store, rising_bars):
    clock = FakeClock()
    prices = FakePriceProvider(default=rising_bars)
    service = TrendPredictionService(prices, store, cache=PredictionCache(clock=clock))
    options = PredictionOptions(cache_ttl_minutes=5)

    asyncio.run(service.predict_trend("AAPL", options=options))
    clock.advance(5 * 60)
    asyncio.run(service.predict_trend("AAPL", options=options))

    assert len(prices.calls) == 2


def test_cache_disabled(store, rising_bars):
    prices = FakePriceProvider(default=rising_bars)
    service = TrendPredictionService(prices, store)
    options = PredictionOptions(use_cache=False)

    asyncio.run(service.predict_trend("AAPL", options=options))
    asyncio.run(service.predict_trend("AAPL", options=options))

    assert len(prices.calls) == 2
    assert service.cache.get_stats()["entries"] == 0


def test_failing_sources_are_skipped(store):
    prices = FakePriceProvider(default=RuntimeError("quotes down"))
    news = FakeScoreAnalyzer(error=RuntimeError("news down"))
    service = TrendPredictionService(prices, store, news_analyzer=news)

    result = asyncio.run(service.predict_trend("AAPL"))

    assert result.analysis.factor_scores.news is None
    assert result.analysis.factor_scores.fundamental is None
    assert result.analysis.factor_scores.technical is not None


def test_disabled_sources_are_not_called(store):
    news = FakeScoreAnalyzer({"sentimentScore": 90})
    sentiment = FakeScoreAnalyzer({"sentimentScore": 90})
    service = TrendPredictionService(FakePriceProvider(), store, news, sentiment)
    options = PredictionOptions(include_news=False, include_sentiment=False, include_scenarios=False)

    result = asyncio.run(service.predict_trend("AAPL", options=options))

    assert news.calls == 0
    assert sentiment.calls == 0
    assert result.scenarios == []


def test_deep_analysis(store):
    deep = FakeDeepAnalyzer()
    service = TrendPredictionService(FakePriceProvider(), store, deep_analyzer=deep)

    result = asyncio.run(service.predict_trend("AAPL"))

    assert result.deep_analysis.reasoning == "AAPL looks fine"
    assert set(deep.contexts[0]) == {"prediction", "scores", "overall", "key_factors", "scenarios"}


def test_deep_analysis_failure_is_tolerated(store):
    service = TrendPredictionService(
        FakePriceProvider(), store, deep_analyzer=FakeDeepAnalyzer(error=RuntimeError("rate limited"))
    )

    result = asyncio.run(service.predict_trend("AAPL"))

    assert result.deep_analysis is None


def test_deep_analysis_can_be_switched_off(store):
    deep = FakeDeepAnalyzer()
    service = TrendPredictionService(FakePriceProvider(), store, deep_analyzer=deep)

    asyncio.run(service.predict_trend("AAPL", options=PredictionOptions(analyze_with_claude=False)))

    assert deep.contexts == []


def test_unknown_timeframe():
    service = TrendPredictionService(FakePriceProvider(), InMemoryIndicatorStore())
    with pytest.raises(AggregationError) as exc_info:
        asyncio.run(service.predict_trend("AAPL", "2W"))
    assert exc_info.value.timeframe == "2W"
    assert service.get_stats()["failures"] == 1
    assert service.get_stats()["predictions"] == 0


def test_scoring_failure_raises_aggregation_error():
    service = TrendPredictionService(FakePriceProvider(), BrokenStore())

    with pytest.raises(AggregationError) as exc_info:
        asyncio.run(service.predict_trend("AAPL", "1W"))

    assert exc_info.value.symbol == "AAPL"
    assert service.get_stats()["failures"] == 1


def test_clear_cache(store):
    service = TrendPredictionService(FakePriceProvider(), store)
    asyncio.run(service.predict_trend("AAPL"))
    asyncio.run(service.predict_trend("AAPL", "1Y"))

    assert service.clear_cache() == 2
    assert service.get_stats()["predictions"] == 2


def test_cache_key_includes_options():
    default = cache_key("AAPL", "1M", PredictionOptions())
    no_news = cache_key("AAPL", "1M", PredictionOptions(include_news=False))

    assert default.startswith("trend_prediction:AAPL:1M:")
    assert default != no_news
