"""Trend prediction service combining technical, fundamental, sentiment and news inputs."""

import logging
import time
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Protocol

from cedear_advisor.cache import PredictionCache
from cedear_advisor.config import CACHE_PREFIX, TIMEFRAME_DAYS
from cedear_advisor.data import PriceHistoryProvider
from cedear_advisor.deep_analysis import DeepAnalyzer
from cedear_advisor.exceptions import AggregationError, UpstreamError
from cedear_advisor.models import (
    DeepAnalysis,
    PredictionOptions,
    PredictionStage,
    TrendAnalysis,
    TrendPrediction,
)
from cedear_advisor.prediction import (
    calculate_prediction,
    generate_scenarios,
    identify_catalysts,
    identify_key_factors,
    identify_risks,
)
from cedear_advisor.scoring import aggregate_scores, overall_score
from cedear_advisor.storage import IndicatorStore
from cedear_advisor.utils import settle_all

logger = logging.getLogger(__name__)


class NewsAnalyzer(Protocol):
    async def get_news_sentiment(self, symbol: str) -> Mapping[str, Any]:
        ...


class SentimentAnalyzer(Protocol):
    async def get_market_sentiment(self, options: Mapping[str, Any]) -> Mapping[str, Any]:
        ...


class EarningsAnalyzer(Protocol):
    async def get_earnings_analysis(self, symbol: str, options: Mapping[str, Any]) -> Mapping[str, Any]:
        ...


def cache_key(symbol: str, timeframe: str, options: PredictionOptions) -> str:
    return f"{CACHE_PREFIX}:{symbol}:{timeframe}:{options.model_dump_json()}"


class TrendPredictionService:
    """Predicts the price trend of one instrument over a timeframe.

    Every collaborator is injected. News, sentiment, earnings and deep
    analysis are optional; a missing or failing source only removes its
    factor from the prediction.
    """

    def __init__(
        self,
        price_provider: PriceHistoryProvider,
        indicator_store: IndicatorStore,
        news_analyzer: Optional[NewsAnalyzer] = None,
        sentiment_analyzer: Optional[SentimentAnalyzer] = None,
        earnings_analyzer: Optional[EarningsAnalyzer] = None,
        deep_analyzer: Optional[DeepAnalyzer] = None,
        cache: Optional[PredictionCache] = None,
    ):
        self.price_provider = price_provider
        self.indicator_store = indicator_store
        self.news_analyzer = news_analyzer
        self.sentiment_analyzer = sentiment_analyzer
        self.earnings_analyzer = earnings_analyzer
        self.deep_analyzer = deep_analyzer
        self.cache = cache if cache is not None else PredictionCache()
        self.predictions_made = 0
        self.failures = 0
        self._confidence_total = 0

    async def predict_trend(
        self,
        symbol: str,
        timeframe: str = "1M",
        options: Optional[PredictionOptions] = None,
    ) -> TrendPrediction:
        """Predict the trend for a symbol.

        Args:
            symbol: Instrument symbol, e.g. 'AAPL'
            timeframe: One of 1W, 1M, 3M, 6M, 1Y
            options: Request switches, defaults to PredictionOptions()

        Returns:
            TrendPrediction with factor scores, probabilities and narrative

        Raises:
            AggregationError: If the prediction cannot be produced
        """
        options = options or PredictionOptions()
        symbol = symbol.upper()
        if timeframe not in TIMEFRAME_DAYS:
            self.failures += 1
            self._log_stage(PredictionStage.ERROR, symbol, timeframe)
            logger.error(f"Trend prediction failed for {symbol}: unsupported timeframe {timeframe!r}")
            raise AggregationError(
                f"Unsupported timeframe {timeframe!r}, expected one of {', '.join(TIMEFRAME_DAYS)}",
                symbol=symbol,
                timeframe=timeframe,
            )

        key = cache_key(symbol, timeframe, options)
        if options.use_cache:
            cached = self._read_cache(key)
            if cached is not None:
                logger.debug(f"Returning cached trend prediction for {symbol} {timeframe}")
                return cached

        started = time.monotonic()
        stage = PredictionStage.COLLECTING
        try:
            self._log_stage(stage, symbol, timeframe)
            collected = await self._collect(symbol, timeframe, options)

            stage = PredictionStage.SCORING
            self._log_stage(stage, symbol, timeframe)
            scores = aggregate_scores(
                technical=collected['technical'],
                earnings=collected['earnings'],
                prices=collected['prices'],
                sentiment=collected['sentiment'],
                news=collected['news'],
            )
            overall = overall_score(scores)

            stage = PredictionStage.PREDICTING
            self._log_stage(stage, symbol, timeframe)
            prediction = calculate_prediction(scores, overall)
            earnings = collected['earnings'] or {}
            key_factors = identify_key_factors(
                scores, (earnings.get('analysis') or {}).get('overallAssessment')
            )
            scenarios = generate_scenarios(prediction.direction) if options.include_scenarios else []

            deep_analysis = None
            if options.analyze_with_claude and self.deep_analyzer is not None:
                deep_analysis = await self._run_deep_analysis(symbol, timeframe, {
                    'prediction': prediction,
                    'scores': scores,
                    'overall': overall,
                    'key_factors': key_factors,
                    'scenarios': scenarios,
                })

            result = TrendPrediction(
                symbol=symbol,
                timeframe=timeframe,
                prediction=prediction,
                analysis=TrendAnalysis(
                    factor_scores=scores,
                    overall_score=overall,
                    key_factors=key_factors,
                    risks=identify_risks(key_factors, scenarios),
                    catalysts=identify_catalysts(key_factors, scenarios),
                ),
                scenarios=scenarios,
                last_updated=datetime.now(),
                deep_analysis=deep_analysis,
            )

            stage = PredictionStage.CACHING
            self._log_stage(stage, symbol, timeframe)
            if options.use_cache:
                self._write_cache(key, result, options.cache_ttl_minutes * 60)
        except Exception as e:
            self.failures += 1
            self._log_stage(PredictionStage.ERROR, symbol, timeframe)
            logger.error(f"Trend prediction failed for {symbol} ({timeframe}) during {stage.value}: {e}")
            if isinstance(e, AggregationError):
                raise
            raise AggregationError(
                f"Trend prediction failed for {symbol} ({timeframe}): {e}",
                symbol=symbol,
                timeframe=timeframe,
            ) from e

        self._log_stage(PredictionStage.DONE, symbol, timeframe)
        self.predictions_made += 1
        self._confidence_total += prediction.confidence
        logger.info(
            f"Trend prediction for {symbol} ({timeframe}): {prediction.direction.value} "
            f"confidence={prediction.confidence} overall={overall:.1f} "
            f"in {time.monotonic() - started:.2f}s"
        )
        return result

    async def _collect(self, symbol: str, timeframe: str, options: PredictionOptions) -> Dict[str, Any]:
        """Gather every input concurrently; a failed or disabled source becomes None."""
        settled = await settle_all({
            'technical': self._get_technical(symbol),
            'news': self._get_news(symbol, options.include_news),
            'sentiment': self._get_sentiment(symbol, options.include_sentiment),
            'earnings': self._get_earnings(symbol, options.include_earnings),
            'prices': self._get_prices(symbol, TIMEFRAME_DAYS[timeframe]),
        })

        collected = {}
        for name, outcome in settled.items():
            if not outcome.ok:
                logger.warning(f"Skipping {name} input for {symbol}: {outcome.error}")
            collected[name] = outcome.value
        return collected

    async def _get_technical(self, symbol: str):
        try:
            return await self.indicator_store.get_latest_indicators(symbol)
        except Exception as e:
            raise UpstreamError('technical indicators', symbol, e) from e

    async def _get_news(self, symbol: str, enabled: bool):
        if not enabled or self.news_analyzer is None:
            return None
        try:
            return await self.news_analyzer.get_news_sentiment(symbol)
        except Exception as e:
            raise UpstreamError('news analysis', symbol, e) from e

    async def _get_sentiment(self, symbol: str, enabled: bool):
        if not enabled or self.sentiment_analyzer is None:
            return None
        try:
            return await self.sentiment_analyzer.get_market_sentiment({'use_cache': True, 'include_news': True})
        except Exception as e:
            raise UpstreamError('market sentiment', symbol, e) from e

    async def _get_earnings(self, symbol: str, enabled: bool):
        if not enabled or self.earnings_analyzer is None:
            return None
        try:
            return await self.earnings_analyzer.get_earnings_analysis(
                symbol, {'use_cache': True, 'analyze_with_claude': False}
            )
        except Exception as e:
            raise UpstreamError('earnings analysis', symbol, e) from e

    async def _get_prices(self, symbol: str, days: int):
        try:
            return await self.price_provider.get_price_history(symbol, days)
        except Exception as e:
            raise UpstreamError('price history', symbol, e) from e

    async def _run_deep_analysis(self, symbol: str, timeframe: str, context: Dict[str, Any]) -> Optional[DeepAnalysis]:
        try:
            return await self.deep_analyzer.analyze(symbol, timeframe, context)
        except Exception as e:
            logger.warning(f"Deep analysis failed for {symbol}: {e}")
            return None

    def _read_cache(self, key: str) -> Optional[TrendPrediction]:
        try:
            cached = self.cache.get(key)
        except Exception as e:
            logger.warning(f"Prediction cache read failed: {e}")
            return None
        return cached

    def _write_cache(self, key: str, prediction: TrendPrediction, ttl_seconds: float) -> None:
        try:
            self.cache.set(key, prediction, ttl_seconds)
        except Exception as e:
            logger.warning(f"Prediction cache write failed: {e}")

    @staticmethod
    def _log_stage(stage: PredictionStage, symbol: str, timeframe: str) -> None:
        logger.debug(f"Trend prediction {symbol} ({timeframe}): {stage.value}")

    def get_stats(self) -> Dict[str, Any]:
        """Cache counters and in-process prediction totals."""
        avg_confidence = self._confidence_total / self.predictions_made if self.predictions_made else 0.0
        return {
            'cache_stats': self.cache.get_stats(),
            'predictions': self.predictions_made,
            'failures': self.failures,
            'avg_confidence': round(avg_confidence, 1),
        }

    def clear_cache(self) -> int:
        removed = self.cache.clear_by_prefix(CACHE_PREFIX)
        logger.info(f"Trend prediction cache cleared ({removed} entries)")
        return removed
