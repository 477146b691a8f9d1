"""Multi-symbol trend analysis and the portfolio-level view built on it."""

import asyncio
import logging
from collections import Counter
from typing import Iterable, List, Optional

from cedear_advisor.config import (
    BATCH_PAUSE_SECONDS,
    BATCH_SIZE,
    LOW_CONFIDENCE,
    MAX_CATALYSTS,
    MAX_RECOMMENDATIONS,
    MAX_RISKS,
    PORTFOLIO_BULLISH_RATIO,
    PORTFOLIO_TIMEFRAME,
    RECOMMENDATION_CONFIDENCE,
)
from cedear_advisor.exceptions import AggregationError
from cedear_advisor.models import (
    Direction,
    KeyFactor,
    PortfolioRecommendation,
    PortfolioTrend,
    PortfolioTrendAnalysis,
    PredictionOptions,
    StrengthClass,
    TrendPrediction,
)
from cedear_advisor.prediction import dedupe
from cedear_advisor.predictor import TrendPredictionService
from cedear_advisor.ratelimit import RateLimiter
from cedear_advisor.utils import round_half_up

logger = logging.getLogger(__name__)


class MultiSymbolResult(dict):
    """Predictions keyed by symbol, plus the symbols that failed."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.failed: List[str] = []


def extract_key_themes(factors: Iterable[KeyFactor], limit: int = 5) -> List[str]:
    """Most frequent key factor names, ties in order of first appearance."""
    counts = Counter(factor.factor for factor in factors)
    return [theme for theme, _ in counts.most_common(limit)]


def generate_portfolio_recommendations(predictions: Iterable[TrendPrediction]) -> List[PortfolioRecommendation]:
    recommendations = []
    for result in predictions:
        pred = result.prediction
        urgency = "HIGH" if pred.strength == StrengthClass.STRONG else "MEDIUM"

        if pred.direction == Direction.BULLISH and pred.confidence > RECOMMENDATION_CONFIDENCE:
            recommendations.append(PortfolioRecommendation(
                action="ADD",
                symbol=result.symbol,
                reason=f"Strong uptrend with {pred.confidence}% confidence",
                urgency=urgency,
            ))
        elif pred.direction == Direction.BEARISH and pred.confidence > RECOMMENDATION_CONFIDENCE:
            recommendations.append(PortfolioRecommendation(
                action="REDUCE",
                symbol=result.symbol,
                reason=f"Downtrend with {pred.confidence}% confidence",
                urgency=urgency,
            ))
        elif pred.confidence < LOW_CONFIDENCE:
            recommendations.append(PortfolioRecommendation(
                action="HOLD",
                symbol=result.symbol,
                reason=f"Low confidence in prediction ({pred.confidence}%)",
                urgency="LOW",
            ))

    return recommendations[:MAX_RECOMMENDATIONS]


class PortfolioOrchestrator:
    """Runs trend predictions over many symbols in paced batches."""

    def __init__(
        self,
        service: TrendPredictionService,
        batch_size: int = BATCH_SIZE,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.service = service
        self.batch_size = batch_size
        self.rate_limiter = rate_limiter or RateLimiter(BATCH_PAUSE_SECONDS)

    async def _predict_one(self, symbol: str, timeframe: str, options: PredictionOptions) -> Optional[TrendPrediction]:
        try:
            return await self.service.predict_trend(symbol, timeframe, options)
        except Exception as e:
            logger.warning(f"Failed to predict trend for {symbol}: {e}")
            return None

    async def analyze_multiple_symbols(
        self,
        symbols: List[str],
        timeframe: str = "1M",
        options: Optional[PredictionOptions] = None,
    ) -> MultiSymbolResult:
        """Predict every symbol, `batch_size` at a time.

        Deep analysis is always disabled here. A failing symbol is logged,
        left out of the mapping and listed in `failed`.
        """
        options = (options or PredictionOptions()).model_copy(update={'analyze_with_claude': False})
        results = MultiSymbolResult()

        for start in range(0, len(symbols), self.batch_size):
            batch = symbols[start:start + self.batch_size]
            await self.rate_limiter.acquire()
            predictions = await asyncio.gather(*(self._predict_one(s, timeframe, options) for s in batch))

            for symbol, prediction in zip(batch, predictions):
                if prediction is None:
                    results.failed.append(symbol)
                else:
                    results[prediction.symbol] = prediction

        logger.info(
            f"Analyzed {len(results)} of {len(symbols)} symbols ({timeframe})"
            + (f", failed: {', '.join(results.failed)}" if results.failed else "")
        )
        return results

    async def analyze_portfolio_trends(
        self,
        symbols: List[str],
        options: Optional[PredictionOptions] = None,
    ) -> PortfolioTrendAnalysis:
        """Aggregate 3-month predictions into a portfolio view.

        Raises:
            AggregationError: If no symbol could be predicted
        """
        results = await self.analyze_multiple_symbols(symbols, PORTFOLIO_TIMEFRAME, options)
        predictions = list(results.values())
        if not predictions:
            logger.error(f"Portfolio trend analysis failed for {', '.join(symbols) or 'empty portfolio'}")
            raise AggregationError(
                "No valid predictions available for portfolio analysis",
                timeframe=PORTFOLIO_TIMEFRAME,
            )

        bullish = [p.symbol for p in predictions if p.prediction.direction == Direction.BULLISH]
        bearish = [p.symbol for p in predictions if p.prediction.direction == Direction.BEARISH]
        neutral = [p.symbol for p in predictions if p.prediction.direction == Direction.SIDEWAYS]

        total = len(predictions)
        if len(bullish) / total > PORTFOLIO_BULLISH_RATIO:
            overall_trend = PortfolioTrend.BULLISH
        elif len(bearish) / total > PORTFOLIO_BULLISH_RATIO:
            overall_trend = PortfolioTrend.BEARISH
        else:
            overall_trend = PortfolioTrend.MIXED

        confidence = round_half_up(sum(p.prediction.confidence for p in predictions) / total)

        return PortfolioTrendAnalysis(
            overall_trend=overall_trend,
            confidence=confidence,
            bullish_symbols=bullish,
            bearish_symbols=bearish,
            neutral_symbols=neutral,
            key_themes=extract_key_themes(f for p in predictions for f in p.analysis.key_factors),
            risks=dedupe((r for p in predictions for r in p.analysis.risks), MAX_RISKS),
            opportunities=dedupe((c for p in predictions for c in p.analysis.catalysts), MAX_CATALYSTS),
            recommended_actions=generate_portfolio_recommendations(predictions),
            failed_symbols=list(results.failed),
        )
