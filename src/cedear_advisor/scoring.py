"""Multi-factor scoring: technical, fundamental, sentiment and news scores."""

import logging
from typing import Dict, Mapping, Optional, Sequence

from cedear_advisor.config import (
    EARNINGS_DELTAS,
    EARNINGS_STREAK_DELTA,
    EARNINGS_STREAK_LENGTH,
    FACTOR_WEIGHTS,
    MOMENTUM_CAP,
    NEWS_SCALE,
    RSI_OVERBOUGHT,
    RSI_OVERSOLD,
    TECHNICAL_MACD_CAP,
    TECHNICAL_RSI_DELTA,
    TECHNICAL_SMA_CAP,
)
from cedear_advisor.exceptions import AggregationError
from cedear_advisor.models import FactorScores, IndicatorKind, IndicatorResult, PriceBar
from cedear_advisor.utils import clamp, is_finite

logger = logging.getLogger(__name__)


def _average(components: Sequence[float]) -> Optional[float]:
    """Mean of the present components clamped to [-100, 100], None when there are none."""
    if not components:
        return None
    return clamp(sum(components) / len(components), -100, 100)


def technical_score(indicators: Optional[Sequence[IndicatorResult]]) -> Optional[float]:
    """Score the latest stored indicators.

    RSI below 30 adds 40 and above 70 subtracts 40, otherwise it contributes
    (50 - RSI) * 0.8. The MACD spread and the SMA20/SMA50 gap add capped
    terms. Components are averaged over the ones available.
    """
    if not indicators:
        return None

    by_kind: Dict[IndicatorKind, IndicatorResult] = {}
    for result in indicators:
        if result.kind not in by_kind or result.timestamp > by_kind[result.kind].timestamp:
            by_kind[result.kind] = result

    components = []

    rsi_result = by_kind.get(IndicatorKind.RSI)
    if rsi_result is not None:
        rsi = rsi_result.primary_value
        if rsi < RSI_OVERSOLD:
            components.append(TECHNICAL_RSI_DELTA)
        elif rsi > RSI_OVERBOUGHT:
            components.append(-TECHNICAL_RSI_DELTA)
        else:
            components.append((50 - rsi) * 0.8)

    macd_result = by_kind.get(IndicatorKind.MACD)
    if macd_result is not None:
        line = macd_result.metadata.get('macd_line')
        signal = macd_result.metadata.get('macd_signal')
        if is_finite(line) and is_finite(signal):
            components.append(clamp((line - signal) * 100, -TECHNICAL_MACD_CAP, TECHNICAL_MACD_CAP))

    sma_result = by_kind.get(IndicatorKind.SMA)
    if sma_result is not None:
        sma20 = sma_result.metadata.get('sma20')
        sma50 = sma_result.metadata.get('sma50')
        if is_finite(sma20) and is_finite(sma50) and sma50 != 0:
            gap_pct = (sma20 - sma50) / sma50 * 100
            components.append(clamp(gap_pct * 10, -TECHNICAL_SMA_CAP, TECHNICAL_SMA_CAP))

    return _average(components)


def fundamental_score(earnings: Optional[Mapping], prices: Optional[Sequence[PriceBar]]) -> Optional[float]:
    """Score earnings results and price momentum.

    Args:
        earnings: {"analysis": {"overallAssessment": ...},
                   "historicalContext": {"consecutiveBeats": n, "consecutiveMisses": n}}
        prices: Bars over the prediction timeframe, ascending

    Returns:
        Mean of the available sub-terms in [-100, 100], or None
    """
    components = []

    if earnings:
        assessment = (earnings.get('analysis') or {}).get('overallAssessment')
        if assessment is not None:
            components.append(EARNINGS_DELTAS.get(str(assessment).upper(), 0))

        history = earnings.get('historicalContext')
        if history is not None:
            beats = history.get('consecutiveBeats') or 0
            misses = history.get('consecutiveMisses') or 0
            if beats >= EARNINGS_STREAK_LENGTH:
                components.append(EARNINGS_STREAK_DELTA)
            elif misses >= EARNINGS_STREAK_LENGTH:
                components.append(-EARNINGS_STREAK_DELTA)
            else:
                components.append(0)

    if prices:
        first_close = prices[0].close
        last_close = prices[-1].close
        if is_finite(first_close) and is_finite(last_close) and first_close > 0:
            change_pct = (last_close - first_close) / first_close * 100
            components.append(clamp(change_pct * 2, -MOMENTUM_CAP, MOMENTUM_CAP))

    return _average(components)


def sentiment_score(sentiment: Optional[Mapping]) -> Optional[float]:
    """Market sentiment, already on the [-100, 100] scale."""
    if not sentiment or not is_finite(sentiment.get('sentimentScore')):
        return None
    return clamp(float(sentiment['sentimentScore']), -100, 100)


def news_score(news: Optional[Mapping]) -> Optional[float]:
    """News sentiment scaled down by 0.8."""
    if not news or not is_finite(news.get('sentimentScore')):
        return None
    return clamp(float(news['sentimentScore']) * NEWS_SCALE, -100, 100)


def aggregate_scores(
    technical: Optional[Sequence[IndicatorResult]] = None,
    earnings: Optional[Mapping] = None,
    prices: Optional[Sequence[PriceBar]] = None,
    sentiment: Optional[Mapping] = None,
    news: Optional[Mapping] = None,
) -> FactorScores:
    """Compute the four factor scores from raw collaborator inputs."""
    return FactorScores(
        technical=technical_score(technical),
        fundamental=fundamental_score(earnings, prices),
        sentiment=sentiment_score(sentiment),
        news=news_score(news),
    )


def overall_score(scores: FactorScores, weights: Mapping[str, float] = FACTOR_WEIGHTS) -> float:
    """Weighted sum of the factor scores; an unavailable factor counts as 0."""
    if abs(sum(weights.values()) - 1.0) > 1e-9:
        raise AggregationError(f"Factor weights must sum to 1, got {sum(weights.values())}")

    values = scores.model_dump()
    total = 0.0
    for name, weight in weights.items():
        value = values.get(name)
        if value is not None:
            total += weight * value
    return total
