"""Turn factor scores into a direction, confidence, probabilities and narrative."""

import logging
from typing import Iterable, List, Optional

import numpy as np

from cedear_advisor.config import (
    DIRECTION_THRESHOLD,
    KEY_FACTOR_RULES,
    MAX_CATALYSTS,
    MAX_CONFIDENCE,
    MAX_KEY_FACTORS,
    MAX_RISKS,
    PROBABILITY_SCALE,
    STRENGTH_MODERATE,
    STRENGTH_STRONG,
)
from cedear_advisor.models import (
    Direction,
    FactorScores,
    Impact,
    KeyFactor,
    Prediction,
    Probability,
    Scenario,
    StrengthClass,
)
from cedear_advisor.utils import clamp, round_half_up

logger = logging.getLogger(__name__)

BASE_RISKS = [
    'General market volatility',
    'Monetary policy changes',
    'Geopolitical uncertainty',
]

BASE_CATALYSTS = [
    'Improving economic indicators',
    'Positive sector results',
    'Technological innovation',
]


def determine_direction(overall: float) -> Direction:
    if overall > DIRECTION_THRESHOLD:
        return Direction.BULLISH
    if overall < -DIRECTION_THRESHOLD:
        return Direction.BEARISH
    return Direction.SIDEWAYS


def classify_strength(overall: float) -> StrengthClass:
    magnitude = abs(overall)
    if magnitude < STRENGTH_MODERATE:
        return StrengthClass.WEAK
    if magnitude < STRENGTH_STRONG:
        return StrengthClass.MODERATE
    return StrengthClass.STRONG


def calculate_confidence(scores: FactorScores, overall: float) -> int:
    """Confidence grows with the score magnitude and with agreement between factors.

    Agreement is 100 minus the population variance of the available factor
    scores, floored at 0. With no factor available there is no agreement
    and the confidence rests at 50 plus the magnitude term.
    """
    available = list(scores.available().values())
    if available:
        variance = float(np.var(available))
        consensus = max(0.0, 100 - variance)
    else:
        consensus = 0.0

    confidence = 50 + abs(overall) * 0.5 + consensus * 0.3
    return round_half_up(min(MAX_CONFIDENCE, confidence))


def calculate_probabilities(overall: float) -> Probability:
    """Bullish/bearish/sideways percentages that always sum to 100.

    Bullish and bearish are rounded half-up, sideways takes the residual and
    any rounding overshoot is taken back from the larger side.
    """
    bullish = round_half_up(clamp(50 + overall * PROBABILITY_SCALE))
    bearish = round_half_up(clamp(50 - overall * PROBABILITY_SCALE))
    sideways = 100 - bullish - bearish

    if sideways < 0:
        overshoot = -sideways
        if bullish >= bearish:
            bullish -= overshoot
        else:
            bearish -= overshoot
        sideways = 0

    return Probability(bullish=bullish, bearish=bearish, sideways=sideways)


def calculate_prediction(scores: FactorScores, overall: float) -> Prediction:
    return Prediction(
        direction=determine_direction(overall),
        confidence=calculate_confidence(scores, overall),
        strength=classify_strength(overall),
        probability=calculate_probabilities(overall),
    )


def identify_key_factors(scores: FactorScores, earnings_assessment: Optional[str] = None) -> List[KeyFactor]:
    """Name the factors that pushed the prediction, at most five.

    Args:
        scores: Factor scores of the prediction
        earnings_assessment: overallAssessment of the latest earnings, if any

    Returns:
        Key factors in technical, earnings, sentiment, news order
    """
    factors = []

    technical = KEY_FACTOR_RULES['technical']
    if scores.technical is not None:
        if scores.technical > technical['threshold']:
            factors.append(KeyFactor(
                factor='Technical Analysis',
                impact=Impact.POSITIVE,
                weight=technical['weight'],
                description='Technical indicators show positive momentum',
            ))
        elif scores.technical < -technical['threshold']:
            factors.append(KeyFactor(
                factor='Technical Analysis',
                impact=Impact.NEGATIVE,
                weight=technical['weight'],
                description='Technical indicators show bearish pressure',
            ))

    earnings = KEY_FACTOR_RULES['earnings']
    if earnings_assessment is not None:
        assessment = str(earnings_assessment).upper()
        if assessment in ('STRONG_BEAT', 'BEAT'):
            factors.append(KeyFactor(
                factor='Earnings Performance',
                impact=Impact.POSITIVE,
                weight=earnings['weight'],
                description='Earnings beat expectations',
            ))
        elif assessment in ('MISS', 'STRONG_MISS'):
            factors.append(KeyFactor(
                factor='Earnings Performance',
                impact=Impact.NEGATIVE,
                weight=earnings['weight'],
                description='Earnings disappointed',
            ))

    sentiment = KEY_FACTOR_RULES['sentiment']
    if scores.sentiment is not None:
        if scores.sentiment > sentiment['threshold']:
            factors.append(KeyFactor(
                factor='Market Sentiment',
                impact=Impact.POSITIVE,
                weight=sentiment['weight'],
                description='Market sentiment is optimistic',
            ))
        elif scores.sentiment < -sentiment['threshold']:
            factors.append(KeyFactor(
                factor='Market Sentiment',
                impact=Impact.NEGATIVE,
                weight=sentiment['weight'],
                description='Market sentiment is pessimistic',
            ))

    news = KEY_FACTOR_RULES['news']
    if scores.news is not None:
        if scores.news > news['threshold']:
            factors.append(KeyFactor(
                factor='News Coverage',
                impact=Impact.POSITIVE,
                weight=news['weight'],
                description='Recent news is favorable',
            ))
        elif scores.news < -news['threshold']:
            factors.append(KeyFactor(
                factor='News Coverage',
                impact=Impact.NEGATIVE,
                weight=news['weight'],
                description='Recent news is unfavorable',
            ))

    return factors[:MAX_KEY_FACTORS]


def generate_scenarios(direction: Direction) -> List[Scenario]:
    """Base, bull and bear scenarios; the base case follows the predicted direction."""
    if direction == Direction.BULLISH:
        base_impact = 8.0
    elif direction == Direction.BEARISH:
        base_impact = -8.0
    else:
        base_impact = 0.0

    return [
        Scenario(
            name='Base Case',
            probability=60,
            description='Most likely scenario given current trends',
            price_impact=base_impact,
            time_to_impact='1-3 months',
        ),
        Scenario(
            name='Bull Case',
            probability=25,
            description='Optimistic scenario with positive catalysts',
            price_impact=20.0,
            time_to_impact='3-6 months',
        ),
        Scenario(
            name='Bear Case',
            probability=15,
            description='Pessimistic scenario driven by risk factors',
            price_impact=-15.0,
            time_to_impact='1-2 months',
        ),
    ]


def dedupe(items: Iterable[str], limit: int) -> List[str]:
    """Drop repeated entries keeping first occurrences, then truncate."""
    return list(dict.fromkeys(items))[:limit]


def identify_risks(key_factors: List[KeyFactor], scenarios: List[Scenario]) -> List[str]:
    risks = list(BASE_RISKS)
    risks += [f"Risk in: {f.factor}" for f in key_factors if f.impact == Impact.NEGATIVE]
    risks += [f"Risk scenario: {s.name}" for s in scenarios if s.price_impact < 0]
    return dedupe(risks, MAX_RISKS)


def identify_catalysts(key_factors: List[KeyFactor], scenarios: List[Scenario]) -> List[str]:
    catalysts = list(BASE_CATALYSTS)
    catalysts += [f"Catalyst: {f.factor}" for f in key_factors if f.impact == Impact.POSITIVE]
    catalysts += [f"Opportunity: {s.name}" for s in scenarios if s.price_impact > 0]
    return dedupe(catalysts, MAX_CATALYSTS)
