"""Optional LLM commentary on a trend prediction."""

import asyncio
import json
import logging
import os
import re
from typing import Any, Dict, List, Optional, Protocol

import anthropic

from cedear_advisor.config import DEEP_ANALYSIS_MAX_TOKENS, DEEP_ANALYSIS_MODEL
from cedear_advisor.exceptions import DeepAnalysisError
from cedear_advisor.models import DeepAnalysis, FactorScores, KeyFactor, Prediction, Scenario

logger = logging.getLogger(__name__)

UNAVAILABLE = DeepAnalysis(reasoning="Deep analysis unavailable", confidence=50)


class DeepAnalyzer(Protocol):
    async def analyze(self, symbol: str, timeframe: str, context: Dict[str, Any]) -> DeepAnalysis:
        ...


def build_trend_prompt(
    symbol: str,
    timeframe: str,
    prediction: Prediction,
    scores: FactorScores,
    overall: float,
    key_factors: List[KeyFactor],
    scenarios: List[Scenario],
) -> str:
    """Build the prompt asking for a JSON review of a prediction."""

    def fmt(score: Optional[float]) -> str:
        return "n/a" if score is None else f"{score:.1f}"

    factor_lines = [f"- {f.factor}: {f.impact.value} ({f.description})" for f in key_factors]
    scenario_lines = [f"- {s.name} ({s.probability}%): {s.description}" for s in scenarios]

    lines = [
        f"Review the {timeframe} trend prediction for {symbol}:",
        "",
        "CURRENT PREDICTION:",
        f"- Direction: {prediction.direction.value}",
        f"- Confidence: {prediction.confidence}%",
        f"- Strength: {prediction.strength.value}",
        "",
        "COMPONENT SCORES:",
        f"- Technical: {fmt(scores.technical)}",
        f"- Fundamental: {fmt(scores.fundamental)}",
        f"- Sentiment: {fmt(scores.sentiment)}",
        f"- News: {fmt(scores.news)}",
        f"- Overall: {overall:.1f}",
        "",
        "KEY FACTORS:",
        *(factor_lines or ["- none"]),
        "",
        "SCENARIOS:",
        *(scenario_lines or ["- none"]),
        "",
        "Please provide:",
        "1. REASONING: a detailed assessment of the prediction (2-3 sentences)",
        "2. KEY_INSIGHTS: the 3-5 most important insights",
        "3. MONITORING_POINTS: metrics or events to watch closely",
        "4. CONFIDENCE: your confidence in this prediction (0-100)",
        "",
        "Consider macro context, seasonality and upcoming events.",
        "",
        "Respond in JSON format:",
        "{",
        '  "reasoning": "Detailed assessment...",',
        '  "keyInsights": ["insight1", "insight2", "insight3"],',
        '  "monitoringPoints": ["point1", "point2", "point3"],',
        '  "confidence": 85',
        "}",
    ]
    return "\n".join(lines)


def parse_trend_response(text: Optional[str]) -> DeepAnalysis:
    """Parse the model's JSON answer, falling back to a neutral placeholder.

    The JSON object may be wrapped in prose or a fenced code block. Missing
    fields take defaults and a missing confidence counts as 70.
    """
    if not text:
        return UNAVAILABLE

    match = re.search(r"\{.*\}", text, re.DOTALL)
    if not match:
        logger.warning("Deep analysis response contained no JSON object")
        return UNAVAILABLE

    try:
        result = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning(f"Could not parse deep analysis response: {e}")
        return UNAVAILABLE
    if not isinstance(result, dict):
        return UNAVAILABLE

    confidence = result.get('confidence') or 70
    try:
        confidence = int(max(0, min(100, float(confidence))))
    except (TypeError, ValueError):
        confidence = 70

    return DeepAnalysis(
        reasoning=result.get('reasoning') or "Analysis not available",
        key_insights=[str(item) for item in result.get('keyInsights') or []],
        monitoring_points=[str(item) for item in result.get('monitoringPoints') or []],
        confidence=confidence,
    )


class AnthropicDeepAnalyzer:
    """DeepAnalyzer backed by the Anthropic Messages API.

    Reads ANTHROPIC_API_KEY from the environment unless a client is given.
    """

    def __init__(
        self,
        client: Optional[Any] = None,
        model: str = DEEP_ANALYSIS_MODEL,
        max_tokens: int = DEEP_ANALYSIS_MAX_TOKENS,
    ):
        if client is None:
            api_key = os.environ.get("ANTHROPIC_API_KEY")
            if not api_key:
                raise DeepAnalysisError("ANTHROPIC_API_KEY environment variable is required for deep analysis")
            client = anthropic.Anthropic(api_key=api_key)
        self._client = client
        self.model = model
        self.max_tokens = max_tokens

    def _generate(self, prompt: str) -> str:
        try:
            response = self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
            return response.content[0].text
        except Exception as e:
            raise DeepAnalysisError(f"Anthropic generation failed: {e}") from e

    async def analyze(self, symbol: str, timeframe: str, context: Dict[str, Any]) -> DeepAnalysis:
        """Ask the model to review a prediction.

        Args:
            symbol: Instrument symbol
            timeframe: Prediction timeframe, e.g. '1M'
            context: Keyword arguments for build_trend_prompt besides symbol and timeframe

        Returns:
            Parsed analysis, or the neutral placeholder when the answer is unusable
        """
        prompt = build_trend_prompt(symbol, timeframe, **context)
        text = await asyncio.to_thread(self._generate, prompt)
        return parse_trend_response(text)
