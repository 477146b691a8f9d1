"""Markdown summaries and JSON reports."""

import json
import logging
from pathlib import Path
from typing import Dict, Union

from pydantic import BaseModel

from cedear_advisor.models import (
    CalculatedIndicatorSet,
    Direction,
    Impact,
    PortfolioTrendAnalysis,
    Signal,
    TrendPrediction,
)

logger = logging.getLogger(__name__)

SIGNAL_ICONS = {Signal.BUY: "📈", Signal.SELL: "❗", Signal.HOLD: ""}
DIRECTION_ICONS = {Direction.BULLISH: "📈", Direction.BEARISH: "📉", Direction.SIDEWAYS: "➡️"}


def _fmt(value, digits: int = 1) -> str:
    return "n/a" if value is None else f"{value:.{digits}f}"


def generate_indicator_summary(indicators: CalculatedIndicatorSet) -> str:
    """Markdown table of one indicator set."""
    rsi, sma, ema, macd, extremes = (
        indicators.rsi, indicators.sma, indicators.ema, indicators.macd, indicators.extremes
    )
    rows = [
        ("RSI (14)", f"{rsi.value:.2f}", rsi.signal, rsi.strength),
        ("SMA 20/50/200", f"{sma.sma20:.2f} / {sma.sma50:.2f} / {sma.sma200:.2f}", sma.signal, sma.strength),
        ("EMA 12/26", f"{ema.ema12:.2f} / {ema.ema26:.2f}", ema.signal, ema.strength),
        (
            "MACD",
            f"line {macd.line:.3f}, signal {macd.signal_line:.3f}, hist {macd.histogram:.3f}",
            macd.signal,
            macd.strength,
        ),
        (
            "52w range",
            f"{extremes.year_low:.2f} - {extremes.year_high:.2f} "
            f"({extremes.distance_from_low:.1f}% above low, {extremes.distance_from_high:.1f}% below high)",
            extremes.signal,
            extremes.strength,
        ),
    ]

    lines = [
        f"## {indicators.symbol}",
        f"As of {indicators.timestamp:%Y-%m-%d}",
        "",
        "| Indicator | Value | Signal | Strength |",
        "|---|---|---|---|",
    ]
    for name, value, signal, strength in rows:
        lines.append(f"| {name} | {value} | {SIGNAL_ICONS[signal]} {signal.value} | {strength} |")
    return "\n".join(lines) + "\n"


def generate_prediction_summary(result: TrendPrediction) -> str:
    pred = result.prediction
    scores = result.analysis.factor_scores
    lines = [
        f"## {result.symbol} ({result.timeframe})",
        f"**Trend:** {DIRECTION_ICONS[pred.direction]} {pred.direction.value} "
        f"({pred.strength.value}, {pred.confidence}% confidence)",
        f"**Probabilities:** bullish {pred.probability.bullish}% | "
        f"bearish {pred.probability.bearish}% | sideways {pred.probability.sideways}%",
        "",
        "### Scores",
        f"- Technical: {_fmt(scores.technical)}",
        f"- Fundamental: {_fmt(scores.fundamental)}",
        f"- Sentiment: {_fmt(scores.sentiment)}",
        f"- News: {_fmt(scores.news)}",
        f"- **Overall: {result.analysis.overall_score:.1f}**",
    ]

    if result.analysis.key_factors:
        lines += ["", "### Key Factors"]
        for factor in result.analysis.key_factors:
            sign = "+" if factor.impact == Impact.POSITIVE else ("-" if factor.impact == Impact.NEGATIVE else "=")
            lines.append(f"- ({sign}) {factor.factor}: {factor.description}")

    if result.scenarios:
        lines += ["", "### Scenarios"]
        for scenario in result.scenarios:
            lines.append(
                f"- {scenario.name} ({scenario.probability}%): {scenario.price_impact:+.0f}% "
                f"in {scenario.time_to_impact}"
            )

    lines += ["", "### Risks"] + [f"- {risk}" for risk in result.analysis.risks]
    lines += ["", "### Catalysts"] + [f"- {c}" for c in result.analysis.catalysts]

    if result.deep_analysis is not None:
        lines += ["", "### Deep Analysis", result.deep_analysis.reasoning]
        lines += [f"- {insight}" for insight in result.deep_analysis.key_insights]

    return "\n".join(lines) + "\n"


def generate_portfolio_summary(analysis: PortfolioTrendAnalysis) -> str:
    lines = [
        "# Portfolio Trend",
        f"**Overall:** {analysis.overall_trend.value} ({analysis.confidence}% confidence)",
        f"- Bullish: {', '.join(analysis.bullish_symbols) or '-'}",
        f"- Bearish: {', '.join(analysis.bearish_symbols) or '-'}",
        f"- Neutral: {', '.join(analysis.neutral_symbols) or '-'}",
    ]
    if analysis.failed_symbols:
        lines.append(f"- Failed: {', '.join(analysis.failed_symbols)}")

    if analysis.key_themes:
        lines += ["", "## Key Themes"] + [f"- {theme}" for theme in analysis.key_themes]

    if analysis.recommended_actions:
        lines += ["", "## Recommended Actions"]
        for rec in analysis.recommended_actions:
            lines.append(f"- **{rec.action} {rec.symbol}** [{rec.urgency}]: {rec.reason}")

    lines += ["", "## Risks"] + [f"- {risk}" for risk in analysis.risks]
    lines += ["", "## Opportunities"] + [f"- {o}" for o in analysis.opportunities]
    return "\n".join(lines) + "\n"


def save_json_report(data: Union[BaseModel, Dict], output_path: Path) -> None:
    """Save a model or dict to a JSON file."""
    if isinstance(data, BaseModel):
        data = data.model_dump(mode='json')
    try:
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w') as f:
            json.dump(data, f, indent=2, default=str)
    except OSError as e:
        logger.error(f"Error saving JSON report to {output_path}: {e}")
        raise
