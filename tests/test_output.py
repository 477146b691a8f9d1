"""Tests for report generation."""

import json

from cedear_advisor.analysis import calculate_indicators
from cedear_advisor.models import (
    DeepAnalysis,
    Direction,
    FactorScores,
    PortfolioRecommendation,
    PortfolioTrend,
    PortfolioTrendAnalysis,
    TrendAnalysis,
    TrendPrediction,
)
from cedear_advisor.output import (
    generate_indicator_summary,
    generate_portfolio_summary,
    generate_prediction_summary,
    save_json_report,
)
from cedear_advisor.prediction import (
    calculate_prediction,
    generate_scenarios,
    identify_catalysts,
    identify_key_factors,
    identify_risks,
)


def build_prediction(deep_analysis=None):
    scores = FactorScores(technical=-40.0, news=10.0)
    prediction = calculate_prediction(scores, -16.0)
    key_factors = identify_key_factors(scores)
    scenarios = generate_scenarios(prediction.direction)
    return TrendPrediction(
        symbol="XOM",
        timeframe="1M",
        prediction=prediction,
        analysis=TrendAnalysis(
            factor_scores=scores,
            overall_score=-16.0,
            key_factors=key_factors,
            risks=identify_risks(key_factors, scenarios),
            catalysts=identify_catalysts(key_factors, scenarios),
        ),
        scenarios=scenarios,
        last_updated="2024-07-01T10:00:00",
        deep_analysis=deep_analysis,
    )


def test_indicator_summary(rising_bars):
    summary = generate_indicator_summary(calculate_indicators("AAPL", rising_bars))

    assert summary.startswith("## AAPL")
    assert "| RSI (14) | 100.00 |" in summary
    assert "SELL" in summary
    assert summary.count("\n|") == 7


def test_prediction_summary():
    summary = generate_prediction_summary(build_prediction())

    assert "## XOM (1M)" in summary
    assert Direction.BEARISH.value in summary
    assert "- Fundamental: n/a" in summary
    assert "(-) Technical Analysis" in summary
    assert "Base Case (60%): -8%" in summary
    assert "Deep Analysis" not in summary


def test_prediction_summary_with_deep_analysis():
    deep = DeepAnalysis(reasoning="Energy prices are softening.", key_insights=["Watch OPEC"])

    summary = generate_prediction_summary(build_prediction(deep))

    assert "### Deep Analysis" in summary
    assert "- Watch OPEC" in summary


def test_portfolio_summary():
    analysis = PortfolioTrendAnalysis(
        overall_trend=PortfolioTrend.MIXED,
        confidence=62,
        bullish_symbols=["AAPL"],
        bearish_symbols=["XOM"],
        recommended_actions=[PortfolioRecommendation(action="ADD", symbol="AAPL", reason="Uptrend", urgency="HIGH")],
        failed_symbols=["GONE"],
    )

    summary = generate_portfolio_summary(analysis)

    assert "**Overall:** MIXED (62% confidence)" in summary
    assert "- Neutral: -" in summary
    assert "- Failed: GONE" in summary
    assert "**ADD AAPL** [HIGH]: Uptrend" in summary


def test_save_json_report(tmp_path):
    output = tmp_path / "reports" / "xom.json"

    save_json_report(build_prediction(), output)

    data = json.loads(output.read_text())
    assert data["prediction"]["direction"] == "BEARISH"
    assert data["analysis"]["factor_scores"]["fundamental"] is None


def test_save_json_report_dict(tmp_path):
    output = tmp_path / "plain.json"
    save_json_report({"a": 1}, output)
    assert json.loads(output.read_text()) == {"a": 1}
