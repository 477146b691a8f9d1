"""Data models for indicators, factor scores and trend predictions."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from cedear_advisor.config import DEFAULT_CACHE_TTL_MINUTES


class Signal(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class IndicatorKind(str, Enum):
    RSI = "RSI"
    SMA = "SMA"
    EMA = "EMA"
    MACD = "MACD"
    EXTREMES = "EXTREMES"


class Direction(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    SIDEWAYS = "SIDEWAYS"


class StrengthClass(str, Enum):
    WEAK = "WEAK"
    MODERATE = "MODERATE"
    STRONG = "STRONG"


class Impact(str, Enum):
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"


class PortfolioTrend(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    MIXED = "MIXED"


class PredictionStage(str, Enum):
    """States a single prediction request moves through."""

    COLLECTING = "COLLECTING"
    SCORING = "SCORING"
    PREDICTING = "PREDICTING"
    CACHING = "CACHING"
    DONE = "DONE"
    ERROR = "ERROR"


class PriceBar(BaseModel):
    """One daily OHLCV bar."""

    date: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class IndicatorResult(BaseModel):
    """A persisted indicator reading, superseded by newer timestamps."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    kind: IndicatorKind
    primary_value: float
    signal: Signal
    strength: int = Field(ge=0, le=100)
    metadata: Dict[str, float] = Field(default_factory=dict)
    timestamp: datetime
    period: Optional[int] = None

    @property
    def key(self):
        return (self.symbol, self.kind, self.timestamp)


class RSIReading(BaseModel):
    value: float
    signal: Signal
    strength: int


class SMABundle(BaseModel):
    sma20: float
    sma50: float
    sma200: float
    signal: Signal
    strength: int


class EMABundle(BaseModel):
    ema12: float
    ema26: float
    signal: Signal
    strength: int


class MACDBundle(BaseModel):
    line: float
    signal_line: float
    histogram: float
    signal: Signal
    strength: int


class ExtremesBundle(BaseModel):
    year_high: float
    year_low: float
    current: float
    distance_from_high: float
    distance_from_low: float
    signal: Signal
    strength: int


class CalculatedIndicatorSet(BaseModel):
    """All indicators for one symbol at one point in time."""

    symbol: str
    timestamp: datetime
    rsi: RSIReading
    sma: SMABundle
    ema: EMABundle
    macd: MACDBundle
    extremes: ExtremesBundle


class FactorScores(BaseModel):
    """Per-source scores in [-100, 100]; None when the source was unavailable."""

    technical: Optional[float] = None
    fundamental: Optional[float] = None
    sentiment: Optional[float] = None
    news: Optional[float] = None

    def available(self) -> Dict[str, float]:
        return {name: value for name, value in self.model_dump().items() if value is not None}


class KeyFactor(BaseModel):
    factor: str
    impact: Impact
    weight: float
    description: str


class Scenario(BaseModel):
    name: str
    probability: int
    description: str
    price_impact: float
    time_to_impact: str


class Probability(BaseModel):
    bullish: int
    bearish: int
    sideways: int


class Prediction(BaseModel):
    direction: Direction
    confidence: int = Field(ge=0, le=100)
    strength: StrengthClass
    probability: Probability


class TrendAnalysis(BaseModel):
    factor_scores: FactorScores
    overall_score: float
    key_factors: List[KeyFactor] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    catalysts: List[str] = Field(default_factory=list)


class DeepAnalysis(BaseModel):
    reasoning: str
    key_insights: List[str] = Field(default_factory=list)
    monitoring_points: List[str] = Field(default_factory=list)
    confidence: int = 50


class TrendPrediction(BaseModel):
    symbol: str
    timeframe: str
    prediction: Prediction
    analysis: TrendAnalysis
    scenarios: List[Scenario] = Field(default_factory=list)
    last_updated: datetime
    deep_analysis: Optional[DeepAnalysis] = None


class PredictionOptions(BaseModel):
    """Per-request switches for predict_trend."""

    model_config = ConfigDict(frozen=True)

    use_cache: bool = True
    cache_ttl_minutes: float = DEFAULT_CACHE_TTL_MINUTES
    include_scenarios: bool = True
    analyze_with_claude: bool = True
    include_news: bool = True
    include_sentiment: bool = True
    include_earnings: bool = True


class PortfolioRecommendation(BaseModel):
    action: str  # BUY, SELL, HOLD, REDUCE or ADD
    symbol: str
    reason: str
    urgency: str  # HIGH, MEDIUM or LOW


class PortfolioTrendAnalysis(BaseModel):
    overall_trend: PortfolioTrend
    confidence: int
    bullish_symbols: List[str] = Field(default_factory=list)
    bearish_symbols: List[str] = Field(default_factory=list)
    neutral_symbols: List[str] = Field(default_factory=list)
    key_themes: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    opportunities: List[str] = Field(default_factory=list)
    recommended_actions: List[PortfolioRecommendation] = Field(default_factory=list)
    failed_symbols: List[str] = Field(default_factory=list)
