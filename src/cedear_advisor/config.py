"""Configuration settings for the CEDEAR Trend Advisor."""

from pathlib import Path

# Directory paths
DATA_DIR = Path("data")
INDICATOR_STORE_PATH = DATA_DIR / "technical_indicators.parquet"
WATCHLIST_PATH = DATA_DIR / "watchlist.txt"
LOG_FILE = Path("logs") / "cedear_advisor.log"

# Price history
LOOKBACK_DAYS = 200
REQUIRED_COLUMNS = ["open", "high", "low", "close", "volume"]
CEDEAR_SUFFIX = ".BA"  # Buenos Aires listing on Yahoo Finance

# Indicator parameters
MIN_BARS = 26  # Longest EMA window, below this a symbol is skipped
RSI_PERIOD = 14
RSI_OVERSOLD = 30
RSI_OVERBOUGHT = 70
RSI_LOSS_FLOOR = 1e-10
SMA_WINDOWS = (20, 50, 200)
EMA_FAST = 12
EMA_SLOW = 26
EMA_SPREAD_THRESHOLD = 0.5  # percent
MACD_SIGNAL_FACTOR = 0.9
MACD_SIGNAL_PERIOD = 9
EXTREMES_WINDOW = 365
EXTREMES_NEAR_LOW_PCT = 15
EXTREMES_NEAR_HIGH_PCT = 5

# SMA cascade strengths
SMA_FULL_ALIGNMENT_STRENGTH = 85
SMA_PARTIAL_ALIGNMENT_STRENGTH = 60
SMA_PRICE_ONLY_STRENGTH = 30

# Factor weights for the overall score (must sum to 1)
FACTOR_WEIGHTS = {
    'technical': 0.30,
    'fundamental': 0.25,
    'sentiment': 0.25,
    'news': 0.20,
}

# Earnings assessment deltas
EARNINGS_DELTAS = {
    'STRONG_BEAT': 50,
    'BEAT': 30,
    'MIXED': 0,
    'MISS': -30,
    'STRONG_MISS': -50,
}
EARNINGS_STREAK_LENGTH = 3
EARNINGS_STREAK_DELTA = 20
MOMENTUM_CAP = 30
NEWS_SCALE = 0.8

# Technical score components
TECHNICAL_RSI_DELTA = 40
TECHNICAL_MACD_CAP = 30
TECHNICAL_SMA_CAP = 25

# Prediction thresholds
DIRECTION_THRESHOLD = 15
STRENGTH_MODERATE = 25
STRENGTH_STRONG = 50
MAX_CONFIDENCE = 95
PROBABILITY_SCALE = 0.8

# Key factor thresholds and weights, per source
KEY_FACTOR_RULES = {
    'technical': {'threshold': 20, 'weight': 0.30},
    'earnings': {'threshold': None, 'weight': 0.25},
    'sentiment': {'threshold': 25, 'weight': 0.20},
    'news': {'threshold': 25, 'weight': 0.15},
}
MAX_KEY_FACTORS = 5
MAX_RISKS = 5
MAX_CATALYSTS = 5
MAX_RECOMMENDATIONS = 8
RECOMMENDATION_CONFIDENCE = 70
LOW_CONFIDENCE = 50

# Lookback in days for each prediction timeframe
TIMEFRAME_DAYS = {
    '1W': 7,
    '1M': 30,
    '3M': 90,
    '6M': 180,
    '1Y': 365,
}
PORTFOLIO_TIMEFRAME = '3M'

# Caching, retention and pacing
CACHE_PREFIX = 'trend_prediction'
DEFAULT_CACHE_TTL_MINUTES = 30
CACHE_MAX_ENTRIES = 1000
RETENTION_DAYS = 90
BATCH_SIZE = 3
BATCH_PAUSE_SECONDS = 1.0
INSTRUMENT_PACING_SECONDS = 0.1
PORTFOLIO_BULLISH_RATIO = 0.6

# Deep analysis (LLM)
DEEP_ANALYSIS_MODEL = "claude-3-5-sonnet-20241022"
DEEP_ANALYSIS_MAX_TOKENS = 2048
