"""Price history loading and conversion."""

import asyncio
import logging
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional, Protocol

import numpy as np
import pandas as pd
import yfinance as yf

from cedear_advisor.config import CEDEAR_SUFFIX, LOOKBACK_DAYS, REQUIRED_COLUMNS
from cedear_advisor.models import PriceBar

logger = logging.getLogger(__name__)


class PriceHistoryProvider(Protocol):
    """Supplies daily bars for a symbol, ascending by date."""

    async def get_price_history(self, symbol: str, days: int) -> List[PriceBar]:
        ...


class InstrumentSource(Protocol):
    """Supplies the symbols of the active watchlist."""

    async def get_active_symbols(self) -> List[str]:
        ...


def normalize_symbol(symbol: str) -> str:
    """Normalize a watchlist symbol: upper case, no exchange suffix."""
    symbol = symbol.strip().upper()
    if symbol.endswith(CEDEAR_SUFFIX):
        symbol = symbol[: -len(CEDEAR_SUFFIX)]
    return symbol


def to_yahoo_symbol(symbol: str) -> str:
    """Yahoo Finance ticker for a CEDEAR listed in Buenos Aires."""
    # Yahoo uses hyphens for share classes (BRK.B -> BRK-B)
    return f"{normalize_symbol(symbol).replace('.', '-')}{CEDEAR_SUFFIX}"


def bars_to_frame(bars: Iterable[PriceBar]) -> pd.DataFrame:
    """Convert price bars to a DataFrame indexed by date, ascending, non-finite rows dropped."""
    records = [bar.model_dump() for bar in bars]
    if not records:
        return pd.DataFrame(columns=REQUIRED_COLUMNS, index=pd.DatetimeIndex([], name="date"))

    df = pd.DataFrame.from_records(records)
    df["date"] = pd.to_datetime(df["date"])
    df = df.set_index("date").sort_index()
    return clean_price_frame(df)


def clean_price_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Drop rows whose OHLC values are missing or non-finite."""
    price_cols = [col for col in ["open", "high", "low", "close"] if col in df.columns]
    values = df[price_cols].apply(pd.to_numeric, errors="coerce")
    finite = np.isfinite(values.to_numpy(dtype=float)).all(axis=1)
    dropped = int((~finite).sum())
    if dropped:
        logger.warning(f"Dropped {dropped} malformed price rows")
    cleaned = df.loc[finite].copy()
    if "volume" in cleaned.columns:
        cleaned["volume"] = pd.to_numeric(cleaned["volume"], errors="coerce").fillna(0.0)
    return cleaned


def frame_to_bars(df: pd.DataFrame) -> List[PriceBar]:
    """Convert an OHLCV DataFrame (lowercase columns, date index) to price bars."""
    bars = []
    for date, row in df.iterrows():
        bars.append(PriceBar(
            date=pd.Timestamp(date).to_pydatetime(),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
            volume=float(row.get("volume", 0.0) or 0.0),
        ))
    return bars


def standardize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Lowercase columns, flatten yfinance MultiIndex columns and strip timezone info."""
    if isinstance(df.columns, pd.MultiIndex):
        df.columns = [col[0] for col in df.columns.values]
    df.columns = [str(c).lower() for c in df.columns]
    df.index = pd.to_datetime(df.index).tz_localize(None).normalize()
    df.index.name = "date"
    missing_cols = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing_cols:
        raise ValueError(f"Missing required columns: {missing_cols}")
    return df[REQUIRED_COLUMNS]


@lru_cache(maxsize=500)
def get_yf_ticker(ticker: str) -> yf.Ticker:
    """Get a cached Ticker object for the given symbol."""
    return yf.Ticker(ticker)


def download_price_history(symbol: str, days: int = LOOKBACK_DAYS, max_retries: int = 3) -> pd.DataFrame:
    """Download daily bars for a CEDEAR from Yahoo Finance.

    Args:
        symbol: Watchlist symbol (with or without the .BA suffix)
        days: Calendar days of history to request
        max_retries: Download attempts before giving up

    Returns:
        DataFrame with lowercase OHLCV columns, or an empty DataFrame
    """
    ticker = to_yahoo_symbol(symbol)
    end = pd.Timestamp.today().normalize()
    start = end - pd.Timedelta(days=days)

    last_error: Optional[Exception] = None
    for attempt in range(max_retries):
        try:
            logger.info(f"Downloading {ticker} (attempt {attempt + 1}) from {start.date()} to {end.date()}")
            df = get_yf_ticker(ticker).history(start=start, end=end + pd.Timedelta(days=1), auto_adjust=True)
            if len(df) == 0:
                logger.info(f"No data returned for {ticker} from yfinance.")
                return pd.DataFrame(columns=REQUIRED_COLUMNS)
            return clean_price_frame(standardize_columns(df))
        except Exception as e:
            last_error = e
            logger.warning(f"Download of {ticker} failed on attempt {attempt + 1}: {e}")

    raise RuntimeError(f"Failed to download {ticker} after {max_retries} attempts: {last_error}")


class YahooPriceProvider:
    """Price history provider backed by yfinance."""

    def __init__(self, max_retries: int = 3):
        self.max_retries = max_retries

    async def get_price_history(self, symbol: str, days: int) -> List[PriceBar]:
        # yfinance blocks, keep it off the event loop
        df = await asyncio.to_thread(download_price_history, symbol, days, self.max_retries)
        return frame_to_bars(df.tail(days))


class StaticInstrumentSource:
    """A fixed watchlist of active symbols."""

    def __init__(self, symbols: Iterable[str]):
        self.symbols = []
        for symbol in symbols:
            normalized = normalize_symbol(symbol)
            if normalized and normalized not in self.symbols:
                self.symbols.append(normalized)

    async def get_active_symbols(self) -> List[str]:
        return list(self.symbols)


def load_symbols(symbols_input: str) -> List[str]:
    """Load symbols from a file (one per line, # comments) or a comma-separated list."""
    path = Path(symbols_input)
    if path.is_file():
        with open(path) as f:
            raw = [line.split("#")[0].strip() for line in f]
    else:
        raw = symbols_input.split(",")

    symbols = []
    for symbol in raw:
        if symbol.strip():
            normalized = normalize_symbol(symbol)
            if normalized not in symbols:
                symbols.append(normalized)
    return symbols
