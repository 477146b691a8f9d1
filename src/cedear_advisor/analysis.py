"""Technical indicator calculation and signal generation."""

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Union

import numpy as np
import pandas as pd
import ta

from cedear_advisor.config import (
    EMA_FAST,
    EMA_SLOW,
    EMA_SPREAD_THRESHOLD,
    EXTREMES_NEAR_HIGH_PCT,
    EXTREMES_NEAR_LOW_PCT,
    EXTREMES_WINDOW,
    MACD_SIGNAL_FACTOR,
    MACD_SIGNAL_PERIOD,
    MIN_BARS,
    RSI_LOSS_FLOOR,
    RSI_OVERBOUGHT,
    RSI_OVERSOLD,
    RSI_PERIOD,
    SMA_FULL_ALIGNMENT_STRENGTH,
    SMA_PARTIAL_ALIGNMENT_STRENGTH,
    SMA_PRICE_ONLY_STRENGTH,
    SMA_WINDOWS,
)
from cedear_advisor.data import bars_to_frame, clean_price_frame
from cedear_advisor.exceptions import InsufficientDataError
from cedear_advisor.models import (
    CalculatedIndicatorSet,
    EMABundle,
    ExtremesBundle,
    IndicatorKind,
    IndicatorResult,
    MACDBundle,
    PriceBar,
    RSIReading,
    Signal,
    SMABundle,
)
from cedear_advisor.utils import clamp, is_finite, round_half_up

logger = logging.getLogger(__name__)

PriceInput = Union[pd.DataFrame, Sequence[PriceBar]]


def _strength(value: float) -> int:
    return round_half_up(clamp(value, 0, 100))


def wilder_rsi_series(close: pd.Series, period: int = RSI_PERIOD) -> pd.Series:
    """RSI for every bar, seeded with the simple mean of the first `period` deltas.

    Bars before the seed are NaN. A flat window (no gains, no losses) reads 50.
    """
    values = close.to_numpy(dtype=float)
    rsi = np.full(len(values), np.nan)
    if len(values) < period + 1:
        return pd.Series(rsi, index=close.index, name="rsi")

    deltas = np.diff(values)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    rsi[period] = _rsi_from_averages(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        rsi[i + 1] = _rsi_from_averages(avg_gain, avg_loss)

    return pd.Series(rsi, index=close.index, name="rsi")


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_gain == 0 and avg_loss == 0:
        return 50.0
    if avg_loss == 0:
        avg_loss = RSI_LOSS_FLOOR
    rs = avg_gain / avg_loss
    return float(clamp(100 - (100 / (1 + rs))))


def classify_rsi(rsi: float) -> RSIReading:
    """Oversold/overbought policy; thresholds are inclusive (<= 30 BUY, >= 70 SELL)."""
    if rsi <= RSI_OVERSOLD:
        return RSIReading(value=rsi, signal=Signal.BUY, strength=_strength((RSI_OVERSOLD - rsi) * 3))
    if rsi >= RSI_OVERBOUGHT:
        return RSIReading(value=rsi, signal=Signal.SELL, strength=_strength((rsi - RSI_OVERBOUGHT) * 3))
    return RSIReading(value=rsi, signal=Signal.HOLD, strength=_strength(abs(50 - rsi) / 2))


def calculate_rsi(close: pd.Series, period: int = RSI_PERIOD) -> RSIReading:
    """RSI of the latest bar; neutral (50, HOLD, 0) when history is too short."""
    if len(close) < period + 1:
        return RSIReading(value=50.0, signal=Signal.HOLD, strength=0)
    return classify_rsi(float(wilder_rsi_series(close, period).iloc[-1]))


def single_sma(close: pd.Series, window: int) -> float:
    """Trailing simple mean, or the latest close when history is shorter than the window."""
    if len(close) < window:
        return float(close.iloc[-1])
    return float(ta.trend.sma_indicator(close, window=window).iloc[-1])


def single_ema(close: pd.Series, window: int) -> float:
    """Exponential average seeded with the first close, or the latest close when history is short."""
    if len(close) < window:
        return float(close.iloc[-1])
    return float(ta.trend.ema_indicator(close, window=window, fillna=True).iloc[-1])


def calculate_sma(close: pd.Series) -> SMABundle:
    """SMA 20/50/200 with a tiered alignment cascade."""
    short, medium, long = SMA_WINDOWS
    sma20 = single_sma(close, short)
    sma50 = single_sma(close, medium)
    sma200 = single_sma(close, long)
    price = float(close.iloc[-1])

    signal, strength = Signal.HOLD, 0
    if price > sma20 > sma50 > sma200:
        signal, strength = Signal.BUY, SMA_FULL_ALIGNMENT_STRENGTH
    elif price < sma20 < sma50 < sma200:
        signal, strength = Signal.SELL, SMA_FULL_ALIGNMENT_STRENGTH
    elif price > sma20 > sma50:
        signal, strength = Signal.BUY, SMA_PARTIAL_ALIGNMENT_STRENGTH
    elif price < sma20 < sma50:
        signal, strength = Signal.SELL, SMA_PARTIAL_ALIGNMENT_STRENGTH
    elif price > sma20:
        signal, strength = Signal.BUY, SMA_PRICE_ONLY_STRENGTH
    elif price < sma20:
        signal, strength = Signal.SELL, SMA_PRICE_ONLY_STRENGTH

    return SMABundle(sma20=sma20, sma50=sma50, sma200=sma200, signal=signal, strength=strength)


def calculate_ema(close: pd.Series) -> EMABundle:
    """EMA 12/26 with a signal from their relative spread (percent)."""
    ema12 = single_ema(close, EMA_FAST)
    ema26 = single_ema(close, EMA_SLOW)
    spread = (ema12 - ema26) / ema26 * 100 if ema26 else 0.0

    if spread > EMA_SPREAD_THRESHOLD:
        signal, strength = Signal.BUY, _strength(abs(spread) * 20)
    elif spread < -EMA_SPREAD_THRESHOLD:
        signal, strength = Signal.SELL, _strength(abs(spread) * 20)
    else:
        signal, strength = Signal.HOLD, _strength(abs(spread) * 10)

    return EMABundle(ema12=ema12, ema26=ema26, signal=signal, strength=strength)


def macd_signal_line(close: pd.Series, line: float, method: str = "approx") -> float:
    """Signal line for the MACD.

    "approx" scales the current line by 0.9. "ema" is the 9-period EMA of the
    MACD line series.
    """
    if method == "approx":
        return line * MACD_SIGNAL_FACTOR
    if method == "ema":
        fast = ta.trend.ema_indicator(close, window=EMA_FAST, fillna=True)
        slow = ta.trend.ema_indicator(close, window=EMA_SLOW, fillna=True)
        return float(ta.trend.ema_indicator(fast - slow, window=MACD_SIGNAL_PERIOD, fillna=True).iloc[-1])
    raise ValueError(f"Unknown MACD signal method: {method}")


def calculate_macd(close: pd.Series, signal_method: str = "approx") -> MACDBundle:
    """MACD line, signal line and histogram."""
    line = single_ema(close, EMA_FAST) - single_ema(close, EMA_SLOW)
    signal_line = macd_signal_line(close, line, signal_method)
    histogram = line - signal_line

    if histogram > 0 and line > 0:
        signal, strength = Signal.BUY, _strength(abs(histogram) * 1000)
    elif histogram < 0 and line < 0:
        signal, strength = Signal.SELL, _strength(abs(histogram) * 1000)
    else:
        signal, strength = Signal.HOLD, _strength(abs(histogram) * 500)

    return MACDBundle(line=line, signal_line=signal_line, histogram=histogram, signal=signal, strength=strength)


def calculate_extremes(df: pd.DataFrame, window: int = EXTREMES_WINDOW) -> ExtremesBundle:
    """52-week high/low and the distance of the current price from each."""
    current = float(df["close"].iloc[-1])
    trailing = df.tail(window)
    year_high = float(trailing["high"].max())
    year_low = float(trailing["low"].min())

    if not (is_finite(year_high) and is_finite(year_low)) or year_high <= 0 or year_low <= 0:
        logger.warning("Non-finite yearly extremes, falling back to current price")
        return ExtremesBundle(
            year_high=current,
            year_low=current,
            current=current,
            distance_from_high=0.0,
            distance_from_low=0.0,
            signal=Signal.HOLD,
            strength=0,
        )

    distance_from_high = (year_high - current) / year_high * 100
    distance_from_low = (current - year_low) / year_low * 100

    if distance_from_low < EXTREMES_NEAR_LOW_PCT:
        signal, strength = Signal.BUY, _strength(100 - distance_from_low * 5)
    elif distance_from_high < EXTREMES_NEAR_HIGH_PCT:
        signal, strength = Signal.SELL, _strength(100 - distance_from_high * 10)
    else:
        signal, strength = Signal.HOLD, _strength(min(distance_from_low, distance_from_high) / 2)

    return ExtremesBundle(
        year_high=year_high,
        year_low=year_low,
        current=current,
        distance_from_high=round(distance_from_high, 2),
        distance_from_low=round(distance_from_low, 2),
        signal=signal,
        strength=strength,
    )


def prepare_prices(prices: PriceInput) -> pd.DataFrame:
    """Turn bars or a raw DataFrame into a clean, ascending OHLCV frame."""
    if isinstance(prices, pd.DataFrame):
        df = prices.copy()
        df.columns = [str(c).lower() for c in df.columns]
        if 'date' in df.columns:
            df = df.set_index(pd.to_datetime(df['date'])).drop(columns=['date'])
        return clean_price_frame(df.sort_index())
    return bars_to_frame(prices)


def require_history(symbol: str, df: pd.DataFrame, required: int = MIN_BARS) -> None:
    """Raise InsufficientDataError when fewer than `required` bars are available."""
    if len(df) < required:
        raise InsufficientDataError(symbol, len(df), required)


def calculate_indicators(
    symbol: str,
    prices: PriceInput,
    as_of: Optional[datetime] = None,
    macd_signal_method: str = "approx",
) -> Optional[CalculatedIndicatorSet]:
    """Calculate every indicator for a symbol.

    Args:
        symbol: Instrument symbol
        prices: Daily bars (list of PriceBar or OHLCV DataFrame)
        as_of: Timestamp of the set; defaults to the date of the last bar so that
            identical input always yields identical output
        macd_signal_method: "approx" or "ema", see macd_signal_line

    Returns:
        The indicator set, or None when there is not enough clean history

    Raises:
        ValueError: If the prices carry no dates and no as_of is given
    """
    df = prepare_prices(prices)
    try:
        require_history(symbol, df)
    except InsufficientDataError as e:
        logger.warning(str(e))
        return None

    close = df["close"]
    if as_of is not None:
        timestamp = as_of
    elif isinstance(df.index, pd.DatetimeIndex):
        timestamp = df.index[-1].to_pydatetime()
    else:
        raise ValueError(f"Prices for {symbol} have no dates; pass as_of to timestamp the indicators")

    return CalculatedIndicatorSet(
        symbol=symbol,
        timestamp=timestamp,
        rsi=calculate_rsi(close),
        sma=calculate_sma(close),
        ema=calculate_ema(close),
        macd=calculate_macd(close, macd_signal_method),
        extremes=calculate_extremes(df),
    )


def to_indicator_results(indicators: CalculatedIndicatorSet) -> List[IndicatorResult]:
    """Flatten an indicator set into one storable result per indicator kind."""
    symbol = indicators.symbol.upper()
    timestamp = indicators.timestamp
    results = [
        IndicatorResult(
            symbol=symbol,
            kind=IndicatorKind.RSI,
            period=RSI_PERIOD,
            primary_value=indicators.rsi.value,
            signal=indicators.rsi.signal,
            strength=indicators.rsi.strength,
            metadata={'rsi': indicators.rsi.value},
            timestamp=timestamp,
        ),
        IndicatorResult(
            symbol=symbol,
            kind=IndicatorKind.SMA,
            primary_value=indicators.sma.sma20,
            signal=indicators.sma.signal,
            strength=indicators.sma.strength,
            metadata={
                'sma20': indicators.sma.sma20,
                'sma50': indicators.sma.sma50,
                'sma200': indicators.sma.sma200,
            },
            timestamp=timestamp,
        ),
        IndicatorResult(
            symbol=symbol,
            kind=IndicatorKind.EMA,
            primary_value=indicators.ema.ema12,
            signal=indicators.ema.signal,
            strength=indicators.ema.strength,
            metadata={'ema12': indicators.ema.ema12, 'ema26': indicators.ema.ema26},
            timestamp=timestamp,
        ),
        IndicatorResult(
            symbol=symbol,
            kind=IndicatorKind.MACD,
            primary_value=indicators.macd.line,
            signal=indicators.macd.signal,
            strength=indicators.macd.strength,
            metadata={
                'macd_line': indicators.macd.line,
                'macd_signal': indicators.macd.signal_line,
                'macd_histogram': indicators.macd.histogram,
            },
            timestamp=timestamp,
        ),
    ]

    if indicators.extremes.year_high > 0:
        results.append(IndicatorResult(
            symbol=symbol,
            kind=IndicatorKind.EXTREMES,
            primary_value=indicators.extremes.current,
            signal=indicators.extremes.signal,
            strength=indicators.extremes.strength,
            metadata={
                'year_high': indicators.extremes.year_high,
                'year_low': indicators.extremes.year_low,
                'distance_from_high': indicators.extremes.distance_from_high,
                'distance_from_low': indicators.extremes.distance_from_low,
            },
            timestamp=timestamp,
        ))

    return results


def compute_indicator_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Add per-bar indicator columns to an OHLCV DataFrame for reporting."""
    df = df.copy()
    close = df['close']

    df['rsi'] = wilder_rsi_series(close)
    for window in SMA_WINDOWS:
        df[f'sma_{window}'] = ta.trend.sma_indicator(close, window=window)
    df['ema_12'] = ta.trend.ema_indicator(close, window=EMA_FAST, fillna=True)
    df['ema_26'] = ta.trend.ema_indicator(close, window=EMA_SLOW, fillna=True)
    df['macd'] = df['ema_12'] - df['ema_26']
    df['macd_signal'] = df['macd'] * MACD_SIGNAL_FACTOR
    df['macd_hist'] = df['macd'] - df['macd_signal']

    return df
