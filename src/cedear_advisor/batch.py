"""Batch calculation of technical indicators for the active watchlist."""

import logging
import time
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from cedear_advisor.analysis import calculate_indicators
from cedear_advisor.config import EXTREMES_WINDOW, INSTRUMENT_PACING_SECONDS, RETENTION_DAYS
from cedear_advisor.data import InstrumentSource, PriceHistoryProvider
from cedear_advisor.ratelimit import RateLimiter
from cedear_advisor.storage import IndicatorStore

logger = logging.getLogger(__name__)


class BatchRunStats(BaseModel):
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    duration_seconds: float = 0.0
    finished_at: Optional[datetime] = None


class BatchIndicatorRunner:
    """Computes and stores the indicator set of every active instrument."""

    def __init__(
        self,
        price_provider: PriceHistoryProvider,
        store: IndicatorStore,
        instruments: InstrumentSource,
        rate_limiter: Optional[RateLimiter] = None,
        history_days: int = EXTREMES_WINDOW,
        macd_signal_method: str = "approx",
    ):
        self.price_provider = price_provider
        self.store = store
        self.instruments = instruments
        self.rate_limiter = rate_limiter or RateLimiter(INSTRUMENT_PACING_SECONDS)
        self.history_days = history_days
        self.macd_signal_method = macd_signal_method
        self.is_running = False
        self.last_run: Optional[BatchRunStats] = None

    async def run_symbol(self, symbol: str) -> bool:
        """Calculate and store indicators for one symbol.

        Returns:
            True when indicators were stored, False when history was insufficient
        """
        prices = await self.price_provider.get_price_history(symbol, self.history_days)
        indicators = calculate_indicators(symbol, prices, macd_signal_method=self.macd_signal_method)
        if indicators is None:
            return False
        await self.store.save_indicators(indicators)
        return True

    async def run_all(self) -> int:
        """Process every active instrument, pacing calls to the price provider.

        A failing symbol is logged and skipped, never aborting the batch.

        Returns:
            Number of symbols whose indicators were stored
        """
        if self.is_running:
            logger.warning("Technical analysis batch already running, skipping")
            return 0

        self.is_running = True
        started = time.monotonic()
        stats = BatchRunStats()
        try:
            symbols = await self.instruments.get_active_symbols()
            logger.info(f"Starting technical analysis for {len(symbols)} instruments")

            for symbol in symbols:
                await self.rate_limiter.acquire()
                try:
                    if await self.run_symbol(symbol):
                        stats.processed += 1
                    else:
                        stats.skipped += 1
                except Exception as e:
                    stats.failed += 1
                    logger.error(f"Error calculating indicators for {symbol}: {e}")
        finally:
            self.is_running = False
            stats.duration_seconds = time.monotonic() - started
            stats.finished_at = datetime.now()
            self.last_run = stats

        logger.info(
            f"Technical analysis completed for {stats.processed} instruments "
            f"({stats.skipped} skipped, {stats.failed} failed) in {stats.duration_seconds:.1f}s"
        )
        return stats.processed

    async def cleanup(self, days_to_keep: int = RETENTION_DAYS) -> int:
        """Delete stored indicators older than the retention window."""
        deleted = await self.store.delete_older_than(days_to_keep)
        logger.info(f"Technical indicators cleanup removed {deleted} entries")
        return deleted
