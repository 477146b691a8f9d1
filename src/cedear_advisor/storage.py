"""Storage for computed technical indicators."""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

import pandas as pd

from cedear_advisor.analysis import to_indicator_results
from cedear_advisor.config import INDICATOR_STORE_PATH, RETENTION_DAYS
from cedear_advisor.models import CalculatedIndicatorSet, IndicatorKind, IndicatorResult, Signal

logger = logging.getLogger(__name__)

STORE_COLUMNS = ['symbol', 'kind', 'period', 'primary_value', 'signal', 'strength', 'metadata', 'timestamp']


class IndicatorStore(Protocol):
    """Read/write gateway for indicator results, keyed by (symbol, kind, timestamp)."""

    async def save_indicators(self, indicators: CalculatedIndicatorSet) -> int:
        ...

    async def get_latest_indicators(self, symbol: str) -> List[IndicatorResult]:
        ...

    async def get_active_signals(self, signals: Sequence[Signal] = (Signal.BUY, Signal.SELL)) -> List[IndicatorResult]:
        ...

    async def delete_older_than(self, days_to_keep: int = RETENTION_DAYS) -> int:
        ...

    async def get_stats(self) -> Dict:
        ...


def latest_by(results: Iterable[IndicatorResult], with_symbol: bool = False) -> List[IndicatorResult]:
    """Most recent result per kind (or per symbol and kind), newest first."""
    latest: Dict[tuple, IndicatorResult] = {}
    for result in results:
        key = (result.symbol, result.kind) if with_symbol else (result.kind,)
        if key not in latest or result.timestamp > latest[key].timestamp:
            latest[key] = result
    return sorted(latest.values(), key=lambda r: r.timestamp, reverse=True)


class BaseIndicatorStore(ABC):
    """Shared query logic; subclasses only load and persist the full result set."""

    @abstractmethod
    def _load(self) -> Dict[tuple, IndicatorResult]:
        pass

    @abstractmethod
    def _dump(self, results: Dict[tuple, IndicatorResult]) -> None:
        pass

    async def _read(self) -> Dict[tuple, IndicatorResult]:
        return self._load()

    async def _write(self, results: Dict[tuple, IndicatorResult]) -> None:
        self._dump(results)

    async def save_indicators(self, indicators: CalculatedIndicatorSet) -> int:
        results = await self._read()
        new_results = to_indicator_results(indicators)
        for result in new_results:
            results[result.key] = result
        await self._write(results)
        logger.info(f"Saved {len(new_results)} technical indicators for {indicators.symbol}")
        return len(new_results)

    async def get_latest_indicators(self, symbol: str) -> List[IndicatorResult]:
        symbol = symbol.upper()
        results = await self._read()
        return latest_by(r for r in results.values() if r.symbol == symbol)

    async def get_active_signals(self, signals: Sequence[Signal] = (Signal.BUY, Signal.SELL)) -> List[IndicatorResult]:
        results = await self._read()
        active = [r for r in latest_by(results.values(), with_symbol=True) if r.signal in signals]
        return sorted(active, key=lambda r: (r.strength, r.timestamp), reverse=True)

    async def delete_older_than(self, days_to_keep: int = RETENTION_DAYS, now: Optional[datetime] = None) -> int:
        cutoff = (now or datetime.now()) - timedelta(days=days_to_keep)
        results = await self._read()
        kept = {key: r for key, r in results.items() if r.timestamp >= cutoff}
        deleted = len(results) - len(kept)
        if deleted:
            await self._write(kept)
        logger.info(f"Cleaned up {deleted} old technical indicators")
        return deleted

    async def get_stats(self) -> Dict:
        loaded = await self._read()
        results = list(loaded.values())
        stats = {
            'total_indicators': len(results),
            'by_symbol': {},
            'by_kind': {},
            'by_signal': {},
            'last_update': None,
        }
        for result in results:
            stats['by_symbol'][result.symbol] = stats['by_symbol'].get(result.symbol, 0) + 1
            stats['by_kind'][result.kind.value] = stats['by_kind'].get(result.kind.value, 0) + 1
            stats['by_signal'][result.signal.value] = stats['by_signal'].get(result.signal.value, 0) + 1
            if stats['last_update'] is None or result.timestamp > stats['last_update']:
                stats['last_update'] = result.timestamp
        return stats


class InMemoryIndicatorStore(BaseIndicatorStore):
    """Indicator store held in process memory."""

    def __init__(self):
        self._results: Dict[tuple, IndicatorResult] = {}

    def _load(self) -> Dict[tuple, IndicatorResult]:
        return dict(self._results)

    def _dump(self, results: Dict[tuple, IndicatorResult]) -> None:
        self._results = dict(results)


class ParquetIndicatorStore(BaseIndicatorStore):
    """Indicator store backed by a single Parquet table."""

    def __init__(self, path: Path = INDICATOR_STORE_PATH):
        self.path = Path(path)

    def _load(self) -> Dict[tuple, IndicatorResult]:
        if not self.path.exists():
            return {}
        try:
            df = pd.read_parquet(self.path)
        except Exception as e:
            logger.error(f"Error reading indicator store {self.path}: {e}")
            raise

        results = {}
        for row in df.to_dict(orient='records'):
            period = row.get('period')
            result = IndicatorResult(
                symbol=row['symbol'],
                kind=IndicatorKind(row['kind']),
                period=None if period is None or pd.isna(period) else int(period),
                primary_value=float(row['primary_value']),
                signal=Signal(row['signal']),
                strength=int(row['strength']),
                metadata=json.loads(row['metadata'] or '{}'),
                timestamp=pd.Timestamp(row['timestamp']).to_pydatetime(),
            )
            results[result.key] = result
        return results

    def _dump(self, results: Dict[tuple, IndicatorResult]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        rows = [
            {
                'symbol': r.symbol,
                'kind': r.kind.value,
                'period': r.period,
                'primary_value': r.primary_value,
                'signal': r.signal.value,
                'strength': r.strength,
                'metadata': json.dumps(r.metadata),
                'timestamp': r.timestamp,
            }
            for r in results.values()
        ]
        df = pd.DataFrame(rows, columns=STORE_COLUMNS)
        df['period'] = df['period'].astype('Int64')

        # Write a sibling file and swap it in
        tmp_path = self.path.with_name(self.path.name + '.tmp')
        try:
            df.to_parquet(tmp_path, index=False)
            tmp_path.replace(self.path)
        except Exception as e:
            logger.error(f"Error writing indicator store {self.path}: {e}")
            tmp_path.unlink(missing_ok=True)
            raise

    async def _read(self) -> Dict[tuple, IndicatorResult]:
        return await asyncio.to_thread(self._load)

    async def _write(self, results: Dict[tuple, IndicatorResult]) -> None:
        await asyncio.to_thread(self._dump, results)
