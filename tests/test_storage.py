"""Tests for indicator storage."""

import asyncio
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from cedear_advisor.analysis import calculate_indicators
from cedear_advisor.models import IndicatorKind, Signal
from cedear_advisor.storage import InMemoryIndicatorStore, ParquetIndicatorStore


@pytest.fixture(params=["memory", "parquet"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryIndicatorStore()
    return ParquetIndicatorStore(tmp_path / "indicators" / "technical_indicators.parquet")


@pytest.fixture
def indicator_set(rising_bars):
    return calculate_indicators("AAPL", rising_bars)


def test_save_is_idempotent(store, indicator_set):
    assert asyncio.run(store.save_indicators(indicator_set)) == 5
    assert asyncio.run(store.save_indicators(indicator_set)) == 5

    assert asyncio.run(store.get_stats())["total_indicators"] == 5


def test_latest_indicators(store, rising_bars):
    older = calculate_indicators("AAPL", rising_bars[:-1])
    newer = calculate_indicators("AAPL", rising_bars)
    asyncio.run(store.save_indicators(newer))
    asyncio.run(store.save_indicators(older))

    latest = asyncio.run(store.get_latest_indicators("aapl"))

    assert len(latest) == 5
    assert {r.timestamp for r in latest} == {newer.timestamp}
    assert asyncio.run(store.get_latest_indicators("MSFT")) == []


def test_round_trip_preserves_values(store, indicator_set):
    asyncio.run(store.save_indicators(indicator_set))

    by_kind = {r.kind: r for r in asyncio.run(store.get_latest_indicators("AAPL"))}

    rsi = by_kind[IndicatorKind.RSI]
    assert rsi.period == 14
    assert rsi.primary_value == pytest.approx(indicator_set.rsi.value)
    assert rsi.signal == indicator_set.rsi.signal
    assert by_kind[IndicatorKind.SMA].period is None
    assert by_kind[IndicatorKind.SMA].metadata["sma50"] == pytest.approx(indicator_set.sma.sma50)
    assert by_kind[IndicatorKind.MACD].metadata["macd_signal"] == pytest.approx(indicator_set.macd.signal_line)
    assert by_kind[IndicatorKind.EXTREMES].timestamp == indicator_set.timestamp


def test_active_signals(store, indicator_set, flat_bars):
    asyncio.run(store.save_indicators(indicator_set))
    asyncio.run(store.save_indicators(calculate_indicators("KO", flat_bars)))

    active = asyncio.run(store.get_active_signals())

    assert all(r.signal in (Signal.BUY, Signal.SELL) for r in active)
    strengths = [r.strength for r in active]
    assert strengths == sorted(strengths, reverse=True)
    assert (("AAPL", IndicatorKind.SMA) in {(r.symbol, r.kind) for r in active})
    assert ("KO", IndicatorKind.SMA) not in {(r.symbol, r.kind) for r in active}

    sells = asyncio.run(store.get_active_signals([Signal.SELL]))
    assert {r.signal for r in sells} == {Signal.SELL}


def test_delete_older_than(store, rising_bars):
    asyncio.run(store.save_indicators(calculate_indicators("AAPL", rising_bars, as_of=datetime(2024, 1, 1))))
    asyncio.run(store.save_indicators(calculate_indicators("AAPL", rising_bars, as_of=datetime(2024, 6, 1))))

    deleted = asyncio.run(store.delete_older_than(90, now=datetime(2024, 6, 10)))

    assert deleted == 5
    remaining = asyncio.run(store.get_latest_indicators("AAPL"))
    assert {r.timestamp for r in remaining} == {datetime(2024, 6, 1)}


def test_stats(store, indicator_set):
    asyncio.run(store.save_indicators(indicator_set))

    stats = asyncio.run(store.get_stats())

    assert stats["by_symbol"] == {"AAPL": 5}
    assert stats["by_kind"]["RSI"] == 1
    assert sum(stats["by_signal"].values()) == 5
    assert stats["last_update"] == indicator_set.timestamp


def test_empty_parquet_store(tmp_path):
    store = ParquetIndicatorStore(tmp_path / "missing.parquet")

    assert asyncio.run(store.get_latest_indicators("AAPL")) == []
    assert asyncio.run(store.delete_older_than(30)) == 0
    assert not (tmp_path / "missing.parquet").exists()


def test_failed_parquet_write_keeps_previous_table(tmp_path, indicator_set, flat_bars):
    path = tmp_path / "indicators.parquet"
    store = ParquetIndicatorStore(path)
    asyncio.run(store.save_indicators(indicator_set))

    def partial_write(self, target, **kwargs):
        Path(target).write_bytes(b"PAR1")
        raise OSError("disk full")

    with patch("pandas.DataFrame.to_parquet", partial_write):
        with pytest.raises(OSError):
            asyncio.run(store.save_indicators(calculate_indicators("MSFT", flat_bars)))

    assert asyncio.run(store.get_stats())["total_indicators"] == 5
    assert list(tmp_path.iterdir()) == [path]
