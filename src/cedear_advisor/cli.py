"""Command-line interface functionality."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markdown import Markdown

from cedear_advisor import __version__
from cedear_advisor.analysis import calculate_indicators, compute_indicator_frame
from cedear_advisor.batch import BatchIndicatorRunner
from cedear_advisor.config import (
    BATCH_SIZE,
    EXTREMES_WINDOW,
    INDICATOR_STORE_PATH,
    RETENTION_DAYS,
    TIMEFRAME_DAYS,
    WATCHLIST_PATH,
)
from cedear_advisor.data import (
    StaticInstrumentSource,
    YahooPriceProvider,
    bars_to_frame,
    load_symbols,
    normalize_symbol,
)
from cedear_advisor.exceptions import AdvisorError
from cedear_advisor.models import PredictionOptions
from cedear_advisor.output import (
    generate_indicator_summary,
    generate_portfolio_summary,
    generate_prediction_summary,
    save_json_report,
)
from cedear_advisor.portfolio import PortfolioOrchestrator
from cedear_advisor.predictor import TrendPredictionService
from cedear_advisor.storage import ParquetIndicatorStore
from cedear_advisor.utils import setup_logging

logger = logging.getLogger("cedear_advisor")
console = Console()

app = typer.Typer(
    name="cedear-advisor",
    help="Technical indicators and multi-factor trend predictions for CEDEARs.",
    add_completion=False,
)

MACD_SIGNAL_HELP = "MACD signal line: 'approx' (0.9 x line) or 'ema' (9-period EMA)"


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]CEDEAR Advisor v{__version__}[/bold blue]")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging."),
):
    """CEDEAR Advisor - technical indicators and trend predictions."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()
    setup_logging(logging.DEBUG if debug else logging.INFO)


def _check_macd_method(method: str) -> str:
    if method not in ("approx", "ema"):
        raise typer.BadParameter("must be 'approx' or 'ema'", param_hint="--macd-signal")
    return method


@app.command()
def indicators(
    symbol: str = typer.Argument(..., help="CEDEAR symbol, e.g. AAPL"),
    days: int = typer.Option(EXTREMES_WINDOW, help="Calendar days of price history to download"),
    save: bool = typer.Option(False, "--save/--no-save", help="Store the indicators in the indicator store"),
    store_path: Path = typer.Option(INDICATOR_STORE_PATH, "--store", help="Parquet indicator store"),
    macd_signal: str = typer.Option("approx", help=MACD_SIGNAL_HELP),
    export: Optional[Path] = typer.Option(None, help="Write per-bar indicator columns to this CSV file"),
):
    """Calculate and print the technical indicators of one symbol."""
    macd_signal = _check_macd_method(macd_signal)
    symbol = normalize_symbol(symbol)

    try:
        prices = asyncio.run(YahooPriceProvider().get_price_history(symbol, days))
    except Exception as e:
        logger.error(f"Error downloading prices for {symbol}: {e}")
        typer.echo(f"Error downloading prices for {symbol}: {e}", err=True)
        raise typer.Exit(1)

    result = calculate_indicators(symbol, prices, macd_signal_method=macd_signal)
    if result is None:
        typer.echo(f"Not enough price history for {symbol}", err=True)
        raise typer.Exit(1)

    console.print(Markdown(generate_indicator_summary(result)))

    if save:
        saved = asyncio.run(ParquetIndicatorStore(store_path).save_indicators(result))
        typer.echo(f"Saved {saved} indicators to {store_path}")

    if export:
        export.parent.mkdir(parents=True, exist_ok=True)
        compute_indicator_frame(bars_to_frame(prices)).to_csv(export)
        typer.echo(f"Indicator history written to {export}")


@app.command()
def run_batch(
    symbols: str = typer.Option(str(WATCHLIST_PATH), help="Comma-separated symbols or path to a watchlist file"),
    store_path: Path = typer.Option(INDICATOR_STORE_PATH, "--store", help="Parquet indicator store"),
    days: int = typer.Option(EXTREMES_WINDOW, help="Calendar days of price history per symbol"),
    macd_signal: str = typer.Option("approx", help=MACD_SIGNAL_HELP),
):
    """Calculate indicators for every watchlist symbol and store them."""
    macd_signal = _check_macd_method(macd_signal)
    if not Path(symbols).is_file() and ("/" in symbols or symbols.endswith(".txt")):
        typer.echo(f"Watchlist file not found: {symbols}", err=True)
        raise typer.Exit(1)
    symbol_list = load_symbols(symbols)
    if not symbol_list:
        typer.echo("No symbols to process", err=True)
        raise typer.Exit(1)

    runner = BatchIndicatorRunner(
        price_provider=YahooPriceProvider(),
        store=ParquetIndicatorStore(store_path),
        instruments=StaticInstrumentSource(symbol_list),
        history_days=days,
        macd_signal_method=macd_signal,
    )
    processed = asyncio.run(runner.run_all())
    stats = runner.last_run
    typer.echo(
        f"Processed {processed} symbols ({stats.skipped} skipped, {stats.failed} failed) "
        f"in {stats.duration_seconds:.1f}s"
    )


@app.command()
def cleanup(
    days: int = typer.Option(RETENTION_DAYS, help="Days of indicators to keep"),
    store_path: Path = typer.Option(INDICATOR_STORE_PATH, "--store", help="Parquet indicator store"),
):
    """Delete stored indicators older than the retention window."""
    deleted = asyncio.run(ParquetIndicatorStore(store_path).delete_older_than(days))
    typer.echo(f"Deleted {deleted} indicators older than {days} days")


def _build_service(store_path: Path) -> TrendPredictionService:
    return TrendPredictionService(
        price_provider=YahooPriceProvider(),
        indicator_store=ParquetIndicatorStore(store_path),
    )


@app.command()
def predict(
    symbol: str = typer.Argument(..., help="CEDEAR symbol, e.g. AAPL"),
    timeframe: str = typer.Option("1M", help=f"One of {', '.join(TIMEFRAME_DAYS)}"),
    store_path: Path = typer.Option(INDICATOR_STORE_PATH, "--store", help="Parquet indicator store"),
    scenarios: bool = typer.Option(True, "--scenarios/--no-scenarios", help="Include price scenarios"),
    output: Optional[Path] = typer.Option(None, help="Also save the prediction as JSON"),
):
    """Predict the trend of one symbol from stored indicators and recent prices."""
    if timeframe not in TIMEFRAME_DAYS:
        raise typer.BadParameter(f"must be one of {', '.join(TIMEFRAME_DAYS)}", param_hint="--timeframe")

    service = _build_service(store_path)
    options = PredictionOptions(include_scenarios=scenarios, analyze_with_claude=False)
    try:
        result = asyncio.run(service.predict_trend(normalize_symbol(symbol), timeframe, options))
    except AdvisorError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    console.print(Markdown(generate_prediction_summary(result)))
    if output:
        save_json_report(result, output)
        typer.echo(f"Prediction saved to {output}")


@app.command()
def portfolio(
    symbols: str = typer.Argument(..., help="Comma-separated symbols or path to a watchlist file"),
    store_path: Path = typer.Option(INDICATOR_STORE_PATH, "--store", help="Parquet indicator store"),
    batch_size: int = typer.Option(BATCH_SIZE, help="Symbols predicted concurrently"),
    output: Optional[Path] = typer.Option(None, help="Also save the analysis as JSON"),
):
    """Aggregate 3-month trend predictions for a set of symbols."""
    symbol_list = load_symbols(symbols)
    if not symbol_list:
        typer.echo("No symbols to analyze", err=True)
        raise typer.Exit(1)

    orchestrator = PortfolioOrchestrator(_build_service(store_path), batch_size=batch_size)
    options = PredictionOptions(analyze_with_claude=False)
    try:
        analysis = asyncio.run(orchestrator.analyze_portfolio_trends(symbol_list, options))
    except AdvisorError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    console.print(Markdown(generate_portfolio_summary(analysis)))
    if output:
        save_json_report(analysis, output)
        typer.echo(f"Portfolio analysis saved to {output}")


if __name__ == "__main__":
    app()
