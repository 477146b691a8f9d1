"""Utility functions for the CEDEAR advisor."""

import asyncio
import logging
import math
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Awaitable, List, NamedTuple, Optional

from rich.logging import RichHandler

from cedear_advisor.config import LOG_FILE

logger = logging.getLogger(__name__)


def setup_logging(log_level: int = logging.INFO, log_file: Optional[Path] = LOG_FILE) -> None:
    """Set up logging configuration.

    Args:
        log_level: Logging level to use (default: INFO)
        log_file: Rotating log file, or None to log to the terminal only
    """
    handlers = []

    if log_file is not None:
        os.makedirs(Path(log_file).parent, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        handlers.append(file_handler)

    # Terminal handler (RichHandler for pretty output)
    console_handler = RichHandler(rich_tracebacks=True)
    console_handler.setLevel(log_level)
    handlers.append(console_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    """Clamp a value to the closed interval [low, high]."""
    return max(low, min(high, value))


def is_finite(value: Any) -> bool:
    """True for real numbers that are neither NaN nor infinite."""
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def round_half_up(value: float) -> int:
    """Round .5 away from zero instead of to the nearest even integer."""
    return int(math.floor(abs(value) + 0.5)) * (1 if value >= 0 else -1)


class Settled(NamedTuple):
    """Outcome of one awaitable in a settle-all join."""

    name: str
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def settle_all(named: dict) -> dict:
    """Await every awaitable concurrently and never fail fast.

    Args:
        named: Mapping of name to awaitable

    Returns:
        Mapping of name to Settled, one per input, in input order
    """
    names: List[str] = list(named)
    awaitables: List[Awaitable] = [named[name] for name in names]
    outcomes = await asyncio.gather(*awaitables, return_exceptions=True)

    settled = {}
    for name, outcome in zip(names, outcomes):
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
        if isinstance(outcome, BaseException):
            settled[name] = Settled(name, error=outcome)
        else:
            settled[name] = Settled(name, value=outcome)
    return settled
