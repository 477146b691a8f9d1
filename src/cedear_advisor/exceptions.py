"""Exceptions raised by the advisor."""


class AdvisorError(Exception):
    """Base exception for the CEDEAR advisor."""
    pass


class InsufficientDataError(AdvisorError, ValueError):
    """Raised when a price series is too short for a calculation."""

    def __init__(self, symbol: str, available: int, required: int):
        self.symbol = symbol
        self.available = available
        self.required = required
        super().__init__(
            f"Insufficient price data for {symbol}: {available} bars, need at least {required}"
        )


class UpstreamError(AdvisorError):
    """Raised when a collaborator (prices, news, sentiment, earnings) fails."""

    def __init__(self, source: str, symbol: str, cause: Exception):
        self.source = source
        self.symbol = symbol
        self.cause = cause
        super().__init__(f"{source} failed for {symbol}: {cause}")


class AggregationError(AdvisorError):
    """Raised when scores cannot be combined into a prediction."""

    def __init__(self, message: str, symbol: str = None, timeframe: str = None):
        self.symbol = symbol
        self.timeframe = timeframe
        super().__init__(message)


class DeepAnalysisError(AdvisorError):
    """Raised when the LLM deep analysis cannot be produced."""
    pass
