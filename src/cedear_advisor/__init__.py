"""CEDEAR Trend Advisor - technical indicators and trend predictions."""

__version__ = "0.1.0"
