"""Technical indicators module."""

from bandwatch.indicators.technical import (
    bollinger_snapshot,
    calculate_bollinger_bands,
    calculate_sma,
    rolling_band,
)

__all__ = [
    "bollinger_snapshot",
    "calculate_bollinger_bands",
    "calculate_sma",
    "rolling_band",
]
