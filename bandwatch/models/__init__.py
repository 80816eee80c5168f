"""Data models for bandwatch."""

from bandwatch.models.bar import Bar, Timeframe
from bandwatch.models.open_interest import OpenInterestSample
from bandwatch.models.signal import BandSnapshot, CheckOutcome, ConditionResult, Signal

__all__ = [
    "Bar",
    "Timeframe",
    "OpenInterestSample",
    "BandSnapshot",
    "CheckOutcome",
    "ConditionResult",
    "Signal",
]
