"""Bar (OHLCV) data model and timeframes."""

from enum import Enum

from pydantic import BaseModel, Field


class Timeframe(str, Enum):
    """Bar durations the screener works with."""

    M15 = "15m"
    M30 = "30m"
    H4 = "4h"

    @property
    def milliseconds(self) -> int:
        """Bar duration in milliseconds."""
        return _DURATIONS_MS[self]


_DURATIONS_MS = {
    Timeframe.M15: 15 * 60 * 1000,
    Timeframe.M30: 30 * 60 * 1000,
    Timeframe.H4: 4 * 60 * 60 * 1000,
}


class Bar(BaseModel):
    """Represents a single OHLCV bar."""

    timestamp: int = Field(..., ge=0, description="Bar open time, epoch milliseconds")
    open: float = Field(..., ge=0, description="Opening price")
    high: float = Field(..., ge=0, description="High price")
    low: float = Field(..., ge=0, description="Low price")
    close: float = Field(..., ge=0, description="Closing price")
    volume: float = Field(..., ge=0, description="Traded volume")

    model_config = {"frozen": True}
