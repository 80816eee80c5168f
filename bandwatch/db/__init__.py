"""In-memory series storage for bandwatch."""

from bandwatch.db.series import CandleSeries, OpenInterestSeries
from bandwatch.db.store import InstrumentState, SeriesStore

__all__ = [
    "CandleSeries",
    "OpenInterestSeries",
    "InstrumentState",
    "SeriesStore",
]
