"""External data sources and the interfaces they implement."""

from bandwatch.sources.base import (
    AlertSink,
    MarketDataSource,
    OpenInterestSource,
    StaticUniverse,
    UniverseProvider,
)

__all__ = [
    "AlertSink",
    "MarketDataSource",
    "OpenInterestSource",
    "StaticUniverse",
    "UniverseProvider",
]
