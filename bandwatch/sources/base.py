"""Interfaces to the screener's external collaborators.

Implementations (Binance, CoinGecko, fakes in tests) must inherit from
these classes and implement all abstract methods.
"""

from abc import ABC, abstractmethod

from bandwatch.models import Bar, OpenInterestSample, Signal, Timeframe


class MarketDataSource(ABC):
    """Source of candlestick data."""

    @abstractmethod
    def fetch_candles(self, instrument: str, timeframe: Timeframe, since: int) -> list[Bar]:
        """Fetch bars opened at or after ``since``.

        Args:
            instrument: Instrument identifier.
            timeframe: Bar duration.
            since: Epoch milliseconds.

        Returns:
            Bars in ascending timestamp order.

        Raises:
            NetworkError: On transport failures or timeouts.
            RateLimitedError: If the provider throttled the request.
            NotFoundError: If the instrument is unknown.
        """
        pass


class OpenInterestSource(ABC):
    """Source of open interest readings."""

    @abstractmethod
    def fetch_open_interest(self, instrument: str, since: int) -> list[OpenInterestSample]:
        """Fetch samples taken at or after ``since``, ascending.

        Raises:
            NetworkError: On transport failures or timeouts.
            RateLimitedError: If the provider throttled the request.
            NotFoundError: If the instrument is unknown.
        """
        pass


class UniverseProvider(ABC):
    """Supplies the set of instruments to scan."""

    @abstractmethod
    def current_universe(self) -> set[str]:
        """Return the instrument identifiers to scan.

        Raises:
            DataSourceError: If the universe cannot be determined.
        """
        pass


class StaticUniverse(UniverseProvider):
    """A fixed, configured list of instruments."""

    def __init__(self, instruments: set[str]):
        self._instruments = frozenset(instruments)

    def current_universe(self) -> set[str]:
        return set(self._instruments)


class AlertSink(ABC):
    """Destination for passing signals."""

    @abstractmethod
    def emit(self, signal: Signal) -> None:
        """Deliver one passing signal.

        Raises:
            AlertDeliveryError: If delivery failed.
        """
        pass

    def flush(self) -> None:
        """Deliver anything buffered by ``emit``; called once per cycle."""
        pass

    def heartbeat(self, cycles: int) -> None:
        """Report that the screener is alive after ``cycles`` quiet cycles."""
        pass
