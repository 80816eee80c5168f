"""In-memory series store owned by the scan orchestrator."""

from typing import Iterator, Optional

from bandwatch.db.series import CandleSeries, OpenInterestSeries
from bandwatch.errors import InsufficientDataError
from bandwatch.models import Timeframe


class InstrumentState:
    """All series held for one instrument.

    Only the instrument's own refresh task writes to these series; the
    evaluator reads them.
    """

    def __init__(
        self,
        instrument: str,
        capacities: dict[Timeframe, int],
        oi_retention_ms: int,
    ):
        self.instrument = instrument
        self.candles: dict[Timeframe, CandleSeries] = {
            tf: CandleSeries(instrument, tf, capacity) for tf, capacity in capacities.items()
        }
        self.open_interest = OpenInterestSeries(instrument, oi_retention_ms)

    def __repr__(self) -> str:
        return f"InstrumentState({self.instrument!r}, timeframes={sorted(t.value for t in self.candles)})"

    def series(self, timeframe: Timeframe) -> CandleSeries:
        """Candle series for a timeframe.

        Raises:
            InsufficientDataError: If the timeframe is not tracked at all.
        """
        try:
            return self.candles[timeframe]
        except KeyError:
            raise InsufficientDataError(1, 0, f"{timeframe.value} bars") from None

    def newest_timestamp(self) -> Optional[int]:
        """Newest bar or sample timestamp across all series."""
        stamps = [s.latest.timestamp for s in self.candles.values() if s.latest is not None]
        if self.open_interest.latest is not None:
            stamps.append(self.open_interest.latest.timestamp)
        return max(stamps) if stamps else None


class SeriesStore:
    """Explicit map from instrument to its series, partitioned by key."""

    def __init__(self, capacities: dict[Timeframe, int], oi_retention_ms: int):
        """Initialize the store.

        Args:
            capacities: Bars retained per timeframe.
            oi_retention_ms: Open interest retention duration.
        """
        self.capacities = dict(capacities)
        self.oi_retention_ms = oi_retention_ms
        self._states: dict[str, InstrumentState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, instrument: str) -> bool:
        return instrument in self._states

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._states))

    def get(self, instrument: str) -> InstrumentState:
        """Return the instrument's state, creating empty series on first use."""
        state = self._states.get(instrument)
        if state is None:
            state = InstrumentState(instrument, self.capacities, self.oi_retention_ms)
            self._states[instrument] = state
        return state

    def reconcile(self, universe: set[str]) -> tuple[set[str], set[str]]:
        """Align the store with a new universe.

        Instruments that stay keep their series untouched.

        Returns:
            Tuple of (added, removed) instrument sets.
        """
        current = set(self._states)
        added = universe - current
        removed = current - universe
        for instrument in removed:
            del self._states[instrument]
        for instrument in added:
            self.get(instrument)
        return added, removed
