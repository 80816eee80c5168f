"""Rolling in-memory series for bars and open interest.

Both series keep timestamps strictly increasing and evict from the head.
A ``CandleSeries`` additionally keeps consecutive bars exactly one
timeframe apart.
"""

import logging
from collections import deque
from typing import Iterable, Iterator, Optional

from bandwatch.models import Bar, OpenInterestSample, Timeframe

logger = logging.getLogger(__name__)


class CandleSeries:
    """Fixed-capacity FIFO buffer of bars for one (instrument, timeframe)."""

    def __init__(self, instrument: str, timeframe: Timeframe, capacity: int):
        """Initialize an empty series.

        Args:
            instrument: Instrument identifier (e.g. "BTCUSDT").
            timeframe: Bar duration of this series.
            capacity: Maximum number of bars retained.
        """
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.instrument = instrument
        self.timeframe = timeframe
        self.capacity = capacity
        self._bars: deque[Bar] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._bars)

    def __iter__(self) -> Iterator[Bar]:
        return iter(self._bars)

    def __repr__(self) -> str:
        return (
            f"CandleSeries({self.instrument!r}, {self.timeframe.value}, "
            f"{len(self)}/{self.capacity})"
        )

    @property
    def latest(self) -> Optional[Bar]:
        """Newest bar, or None when empty."""
        return self._bars[-1] if self._bars else None

    @property
    def bars(self) -> list[Bar]:
        """Bars oldest-to-newest."""
        return list(self._bars)

    def closes(self) -> list[float]:
        return [b.close for b in self._bars]

    def volumes(self) -> list[float]:
        return [b.volume for b in self._bars]

    def timestamps(self) -> list[int]:
        return [b.timestamp for b in self._bars]

    def clear(self) -> None:
        self._bars.clear()

    def merge(self, bars: Iterable[Bar]) -> int:
        """Merge freshly fetched bars into the series.

        Bars older than the tail are already recorded and skipped. A bar with
        the tail's timestamp replaces it, since the newest bar may still have
        been forming when it was stored. A bar more than one duration past the
        tail breaks continuity: the stored history is dropped and the series
        restarts from that bar.

        Args:
            bars: Bars in ascending timestamp order.

        Returns:
            Number of bars appended or replaced.
        """
        step = self.timeframe.milliseconds
        changed = 0

        for bar in bars:
            tail = self.latest
            if tail is None or bar.timestamp == tail.timestamp + step:
                self._bars.append(bar)
            elif bar.timestamp == tail.timestamp:
                self._bars[-1] = bar
            elif bar.timestamp < tail.timestamp:
                continue
            else:
                logger.warning(
                    "%s %s: gap between %d and %d, restarting series",
                    self.instrument,
                    self.timeframe.value,
                    tail.timestamp,
                    bar.timestamp,
                )
                self._bars.clear()
                self._bars.append(bar)
            changed += 1

        return changed

    def refresh_since(self, now: int) -> int:
        """Timestamp to fetch from so the series is current up to ``now``.

        An empty series asks for a full window; otherwise the tail is
        refetched so a provisional bar gets its final values.
        """
        tail = self.latest
        if tail is None:
            return max(0, now - self.capacity * self.timeframe.milliseconds)
        return tail.timestamp


class OpenInterestSeries:
    """Open interest samples for one instrument, retained by age."""

    def __init__(self, instrument: str, retention_ms: int):
        """Initialize an empty series.

        Args:
            instrument: Instrument identifier.
            retention_ms: Samples older than the newest one by more than this
                are evicted.
        """
        if retention_ms < 1:
            raise ValueError(f"retention must be positive, got {retention_ms}")
        self.instrument = instrument
        self.retention_ms = retention_ms
        self._samples: deque[OpenInterestSample] = deque()

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[OpenInterestSample]:
        return iter(self._samples)

    def __repr__(self) -> str:
        return f"OpenInterestSeries({self.instrument!r}, {len(self)} samples)"

    @property
    def latest(self) -> Optional[OpenInterestSample]:
        return self._samples[-1] if self._samples else None

    def clear(self) -> None:
        self._samples.clear()

    def merge(self, samples: Iterable[OpenInterestSample]) -> int:
        """Merge samples in ascending order, then evict expired ones.

        Returns:
            Number of samples appended or replaced.
        """
        changed = 0
        for sample in samples:
            tail = self.latest
            if tail is None or sample.timestamp > tail.timestamp:
                self._samples.append(sample)
            elif sample.timestamp == tail.timestamp:
                self._samples[-1] = sample
            else:
                continue
            changed += 1

        self._evict()
        return changed

    def _evict(self) -> None:
        tail = self.latest
        if tail is None:
            return
        cutoff = tail.timestamp - self.retention_ms
        while self._samples and self._samples[0].timestamp < cutoff:
            self._samples.popleft()

    def window(self, start: int) -> list[float]:
        """Values of the samples with timestamp >= ``start``."""
        return [s.value for s in self._samples if s.timestamp >= start]

    def refresh_since(self, now: int) -> int:
        tail = self.latest
        if tail is None:
            return max(0, now - self.retention_ms)
        return tail.timestamp
