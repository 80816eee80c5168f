"""Tests for the rolling series and the series store."""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from bandwatch.db import CandleSeries, InstrumentState, OpenInterestSeries, SeriesStore
from bandwatch.errors import InsufficientDataError
from bandwatch.models import Bar, OpenInterestSample, Timeframe

STEP = Timeframe.M15.milliseconds
START = 1_700_000_100_000


def make_bar(timestamp: int, close: float = 100.0, volume: float = 10.0) -> Bar:
    return Bar(
        timestamp=timestamp,
        open=close,
        high=close * 1.01,
        low=close * 0.99,
        close=close,
        volume=volume,
    )


def make_bars(count: int, start: int = START, step: int = STEP) -> list[Bar]:
    return [make_bar(start + i * step, close=100.0 + i) for i in range(count)]


class TestCandleSeriesCapacity:
    """
    *For any* number of merged consecutive bars, the series holds at most its
    capacity, keeps the newest bars and keeps timestamps strictly increasing
    one step apart.
    """

    @given(
        capacity=st.integers(min_value=1, max_value=50),
        count=st.integers(min_value=0, max_value=150),
    )
    @settings(max_examples=100)
    def test_fifo_eviction(self, capacity: int, count: int):
        series = CandleSeries("BTCUSDT", Timeframe.M15, capacity)
        bars = make_bars(count)
        series.merge(bars)

        assert len(series) == min(capacity, count)
        assert series.bars == bars[max(0, count - capacity):]

        stamps = series.timestamps()
        for a, b in zip(stamps, stamps[1:]):
            assert b - a == STEP

    @given(
        capacity=st.integers(min_value=1, max_value=30),
        chunks=st.lists(st.integers(min_value=1, max_value=10), min_size=1, max_size=10),
    )
    @settings(max_examples=50)
    def test_incremental_merge_equals_single_merge(self, capacity: int, chunks: list[int]):
        """Merging in pieces ends with the same bars as merging at once."""
        bars = make_bars(sum(chunks))

        whole = CandleSeries("BTCUSDT", Timeframe.M15, capacity)
        whole.merge(bars)

        pieces = CandleSeries("BTCUSDT", Timeframe.M15, capacity)
        offset = 0
        for size in chunks:
            pieces.merge(bars[offset:offset + size])
            offset += size

        assert pieces.bars == whole.bars

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            CandleSeries("BTCUSDT", Timeframe.M15, 0)


class TestCandleSeriesMerge:
    """Merge rules for overlapping, provisional and gapped fetches."""

    def test_overlap_is_skipped(self):
        series = CandleSeries("BTCUSDT", Timeframe.M15, 10)
        bars = make_bars(5)
        series.merge(bars)

        changed = series.merge(bars[:3])

        assert changed == 0
        assert series.bars == bars

    def test_equal_timestamp_replaces_tail(self):
        series = CandleSeries("BTCUSDT", Timeframe.M15, 10)
        bars = make_bars(3)
        series.merge(bars)

        final = make_bar(bars[-1].timestamp, close=555.0, volume=99.0)
        changed = series.merge([final])

        assert changed == 1
        assert len(series) == 3
        assert series.latest == final

    def test_refetch_from_tail_replaces_then_appends(self):
        series = CandleSeries("BTCUSDT", Timeframe.M15, 10)
        series.merge(make_bars(3))
        tail = series.latest.timestamp

        fresh = [make_bar(tail, close=1.0), make_bar(tail + STEP, close=2.0)]
        assert series.merge(fresh) == 2
        assert series.closes()[-2:] == [1.0, 2.0]
        assert len(series) == 4

    def test_gap_restarts_series(self):
        series = CandleSeries("BTCUSDT", Timeframe.M15, 10)
        series.merge(make_bars(5))

        after_gap = make_bar(series.latest.timestamp + 3 * STEP, close=42.0)
        series.merge([after_gap])

        assert series.bars == [after_gap]

    def test_refresh_since_empty_requests_full_window(self):
        series = CandleSeries("BTCUSDT", Timeframe.H4, 20)
        now = START + 100 * Timeframe.H4.milliseconds
        assert series.refresh_since(now) == now - 20 * Timeframe.H4.milliseconds

    def test_refresh_since_returns_tail(self):
        series = CandleSeries("BTCUSDT", Timeframe.M15, 10)
        series.merge(make_bars(4))
        assert series.refresh_since(START + 100 * STEP) == series.latest.timestamp

    def test_accessors(self):
        series = CandleSeries("BTCUSDT", Timeframe.M15, 10)
        assert series.latest is None
        series.merge([make_bar(START, close=7.0, volume=3.0)])
        assert series.closes() == [7.0]
        assert series.volumes() == [3.0]
        assert series.timestamps() == [START]
        series.clear()
        assert len(series) == 0


class TestOpenInterestSeries:
    """
    *For any* sequence of samples, the open interest series keeps timestamps
    strictly increasing and holds nothing older than its retention.
    """

    @given(
        gaps=st.lists(st.integers(min_value=-5, max_value=20), min_size=1, max_size=60),
        retention=st.integers(min_value=1, max_value=100),
    )
    @settings(max_examples=100)
    def test_ordering_and_retention(self, gaps: list[int], retention: int):
        series = OpenInterestSeries("BTCUSDT", retention)
        timestamp = 1000
        for gap in gaps:
            timestamp += gap
            series.merge([OpenInterestSample(timestamp=max(timestamp, 0), value=float(gap + 10))])

        stamps = [s.timestamp for s in series]
        assert stamps == sorted(set(stamps))
        assert all(s >= series.latest.timestamp - retention for s in stamps)

    def test_equal_timestamp_replaces(self):
        series = OpenInterestSeries("BTCUSDT", 1000)
        series.merge([OpenInterestSample(timestamp=10, value=1.0)])
        series.merge([OpenInterestSample(timestamp=10, value=2.0)])
        assert [s.value for s in series] == [2.0]

    def test_window(self):
        series = OpenInterestSeries("BTCUSDT", 1000)
        series.merge([OpenInterestSample(timestamp=t, value=float(t)) for t in (100, 200, 300)])
        assert series.window(200) == [200.0, 300.0]
        assert series.window(400) == []

    def test_refresh_since(self):
        series = OpenInterestSeries("BTCUSDT", 1000)
        assert series.refresh_since(5000) == 4000
        series.merge([OpenInterestSample(timestamp=4500, value=1.0)])
        assert series.refresh_since(5000) == 4500

    def test_invalid_retention(self):
        with pytest.raises(ValueError):
            OpenInterestSeries("BTCUSDT", 0)


class TestSeriesStore:
    """The store is partitioned by instrument and survives universe churn."""

    @pytest.fixture
    def store(self):
        return SeriesStore({Timeframe.M15: 10, Timeframe.H4: 5}, oi_retention_ms=1000)

    def test_get_creates_series_per_timeframe(self, store):
        state = store.get("BTCUSDT")
        assert set(state.candles) == {Timeframe.M15, Timeframe.H4}
        assert state.candles[Timeframe.M15].capacity == 10
        assert store.get("BTCUSDT") is state

    def test_reconcile_keeps_surviving_state(self, store):
        store.get("BTCUSDT").series(Timeframe.M15).merge(make_bars(3))
        store.get("ETHUSDT")

        added, removed = store.reconcile({"BTCUSDT", "SOLUSDT"})

        assert added == {"SOLUSDT"}
        assert removed == {"ETHUSDT"}
        assert list(store) == ["BTCUSDT", "SOLUSDT"]
        assert len(store.get("BTCUSDT").series(Timeframe.M15)) == 3

    def test_instruments_do_not_share_series(self, store):
        store.get("BTCUSDT").series(Timeframe.M15).merge(make_bars(3))
        assert len(store.get("ETHUSDT").series(Timeframe.M15)) == 0

    def test_untracked_timeframe(self, store):
        with pytest.raises(InsufficientDataError):
            store.get("BTCUSDT").series(Timeframe.M30)

    def test_newest_timestamp(self):
        state = InstrumentState("BTCUSDT", {Timeframe.M15: 5}, 10_000)
        assert state.newest_timestamp() is None
        state.series(Timeframe.M15).merge(make_bars(2))
        state.open_interest.merge([OpenInterestSample(timestamp=START + 5 * STEP, value=1.0)])
        assert state.newest_timestamp() == START + 5 * STEP
