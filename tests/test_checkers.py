"""Tests for the condition checkers."""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from bandwatch.conditions import (
    band_line,
    check_history_majority,
    check_oi_trend,
    check_price_vs_band,
    check_volume_surge,
    cross_band_line,
)
from bandwatch.db import CandleSeries, OpenInterestSeries
from bandwatch.errors import InsufficientDataError
from bandwatch.indicators import bollinger_snapshot
from bandwatch.models import Bar, OpenInterestSample, Timeframe

START = 1_700_006_400_000
HOUR = 60 * 60 * 1000


def make_series(
    closes: list[float],
    timeframe: Timeframe = Timeframe.M15,
    volumes: list[float] = None,
    start: int = START,
) -> CandleSeries:
    """Build a consecutive series from closes (and optional volumes)."""
    volumes = volumes or [10.0] * len(closes)
    series = CandleSeries("BTCUSDT", timeframe, max(len(closes), 1))
    step = timeframe.milliseconds
    series.merge(
        Bar(
            timestamp=start + i * step,
            open=close,
            high=close,
            low=close,
            close=close,
            volume=volume,
        )
        for i, (close, volume) in enumerate(zip(closes, volumes))
    )
    return series


def constant_reference(value: float):
    def reference(series, lookback):
        return [value] * lookback
    return reference


class TestHistoryMajority:
    """
    *For any* closes and a constant reference line, the majority check passes
    exactly when at least M of the last N closes are strictly below it.
    """

    @given(
        closes=st.lists(st.sampled_from([99.0, 100.0, 101.0]), min_size=1, max_size=80),
        data=st.data(),
    )
    @settings(max_examples=100)
    def test_counts_strictly_below(self, closes: list[float], data):
        lookback = data.draw(st.integers(min_value=1, max_value=len(closes)))
        required = data.draw(st.integers(min_value=1, max_value=lookback))
        series = make_series(closes)

        result = check_history_majority(series, constant_reference(100.0), lookback, required)

        below = sum(1 for c in closes[-lookback:] if c < 100.0)
        assert result.passed == (below >= required)
        assert result.value == below

    def test_exact_threshold(self):
        closes = [99.0] * 25 + [101.0] * 25
        series = make_series(closes)

        assert check_history_majority(series, constant_reference(100.0), 50, 25).passed is True
        assert check_history_majority(series, constant_reference(100.0), 50, 26).passed is False

    def test_ties_are_not_below(self):
        series = make_series([100.0] * 50)
        assert check_history_majority(series, constant_reference(100.0), 50, 1).passed is False

    def test_short_series_raises(self):
        series = make_series([99.0] * 49)
        with pytest.raises(InsufficientDataError):
            check_history_majority(series, constant_reference(100.0), 50, 25)


class TestBandLine:
    """
    *For any* series, the rolling band for bar i is computed only from the
    P bars ending at bar i.
    """

    @given(
        closes=st.lists(st.floats(min_value=1.0, max_value=1000.0), min_size=30, max_size=60),
        period=st.integers(min_value=2, max_value=10),
        lookback=st.integers(min_value=1, max_value=20),
    )
    @settings(max_examples=50)
    def test_no_look_ahead(self, closes: list[float], period: int, lookback: int):
        series = make_series(closes)
        values = band_line(period, 2.0, "upper")(series, lookback)

        assert len(values) == lookback
        for j, value in enumerate(values):
            end = len(closes) - lookback + j + 1
            expected = bollinger_snapshot(closes[:end], period, 2.0).upper
            assert value == pytest.approx(expected)

    def test_needs_lookback_plus_period_minus_one(self):
        reference = band_line(4, 2.0, "middle")

        with pytest.raises(InsufficientDataError) as exc_info:
            check_history_majority(make_series([1.0] * 7), reference, 5, 1)
        assert exc_info.value.required == 8

        check_history_majority(make_series([1.0] * 8), reference, 5, 1)


class TestCrossBandLine:
    """Cross-timeframe references use the newest reference bar already closed."""

    @pytest.fixture
    def four_hour(self):
        # period 1 makes each band value equal to that bar's close
        return make_series([float(k) for k in range(10)], Timeframe.H4)

    def test_alignment_by_close_time(self, four_hour):
        h4 = Timeframe.H4.milliseconds
        m15 = Timeframe.M15.milliseconds
        subject = make_series([1.0] * 17, Timeframe.M15, start=START + 5 * h4 - m15)

        values = cross_band_line(four_hour, 1, 2.0, "middle")(subject, 17)

        assert values == [4.0] * 16 + [5.0]

    def test_subject_before_reference_raises(self, four_hour):
        subject = make_series([1.0] * 3, Timeframe.M15, start=START - HOUR)
        with pytest.raises(InsufficientDataError):
            cross_band_line(four_hour, 1, 2.0, "middle")(subject, 3)

    def test_incomplete_reference_window_raises(self, four_hour):
        subject = make_series([1.0] * 3, Timeframe.M15, start=START + 2 * Timeframe.H4.milliseconds)
        with pytest.raises(InsufficientDataError):
            cross_band_line(four_hour, 5, 2.0, "middle")(subject, 3)

    def test_short_reference_raises(self):
        reference = make_series([1.0] * 3, Timeframe.H4)
        subject = make_series([1.0] * 3, Timeframe.M15)
        with pytest.raises(InsufficientDataError):
            cross_band_line(reference, 5, 2.0, "upper")(subject, 3)


class TestPriceVsBand:
    """Price must be strictly above the band."""

    def test_strictly_above(self):
        band_series = make_series([100.0] * 20, Timeframe.M30)

        assert check_price_vs_band(make_series([100.01]), band_series, 20, 2.0, "upper").passed is True
        assert check_price_vs_band(make_series([100.0]), band_series, 20, 2.0, "upper").passed is False
        assert check_price_vs_band(make_series([99.0]), band_series, 20, 2.0, "middle").passed is False

    def test_uses_latest_close(self):
        price = make_series([50.0, 150.0])
        band_series = make_series([100.0] * 20, Timeframe.H4)
        assert check_price_vs_band(price, band_series, 20, 2.0, "middle").passed is True

    def test_short_band_series_raises(self):
        with pytest.raises(InsufficientDataError):
            check_price_vs_band(make_series([1.0]), make_series([1.0] * 19), 20, 2.0, "upper")

    def test_empty_price_series_raises(self):
        empty = CandleSeries("BTCUSDT", Timeframe.M15, 5)
        with pytest.raises(InsufficientDataError):
            check_price_vs_band(empty, make_series([1.0] * 20), 20, 2.0, "upper")


class TestVolumeSurge:
    """
    *For any* volume history, the surge check passes exactly when the latest
    volume times X exceeds the sum of the R bars before it.
    """

    @given(
        volumes=st.lists(st.floats(min_value=0.0, max_value=1e6), min_size=7, max_size=20),
        multiplier=st.floats(min_value=0.5, max_value=5.0),
    )
    @settings(max_examples=100)
    def test_matches_definition(self, volumes: list[float], multiplier: float):
        series = make_series([1.0] * len(volumes), Timeframe.H4, volumes=volumes)
        expected = volumes[-1] * multiplier > sum(volumes[-7:-1])
        assert check_volume_surge(series, 6, multiplier).passed == expected

    def test_surge(self):
        series = make_series([1.0] * 7, Timeframe.H4, volumes=[1, 1, 1, 1, 1, 1, 10])
        assert check_volume_surge(series, 6, 2.0).passed is True

    def test_flat_volume(self):
        series = make_series([1.0] * 7, Timeframe.H4, volumes=[5.0] * 7)
        assert check_volume_surge(series, 6, 2.0).passed is False

    def test_equal_is_not_a_surge(self):
        series = make_series([1.0] * 7, Timeframe.H4, volumes=[1, 1, 1, 1, 1, 1, 3])
        assert check_volume_surge(series, 6, 2.0).passed is False

    def test_only_preceding_bars_are_summed(self):
        series = make_series([1.0] * 8, Timeframe.H4, volumes=[1000, 1, 1, 1, 1, 1, 1, 10])
        assert check_volume_surge(series, 6, 2.0).passed is True

    def test_needs_lookback_plus_one(self):
        series = make_series([1.0] * 6, Timeframe.H4)
        with pytest.raises(InsufficientDataError):
            check_volume_surge(series, 6, 2.0)


class TestOpenInterestTrend:
    """Scaled current open interest against the trailing minimum."""

    WINDOW = 72 * HOUR

    def make_oi(self, values: list[float], spacing: int = HOUR) -> OpenInterestSeries:
        series = OpenInterestSeries("BTCUSDT", self.WINDOW)
        series.merge(
            OpenInterestSample(timestamp=START + i * spacing, value=v) for i, v in enumerate(values)
        )
        return series

    def test_above_scaled_minimum(self):
        series = self.make_oi([120.0, 100.0, 110.0, 115.0])
        assert check_oi_trend(series, 0.91, self.WINDOW).passed is True

    def test_below_scaled_minimum(self):
        series = self.make_oi([120.0, 100.0, 110.0, 105.0])
        assert check_oi_trend(series, 0.91, self.WINDOW).passed is False

    def test_samples_outside_window_are_ignored(self):
        series = OpenInterestSeries("BTCUSDT", 10 * self.WINDOW)
        series.merge([
            OpenInterestSample(timestamp=START, value=10.0),
            OpenInterestSample(timestamp=START + 2 * self.WINDOW, value=100.0),
            OpenInterestSample(timestamp=START + 2 * self.WINDOW + HOUR, value=105.0),
        ])
        # the old 10.0 reading would make this pass
        assert check_oi_trend(series, 0.91, self.WINDOW).passed is False

    def test_window_ends_at_now(self):
        series = self.make_oi([100.0, 115.0])
        now = START + HOUR + self.WINDOW + HOUR
        with pytest.raises(InsufficientDataError):
            check_oi_trend(series, 0.91, self.WINDOW, now=now)

    def test_empty_series_raises(self):
        with pytest.raises(InsufficientDataError):
            check_oi_trend(OpenInterestSeries("BTCUSDT", self.WINDOW), 0.91, self.WINDOW)


class TestMeasurements:
    """Every checker reports the value it measured and the threshold it used."""

    def test_price_vs_band(self):
        band_series = make_series([100.0] * 20, Timeframe.M30)
        outcome = check_price_vs_band(make_series([101.5]), band_series, 20, 2.0, "middle")
        assert (outcome.value, outcome.threshold) == (101.5, 100.0)

    def test_history_majority(self):
        series = make_series([99.0] * 30 + [101.0] * 20)
        outcome = check_history_majority(series, constant_reference(100.0), 50, 25)
        assert (outcome.value, outcome.threshold) == (30, 25)

    def test_volume_surge(self):
        series = make_series([1.0] * 7, Timeframe.H4, volumes=[1, 1, 1, 1, 1, 1, 10])
        outcome = check_volume_surge(series, 6, 2.0)
        assert (outcome.value, outcome.threshold) == (20.0, 6.0)

    def test_oi_trend(self):
        series = OpenInterestSeries("BTCUSDT", 72 * HOUR)
        series.merge([
            OpenInterestSample(timestamp=START, value=100.0),
            OpenInterestSample(timestamp=START + HOUR, value=200.0),
        ])
        outcome = check_oi_trend(series, 0.5, 72 * HOUR)
        assert (outcome.value, outcome.threshold) == (100.0, 100.0)
        assert outcome.passed is False
