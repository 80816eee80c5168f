"""Condition checkers.

Each checker is a pure function over one or two series. Checkers raise
``InsufficientDataError`` when the series are too short; deciding what that
means for a signal is the evaluator's job.
"""

import math
from bisect import bisect_right
from typing import Callable, Optional

from bandwatch.db.series import CandleSeries, OpenInterestSeries
from bandwatch.errors import InsufficientDataError
from bandwatch.indicators.technical import bollinger_snapshot, rolling_band
from bandwatch.models import CheckOutcome

# (series, lookback) -> one reference value per compared bar, oldest first
BandReference = Callable[[CandleSeries, int], list[float]]


def check_price_vs_band(
    price_series: CandleSeries,
    band_series: CandleSeries,
    period: int,
    std_dev: float,
    band: str,
) -> CheckOutcome:
    """Check that the latest close is strictly above a band.

    Args:
        price_series: Series whose latest close is the current price.
        band_series: Series the band is computed from (may be the same).
        period: Bollinger period.
        std_dev: Standard deviation multiplier.
        band: "upper", "middle" or "lower".

    Returns:
        Outcome passing if price > band value; value is the price and
        threshold the band value.
    """
    latest = price_series.latest
    if latest is None:
        raise InsufficientDataError(1, 0)
    snapshot = bollinger_snapshot(band_series.closes(), period, std_dev)
    threshold = snapshot.band(band)
    return CheckOutcome(passed=latest.close > threshold, value=latest.close, threshold=threshold)


def band_line(period: int, std_dev: float, band: str) -> BandReference:
    """Reference to a rolling band of the compared series itself.

    The value for bar i is computed from the ``period`` bars ending at i.
    """

    def reference(series: CandleSeries, lookback: int) -> list[float]:
        required = lookback + period - 1
        closes = series.closes()
        if len(closes) < required:
            raise InsufficientDataError(required, len(closes))
        line = rolling_band(closes[-required:], period, std_dev, band)
        return line[-lookback:]

    return reference


def cross_band_line(
    other: CandleSeries,
    period: int,
    std_dev: float,
    band: str,
) -> BandReference:
    """Reference to a rolling band of another timeframe's series.

    For compared bar i the value comes from the newest ``other`` bar that
    had closed no later than bar i closed. That position's band only uses
    ``other`` bars up to and including it.
    """

    def reference(series: CandleSeries, lookback: int) -> list[float]:
        other_bars = other.bars
        if len(other_bars) < period:
            raise InsufficientDataError(period, len(other_bars), f"{other.timeframe.value} bars")

        line = rolling_band([b.close for b in other_bars], period, std_dev, band)
        other_step = other.timeframe.milliseconds
        close_times = [b.timestamp + other_step for b in other_bars]
        step = series.timeframe.milliseconds

        values = []
        for bar in series.bars[-lookback:]:
            idx = bisect_right(close_times, bar.timestamp + step) - 1
            if idx < 0 or math.isnan(line[idx]):
                raise InsufficientDataError(period, max(idx + 1, 0), f"{other.timeframe.value} bars")
            values.append(line[idx])
        return values

    return reference


def check_history_majority(
    series: CandleSeries,
    reference: BandReference,
    lookback: int,
    required: int,
) -> CheckOutcome:
    """Check that enough recent closes sit below a reference line.

    Args:
        series: Series whose closes are compared.
        reference: Band reference giving the value to compare each bar with.
        lookback: Number of most recent bars compared (N).
        required: Minimum number of bars that must be strictly below (M).

    Returns:
        Outcome passing if at least ``required`` of the last ``lookback``
        closes are strictly below their reference value; value is the count
        below. Ties count as not below.
    """
    if len(series) < lookback:
        raise InsufficientDataError(lookback, len(series))

    values = reference(series, lookback)
    closes = series.closes()[-lookback:]
    below = sum(1 for close, value in zip(closes, values) if close < value)
    return CheckOutcome(passed=below >= required, value=below, threshold=required)


def check_volume_surge(series: CandleSeries, lookback: int, multiplier: float) -> CheckOutcome:
    """Check the latest bar's volume against the preceding bars.

    Returns:
        Outcome passing if latest.volume * multiplier > sum of the
        ``lookback`` bars immediately before the latest one.
    """
    volumes = series.volumes()
    if len(volumes) < lookback + 1:
        raise InsufficientDataError(lookback + 1, len(volumes))

    latest = volumes[-1]
    preceding = sum(volumes[-lookback - 1:-1])
    scaled = latest * multiplier
    return CheckOutcome(passed=scaled > preceding, value=scaled, threshold=preceding)


def check_oi_trend(
    series: OpenInterestSeries,
    scale: float,
    window_ms: int,
    now: Optional[int] = None,
) -> CheckOutcome:
    """Check current open interest against its trailing minimum.

    Args:
        series: Open interest samples.
        scale: Factor applied to the current reading (S).
        window_ms: Trailing window duration (D).
        now: End of the window; defaults to the newest sample's timestamp.

    Returns:
        Outcome passing if current * scale > min of the samples inside the
        window; value is the scaled reading and threshold the minimum.
    """
    latest = series.latest
    if latest is None:
        raise InsufficientDataError(1, 0, "open interest samples")

    end = latest.timestamp if now is None else now
    values = series.window(end - window_ms)
    if not values:
        raise InsufficientDataError(1, 0, "open interest samples in window")

    scaled = latest.value * scale
    floor = min(values)
    return CheckOutcome(passed=scaled > floor, value=scaled, threshold=floor)
