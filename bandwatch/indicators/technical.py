"""Technical indicator calculations for the screener.

This module provides the moving-average and Bollinger Band calculations
the screening conditions are built on. Rolling functions return lists
aligned to their input, with NaN where the window is not yet full, so that
the value at position i only depends on prices up to and including i.
Calculations are validated against pandas rolling windows in the tests.
"""

import math

from bandwatch.errors import InsufficientDataError
from bandwatch.models import BandSnapshot

BANDS = ("upper", "middle", "lower")


def calculate_sma(prices: list[float], period: int) -> list[float]:
    """Calculate Simple Moving Average.

    Args:
        prices: List of price values (typically close prices)
        period: Number of periods for the moving average

    Returns:
        List of SMA values. First (period-1) values will be NaN.
    """
    if len(prices) < period or period < 1:
        return [float('nan')] * len(prices)

    result = [float('nan')] * (period - 1)

    for i in range(period - 1, len(prices)):
        window = prices[i - period + 1:i + 1]
        result.append(sum(window) / period)

    return result


def _population_std(window: list[float], mean: float) -> float:
    variance = sum((x - mean) ** 2 for x in window) / len(window)
    return math.sqrt(variance)


def calculate_bollinger_bands(
    prices: list[float],
    period: int = 20,
    std_dev: float = 2.0
) -> tuple[list[float], list[float], list[float]]:
    """Calculate rolling Bollinger Bands.

    Args:
        prices: List of price values
        period: SMA period (default 20)
        std_dev: Standard deviation multiplier (default 2.0)

    Returns:
        Tuple of (upper_band, middle_band, lower_band), each aligned to
        ``prices``. First (period-1) values will be NaN.
    """
    n = len(prices)
    middle_band = calculate_sma(prices, period)
    upper_band = [float('nan')] * n
    lower_band = [float('nan')] * n

    if n < period or period < 1:
        return upper_band, middle_band, lower_band

    for i in range(period - 1, n):
        window = prices[i - period + 1:i + 1]
        std = _population_std(window, middle_band[i])
        upper_band[i] = middle_band[i] + std_dev * std
        lower_band[i] = middle_band[i] - std_dev * std

    return upper_band, middle_band, lower_band


def rolling_band(
    prices: list[float],
    period: int,
    std_dev: float,
    band: str,
) -> list[float]:
    """Return a single rolling band line aligned to ``prices``.

    Args:
        prices: Close prices, oldest first.
        period: Bollinger period.
        std_dev: Standard deviation multiplier.
        band: One of "upper", "middle", "lower".
    """
    if band not in BANDS:
        raise ValueError(f"Unknown band: {band}")
    upper, middle, lower = calculate_bollinger_bands(prices, period, std_dev)
    return {"upper": upper, "middle": middle, "lower": lower}[band]


def bollinger_snapshot(prices: list[float], period: int, std_dev: float) -> BandSnapshot:
    """Compute the Bollinger Band from the last ``period`` prices.

    Args:
        prices: Close prices, oldest first.
        period: Number of trailing prices to use.
        std_dev: Standard deviation multiplier (K).

    Returns:
        BandSnapshot with middle, upper and lower values.

    Raises:
        InsufficientDataError: If fewer than ``period`` prices are given.
    """
    if period < 1:
        raise ValueError(f"period must be positive, got {period}")
    if len(prices) < period:
        raise InsufficientDataError(period, len(prices))

    window = prices[-period:]
    middle = calculate_sma(window, period)[-1]
    std = _population_std(window, middle)
    return BandSnapshot(middle=middle, upper=middle + std_dev * std, lower=middle - std_dev * std)
