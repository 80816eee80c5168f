"""Exception hierarchy for bandwatch.

Checker errors stop at the condition evaluator, data-source errors stop at
the per-instrument scan task. Only ``ConfigurationError`` is meant to reach
the process boundary.
"""

from typing import Optional


class BandwatchError(Exception):
    """Base exception for all bandwatch errors."""


class InsufficientDataError(BandwatchError):
    """Not enough history to compute an indicator or run a check yet."""

    def __init__(self, required: int, actual: int, what: str = "bars"):
        self.required = required
        self.actual = actual
        self.what = what
        super().__init__(f"insufficient data: need {required} {what}, have {actual}")


class DataSourceError(BandwatchError):
    """A market data or universe request failed."""

    reason = "data source error"

    def __init__(self, message: str, instrument: Optional[str] = None):
        self.instrument = instrument
        super().__init__(message)


class NetworkError(DataSourceError):
    """Transport failure, timeout or unexpected response."""

    reason = "network error"


class RateLimitedError(DataSourceError):
    """The provider rejected the request because of its rate limits."""

    reason = "rate limited"


class NotFoundError(DataSourceError):
    """The provider does not know the requested instrument."""

    reason = "not found"


class ConfigurationError(BandwatchError):
    """Malformed or missing configuration. Fatal at startup."""


class AlertDeliveryError(BandwatchError):
    """An alert sink failed to deliver a message."""
