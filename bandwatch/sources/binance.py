"""Binance USDT-margined futures market data client."""

import logging
from typing import Any, Optional

import requests

from bandwatch.config import BinanceSettings
from bandwatch.errors import NetworkError, NotFoundError, RateLimitedError
from bandwatch.models import Bar, OpenInterestSample, Timeframe
from bandwatch.ratelimit import RateLimiter
from bandwatch.sources.base import MarketDataSource, OpenInterestSource

logger = logging.getLogger(__name__)

OI_HISTORY_LIMIT = 500


def parse_kline(row: list[Any]) -> Bar:
    """Convert one Binance kline array into a Bar.

    Binance returns ``[open_time, open, high, low, close, volume, close_time, ...]``
    with prices and volume as strings.
    """
    if len(row) < 6:
        raise ValueError(f"Invalid kline row: {row!r}")
    return Bar(
        timestamp=int(row[0]),
        open=float(row[1]),
        high=float(row[2]),
        low=float(row[3]),
        close=float(row[4]),
        volume=float(row[5]),
    )


class BinanceFuturesClient(MarketDataSource, OpenInterestSource):
    """Fetches klines, open interest and perpetual symbols from Binance.

    Every HTTP request first passes through the shared rate limiter.
    """

    def __init__(
        self,
        settings: Optional[BinanceSettings] = None,
        limiter: Optional[RateLimiter] = None,
        history_period: str = "15m",
        session: Optional[requests.Session] = None,
    ):
        """Initialize the client.

        Args:
            settings: Endpoint and timeout settings.
            limiter: Shared rate limiter; None disables limiting.
            history_period: Granularity of open interest history.
            session: Optional requests session (for connection reuse/tests).
        """
        self.settings = settings or BinanceSettings()
        self.limiter = limiter
        self.history_period = history_period
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})

    def _get(self, path: str, params: Optional[dict] = None, instrument: Optional[str] = None) -> Any:
        if self.limiter is not None:
            self.limiter.acquire()

        url = f"{self.settings.futures_base_url}{path}"
        try:
            response = self._session.get(url, params=params, timeout=self.settings.request_timeout)
        except requests.RequestException as e:
            raise NetworkError(f"{path} failed: {e}", instrument) from e

        if response.status_code in (418, 429):
            raise RateLimitedError(f"{path} throttled (HTTP {response.status_code})", instrument)
        if response.status_code == 400:
            raise NotFoundError(f"{path} rejected {instrument}: {response.text}", instrument)
        if not response.ok:
            raise NetworkError(f"{path} returned HTTP {response.status_code}: {response.text}", instrument)

        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(f"{path} returned invalid JSON", instrument) from e

    def fetch_candles(self, instrument: str, timeframe: Timeframe, since: int) -> list[Bar]:
        """Fetch futures klines opened at or after ``since``."""
        data = self._get(
            "/fapi/v1/klines",
            params={
                "symbol": instrument,
                "interval": timeframe.value,
                "startTime": since,
                "limit": self.settings.kline_limit,
            },
            instrument=instrument,
        )
        try:
            return [parse_kline(row) for row in data]
        except (TypeError, ValueError) as e:
            raise NetworkError(f"Malformed kline data for {instrument}: {e}", instrument) from e

    def _fetch_open_interest_history(self, instrument: str, since: int) -> list[dict]:
        """Page through open interest history until a short page comes back."""
        rows: list[dict] = []
        start = since
        while True:
            batch = self._get(
                "/futures/data/openInterestHist",
                params={
                    "symbol": instrument,
                    "period": self.history_period,
                    "startTime": start,
                    "limit": OI_HISTORY_LIMIT,
                },
                instrument=instrument,
            )
            if not isinstance(batch, list):
                raise NetworkError(f"Malformed open interest history for {instrument}", instrument)
            rows.extend(batch)
            if len(batch) < OI_HISTORY_LIMIT:
                return rows
            try:
                newest = max(int(h["timestamp"]) for h in batch)
            except (KeyError, TypeError, ValueError) as e:
                raise NetworkError(f"Malformed open interest data for {instrument}: {e}", instrument) from e
            if newest < start:
                return rows
            start = newest + 1

    def fetch_open_interest(self, instrument: str, since: int) -> list[OpenInterestSample]:
        """Fetch open interest history plus the current reading.

        History is requested in pages of ``OI_HISTORY_LIMIT`` samples. The
        current reading becomes the newest sample when it is more recent
        than the last historical one.
        """
        history = self._fetch_open_interest_history(instrument, since)
        current = self._get("/fapi/v1/openInterest", params={"symbol": instrument}, instrument=instrument)

        try:
            samples = {
                int(h["timestamp"]): OpenInterestSample(
                    timestamp=int(h["timestamp"]), value=float(h["sumOpenInterest"])
                )
                for h in history
            }
            latest = OpenInterestSample(
                timestamp=int(current["time"]), value=float(current["openInterest"])
            )
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkError(f"Malformed open interest data for {instrument}: {e}", instrument) from e

        samples = sorted((s for s in samples.values() if s.timestamp >= since), key=lambda s: s.timestamp)
        if not samples or latest.timestamp > samples[-1].timestamp:
            samples.append(latest)
        return samples

    def fetch_perpetual_symbols(self) -> set[str]:
        """Symbols of perpetual contracts currently trading."""
        info = self._get("/fapi/v1/exchangeInfo")
        try:
            symbols = {
                s["symbol"]
                for s in info.get("symbols", [])
                if s.get("contractType") == "PERPETUAL" and s.get("status") == "TRADING"
            }
        except (KeyError, TypeError, AttributeError) as e:
            raise NetworkError(f"Malformed exchangeInfo: {e}") from e
        logger.info("Found %d perpetual contracts", len(symbols))
        return symbols
