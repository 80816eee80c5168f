"""CoinGecko market-cap ranking and the perpetual-futures universe."""

import logging
from typing import Optional

import requests
from pydantic import BaseModel, Field

from bandwatch.config import CoinGeckoSettings
from bandwatch.errors import NetworkError, RateLimitedError
from bandwatch.ratelimit import RateLimiter
from bandwatch.sources.base import UniverseProvider
from bandwatch.sources.binance import BinanceFuturesClient

logger = logging.getLogger(__name__)

PER_PAGE = 250
QUOTE_ASSET = "USDT"


class CoinInfo(BaseModel):
    """A coin from the CoinGecko market ranking."""

    id: str = Field(..., description="CoinGecko coin id")
    symbol: str = Field(..., min_length=1, description="Ticker symbol, lowercase")
    name: str = Field(..., description="Display name")
    market_cap_rank: Optional[int] = Field(default=None, description="Rank by market cap")

    model_config = {"frozen": True, "extra": "ignore"}

    @property
    def futures_symbol(self) -> str:
        return f"{self.symbol.upper()}{QUOTE_ASSET}"


class CoinGeckoClient:
    """Reads the top coins by market capitalisation."""

    def __init__(
        self,
        settings: Optional[CoinGeckoSettings] = None,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings or CoinGeckoSettings()
        self.limiter = RateLimiter.per_minute(self.settings.requests_per_minute)
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})

    def get_top_coins(self, n: int) -> list[CoinInfo]:
        """Fetch the top ``n`` coins ordered by market cap.

        Raises:
            NetworkError: On request failures.
            RateLimitedError: If CoinGecko throttled the request.
        """
        coins: list[CoinInfo] = []
        pages = (n + PER_PAGE - 1) // PER_PAGE

        for page in range(1, pages + 1):
            self.limiter.acquire()
            try:
                response = self._session.get(
                    f"{self.settings.base_url}/coins/markets",
                    params={
                        "vs_currency": "usd",
                        "order": "market_cap_desc",
                        "per_page": PER_PAGE,
                        "page": page,
                    },
                    timeout=self.settings.request_timeout,
                )
            except requests.RequestException as e:
                raise NetworkError(f"CoinGecko request failed: {e}") from e

            if response.status_code == 429:
                raise RateLimitedError("CoinGecko throttled the request")
            if not response.ok:
                raise NetworkError(f"CoinGecko returned HTTP {response.status_code}: {response.text}")

            try:
                batch = [CoinInfo.model_validate(item) for item in response.json()]
            except ValueError as e:
                raise NetworkError(f"Malformed CoinGecko response: {e}") from e

            coins.extend(batch)
            if len(coins) >= n or not batch:
                break

        return coins[:n]


class PerpetualUniverse(UniverseProvider):
    """Top-N coins by market cap that have a Binance perpetual contract."""

    def __init__(self, coingecko: CoinGeckoClient, binance: BinanceFuturesClient, top_n: int):
        self.coingecko = coingecko
        self.binance = binance
        self.top_n = top_n

    def current_universe(self) -> set[str]:
        coins = self.coingecko.get_top_coins(self.top_n)
        perpetuals = self.binance.fetch_perpetual_symbols()
        universe = {coin.futures_symbol for coin in coins} & perpetuals
        logger.info(
            "Universe: %d of top %d coins have perpetual contracts",
            len(universe),
            len(coins),
        )
        return universe
