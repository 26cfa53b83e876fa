"""
Binance public REST client (no authentication required)
"""
import asyncio
from typing import Any, Dict, List, Optional, Set

import aiohttp
from asyncio_throttle import Throttler
from loguru import logger
from tenacity import (retry, retry_if_exception_type, stop_after_attempt,
                      wait_exponential)

from momentum_engine.config import ExchangeConfig, ScannerConfig
from momentum_engine.errors import TransientFetchError
from momentum_engine.indicators import RSI
from momentum_engine.models import Tick


class BinanceClient:
    """
    Boundary adapter for the engine collaborators:

    - fetch_instrument_universe: quote-asset symbols (spot) or PERPETUAL contracts (futures)
    - fetch_reference_prices: open of the latest reference_interval kline
    - fetch_ticker_snapshot: last prices of all symbols in one request
    - fetch_live_price: last price of one symbol
    - fetch_momentum_indicator: RSI over rsi_interval closes (None if unavailable)

    exchange.market selects /api/v3 (spot) or /fapi/v1 (USDⓈ-M futures).
    """

    def __init__(
        self, config: ExchangeConfig, scanner_config: Optional[ScannerConfig] = None
    ):
        self.config = config
        self.scanner_config = scanner_config or ScannerConfig()
        self.base_url = config.active_rest_url.rstrip("/")
        self.api_prefix = "/fapi/v1" if config.market == "futures" else "/api/v3"
        self.session: Optional[aiohttp.ClientSession] = None
        self.rsi = RSI(
            period=self.scanner_config.rsi_period,
            overbought=self.scanner_config.rsi_overbought,
            oversold=self.scanner_config.rsi_oversold,
        )

        # Rate limiting: публичные лимиты Binance по весу запросов
        self.throttler = Throttler(rate_limit=config.rate_limit_per_second, period=1)

    async def __aenter__(self):
        """Async context manager entry"""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.disconnect()

    async def connect(self):
        """Initialize HTTP session"""
        if self.session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_seconds)
            self.session = aiohttp.ClientSession(timeout=timeout)
        logger.info("Binance client connected")

    async def disconnect(self):
        """Close HTTP session"""
        if self.session:
            await self.session.close()
            self.session = None
        logger.info("Binance client disconnected")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(TransientFetchError),
        reraise=True,
    )
    async def _make_request(self, endpoint: str, params: Dict = None) -> Any:
        """GET request to the public REST API, any failure -> TransientFetchError"""
        if not self.session:
            await self.connect()

        url = f"{self.base_url}{endpoint}"
        try:
            async with self.throttler:
                async with self.session.get(url, params=params) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise TransientFetchError(
                            f"HTTP {response.status} for {endpoint}: {body[:200]}"
                        )
                    return await response.json()
        except TransientFetchError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.debug(f"Request failed: GET {endpoint} {params or ''}: {e}")
            raise TransientFetchError(f"GET {endpoint} failed: {e}") from e

    # Market Data Methods
    async def fetch_instrument_universe(self) -> Set[str]:
        """
        Инструменты для торговли.

        spot: все символы с котировкой в quote_asset из листинга цен
        futures: PERPETUAL контракты из exchangeInfo с quoteAsset == quote_asset
        """
        if self.config.market == "futures":
            info = await self._make_request(f"{self.api_prefix}/exchangeInfo")
            try:
                return {
                    symbol["symbol"]
                    for symbol in info["symbols"]
                    if symbol.get("contractType") == "PERPETUAL"
                    and symbol.get("quoteAsset") == self.config.quote_asset
                }
            except (KeyError, TypeError, AttributeError) as e:
                raise TransientFetchError(f"Malformed exchangeInfo: {e}") from e

        tickers = await self._make_request(f"{self.api_prefix}/ticker/price")
        try:
            return {
                ticker["symbol"]
                for ticker in tickers
                if ticker["symbol"].endswith(self.config.quote_asset)
            }
        except (KeyError, TypeError) as e:
            raise TransientFetchError(f"Malformed ticker listing: {e}") from e

    async def fetch_ticker_snapshot(self) -> List[Tick]:
        """Последние цены всех quote_asset символов одним запросом"""
        tickers = await self._make_request(f"{self.api_prefix}/ticker/price")
        if not isinstance(tickers, list):
            raise TransientFetchError(f"Malformed ticker listing: {tickers!r:.200}")

        ticks: List[Tick] = []
        for ticker in tickers:
            try:
                symbol = ticker["symbol"]
                price = float(ticker["price"])
            except (KeyError, TypeError, ValueError):
                continue
            if symbol.endswith(self.config.quote_asset) and price > 0:
                ticks.append(Tick(instrument=symbol, last_price=price))
        return ticks

    async def fetch_open_price(self, symbol: str, interval: str) -> float:
        """Open price of the current kline"""
        params = {"symbol": symbol, "interval": interval, "limit": 1}
        klines = await self._make_request(f"{self.api_prefix}/klines", params=params)
        try:
            return float(klines[0][1])
        except (IndexError, KeyError, TypeError, ValueError) as e:
            raise TransientFetchError(f"Malformed kline for {symbol}: {e}") from e

    async def fetch_reference_prices(self) -> Dict[str, float]:
        """
        Reference price table: open of the latest reference_interval kline.

        Per-symbol failures are skipped; a failed universe fetch raises.
        """
        symbols = sorted(await self.fetch_instrument_universe())
        logger.info(
            f"Fetching {self.config.reference_interval} open prices "
            f"for {len(symbols)} {self.config.quote_asset} pairs..."
        )

        results = await asyncio.gather(
            *(
                self.fetch_open_price(symbol, self.config.reference_interval)
                for symbol in symbols
            ),
            return_exceptions=True,
        )

        prices: Dict[str, float] = {}
        for symbol, result in zip(symbols, results):
            if isinstance(result, TransientFetchError):
                logger.warning(f"⚠️ Error fetching kline for {symbol}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            prices[symbol] = result

        logger.info(f"✅ Reference prices loaded: {len(prices)}/{len(symbols)}")
        return prices

    async def fetch_live_price(self, symbol: str) -> float:
        """Last price of one symbol"""
        data = await self._make_request(
            f"{self.api_prefix}/ticker/price", params={"symbol": symbol}
        )
        try:
            return float(data["price"])
        except (KeyError, TypeError, ValueError) as e:
            raise TransientFetchError(f"Malformed price for {symbol}: {e}") from e

    async def fetch_momentum_indicator(self, symbol: str) -> Optional[float]:
        """RSI in [0, 100] or None when unavailable"""
        params = {
            "symbol": symbol,
            "interval": self.scanner_config.rsi_interval,
            "limit": self.rsi.period + 1,
        }
        try:
            klines = await self._make_request(f"{self.api_prefix}/klines", params=params)
            closes = [float(kline[4]) for kline in klines]
        except TransientFetchError as e:
            logger.warning(f"⚠️ Error calculating RSI for {symbol}: {e}")
            return None
        except (IndexError, TypeError, ValueError) as e:
            logger.warning(f"⚠️ Malformed klines for RSI of {symbol}: {e}")
            return None

        return self.rsi.calculate(closes).value
