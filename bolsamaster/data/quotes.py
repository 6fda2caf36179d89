"""
Market quote providers.

Every provider answers ``fetch_prices(tickers)`` with a *partial* map of
ticker -> unit price in the reporting currency. Missing tickers are normal:
the portfolio aggregator falls back to the last known price. Providers log
and swallow network/data failures instead of raising, and can be chained
in priority order with ``FallbackQuoteProvider``.
"""

import asyncio
import math
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import aiohttp
import structlog
import yfinance as yf

from ..portfolio.classifier import CRYPTO_SYMBOLS, is_domestic_ticker
from ..exceptions import QuoteFetchError

logger = structlog.get_logger(__name__)


def _normalize_tickers(tickers: Iterable[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for ticker in tickers:
        symbol = str(ticker).strip().upper()
        if symbol:
            seen.setdefault(symbol, None)
    return list(seen)


def _valid_price(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return not math.isnan(number) and not math.isinf(number) and number > 0


class QuoteProvider(ABC):
    """
    Abstract base class for quote sources.

    Provides common functionality:
    - Timeout handling with configurable limits
    - Retry logic with exponential backoff
    - Logging setup
    """

    name = "base"
    DEFAULT_TIMEOUT = 15
    MAX_RETRIES = 2
    RETRY_DELAY_BASE = 1.0

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.logger = structlog.get_logger(self.__class__.__name__)
        self._last_error: Optional[Exception] = None
        self._last_fetch_time: Optional[datetime] = None

    @abstractmethod
    async def fetch_prices(self, tickers: List[str]) -> Dict[str, float]:
        """
        Fetch current prices.

        Args:
            tickers: Ticker symbols as stored in the ledger

        Returns:
            Partial map ticker -> price; tickers it could not price are absent
        """
        pass

    async def fetch_with_timeout(
        self,
        tickers: List[str],
        timeout: Optional[float] = None
    ) -> Dict[str, float]:
        """
        Fetch prices with timeout protection.

        Returns:
            Fetched prices, or an empty map on timeout/error
        """
        effective_timeout = timeout or self.timeout

        try:
            result = await asyncio.wait_for(
                self.fetch_prices(tickers),
                timeout=effective_timeout
            )
            self._last_fetch_time = datetime.now()
            return {t: float(p) for t, p in (result or {}).items() if _valid_price(p)}

        except asyncio.TimeoutError:
            self.logger.warning(
                "quote_fetch_timeout",
                source=self.name,
                tickers=len(tickers),
                timeout=effective_timeout
            )
            self._last_error = TimeoutError(f"Quote fetch timed out after {effective_timeout}s")
            return {}

        except asyncio.CancelledError:
            self.logger.warning("quote_fetch_cancelled", source=self.name)
            raise

        except Exception as e:
            self.logger.error(
                "quote_fetch_error",
                source=self.name,
                error_type=type(e).__name__,
                error=str(e)
            )
            self._last_error = e
            return {}

    async def fetch_with_retry(
        self,
        tickers: List[str],
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None
    ) -> Dict[str, float]:
        """
        Fetch prices, retrying with exponential backoff while nothing comes back.
        """
        retries = max_retries or self.MAX_RETRIES

        for attempt in range(retries):
            result = await self.fetch_with_timeout(tickers, timeout)

            if result:
                return result

            if attempt < retries - 1:
                delay = self.RETRY_DELAY_BASE * (2 ** attempt)
                self.logger.info(
                    "quote_fetch_retry",
                    source=self.name,
                    attempt=attempt + 1,
                    delay=delay
                )
                await asyncio.sleep(delay)

        self.logger.warning("quote_fetch_retries_exhausted", source=self.name, attempts=retries)
        return {}

    def get_last_error(self) -> Optional[Exception]:
        """Get the last error that occurred during fetch."""
        return self._last_error

    def get_last_fetch_time(self) -> Optional[datetime]:
        """Get the timestamp of the last successful fetch."""
        return self._last_fetch_time

    def is_available(self) -> bool:
        """Whether the provider should be asked at all."""
        return True


class BrapiQuoteProvider(QuoteProvider):
    """
    brapi.dev quotes for B3-listed tickers.

    Only domestic-shaped tickers (PETR4, HGLG11, ...) are sent; everything
    else is left for the next provider in the chain.

    Example:
        >>> async with BrapiQuoteProvider(token="...") as brapi:
        ...     prices = await brapi.fetch_prices(["PETR4", "VALE3"])
    """

    name = "brapi"
    BASE_URL = "https://brapi.dev/api"

    def __init__(self, token: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__(timeout)
        self.token = token or None
        self.base_url = self.BASE_URL
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "BrapiQuoteProvider":
        self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._session is not None:
            await self._session.close()

    async def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> Optional[Dict[str, Any]]:
        """GET a brapi endpoint; returns parsed JSON or None on a non-200 answer."""
        url = f"{self.base_url}/{path}"
        query = dict(params or {})
        if self.token:
            query["token"] = self.token

        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession()
        try:
            async with session.get(url, params=query) as response:
                if response.status == 401:
                    raise QuoteFetchError("brapi rejected the token", source=self.name)
                if response.status != 200:
                    self.logger.warning("brapi_bad_status", status=response.status, path=path)
                    return None
                return await response.json()
        except aiohttp.ClientError as e:
            self.logger.warning("brapi_network_error", error_type=type(e).__name__, error=str(e))
            return None
        finally:
            if owns_session:
                await session.close()

    async def fetch_prices(self, tickers: List[str]) -> Dict[str, float]:
        domestic = [t for t in _normalize_tickers(tickers) if is_domestic_ticker(t)]
        if not domestic:
            return {}

        data = await self._get(f"quote/{','.join(domestic)}")
        if not data:
            return {}

        results = data.get("results")
        if not isinstance(results, list):
            self.logger.warning("brapi_unexpected_payload", keys=list(data.keys()))
            return {}

        prices: Dict[str, float] = {}
        for item in results:
            symbol = str(item.get("symbol") or "").upper()
            price = item.get("regularMarketPrice")
            if symbol in domestic and _valid_price(price):
                prices[symbol] = float(price)

        self.logger.debug("brapi_quotes_fetched", requested=len(domestic), received=len(prices))
        return prices


class YFinanceQuoteProvider(QuoteProvider):
    """
    Yahoo Finance quotes through yfinance.

    B3 tickers are looked up with the ``.SA`` suffix and crypto as
    ``{SYMBOL}-{reporting currency}``. Prices quoted in another currency are
    converted with the ``{FROM}{TO}=X`` FX pair.
    """

    name = "yfinance"

    def __init__(self, reporting_currency: str = "BRL", timeout: Optional[float] = None):
        super().__init__(timeout)
        self.reporting_currency = reporting_currency.strip().upper()
        self._fx_cache: Dict[str, float] = {}

    def to_yahoo_symbol(self, ticker: str) -> str:
        symbol = ticker.strip().upper()
        if symbol.endswith(".SA") or "-" in symbol:
            return symbol
        if is_domestic_ticker(symbol):
            return f"{symbol}.SA"
        if symbol in CRYPTO_SYMBOLS:
            return f"{symbol}-{self.reporting_currency}"
        return symbol

    def _fx_rate(self, from_currency: str) -> Optional[float]:
        from_currency = from_currency.upper()
        if from_currency == self.reporting_currency:
            return 1.0
        if from_currency in self._fx_cache:
            return self._fx_cache[from_currency]

        pair = f"{from_currency}{self.reporting_currency}=X"
        rate = yf.Ticker(pair).fast_info.last_price
        if not _valid_price(rate):
            self.logger.warning("fx_rate_unavailable", pair=pair)
            return None

        self._fx_cache[from_currency] = float(rate)
        return float(rate)

    def _fetch_sync(self, tickers: List[str]) -> Dict[str, float]:
        prices: Dict[str, float] = {}
        for ticker in tickers:
            yahoo_symbol = self.to_yahoo_symbol(ticker)
            try:
                info = yf.Ticker(yahoo_symbol).fast_info
                price = info.last_price
                if not _valid_price(price):
                    continue
                rate = self._fx_rate((info.currency or self.reporting_currency).upper())
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                self.logger.debug(
                    "yfinance_quote_missing",
                    ticker=ticker,
                    symbol=yahoo_symbol,
                    error_type=type(e).__name__
                )
                continue
            except Exception as e:
                self.logger.warning(
                    "yfinance_quote_error",
                    ticker=ticker,
                    symbol=yahoo_symbol,
                    error_type=type(e).__name__,
                    error=str(e)
                )
                continue

            if rate is None:
                continue

            prices[ticker] = float(price) * rate

        return prices

    async def fetch_prices(self, tickers: List[str]) -> Dict[str, float]:
        symbols = _normalize_tickers(tickers)
        if not symbols:
            return {}

        # yfinance is blocking; keep it off the event loop
        prices = await asyncio.to_thread(self._fetch_sync, symbols)
        self.logger.debug("yfinance_quotes_fetched", requested=len(symbols), received=len(prices))
        return prices


class FallbackQuoteProvider(QuoteProvider):
    """
    Ordered chain of providers behind one interface.

    Each provider is asked only for the tickers still missing after the
    previous ones; the first positive price for a ticker wins.

    Example:
        >>> chain = FallbackQuoteProvider([BrapiQuoteProvider(), YFinanceQuoteProvider()])
        >>> prices = await chain.fetch_prices(["PETR4", "AAPL", "BTC"])
    """

    name = "fallback"

    def __init__(self, providers: Iterable[QuoteProvider], timeout: Optional[float] = None):
        self.providers = list(providers)
        # Give every stage its own timeout budget
        total = sum(p.timeout for p in self.providers) if self.providers else None
        super().__init__(timeout or total)

    async def fetch_prices(self, tickers: List[str]) -> Dict[str, float]:
        remaining = _normalize_tickers(tickers)
        merged: Dict[str, float] = {}

        for provider in self.providers:
            if not remaining:
                break
            if not provider.is_available():
                self.logger.debug("quote_provider_skipped", source=provider.name)
                continue

            prices = await provider.fetch_with_timeout(remaining)
            for ticker in remaining:
                price = prices.get(ticker)
                if ticker not in merged and _valid_price(price):
                    merged[ticker] = float(price)

            remaining = [t for t in remaining if t not in merged]

            self.logger.debug(
                "quote_provider_stage",
                source=provider.name,
                received=len(prices),
                still_missing=len(remaining)
            )

        if remaining:
            self.logger.info("quotes_missing", tickers=remaining)

        return merged


def build_default_provider(
    brapi_token: Optional[str] = None,
    reporting_currency: str = "BRL",
    timeout: Optional[float] = None
) -> FallbackQuoteProvider:
    """brapi first for B3 tickers, then yfinance for everything left."""
    return FallbackQuoteProvider([
        BrapiQuoteProvider(token=brapi_token, timeout=timeout),
        YFinanceQuoteProvider(reporting_currency=reporting_currency, timeout=timeout),
    ])
