"""
Unit tests for market quote providers.

Tests:
- Base class timeout/error handling and price filtering
- brapi.dev request handling (mocked aiohttp session)
- yfinance symbol mapping and FX conversion (mocked yf.Ticker)
- Fallback chain merging
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from bolsamaster.data.quotes import (
    BrapiQuoteProvider,
    FallbackQuoteProvider,
    QuoteProvider,
    YFinanceQuoteProvider,
    build_default_provider,
)
from bolsamaster.exceptions import QuoteFetchError


class StaticProvider(QuoteProvider):
    """Provider returning a fixed map, recording what it was asked."""

    def __init__(self, name, prices, timeout=None):
        super().__init__(timeout)
        self.name = name
        self.prices = prices
        self.requests = []

    async def fetch_prices(self, tickers):
        self.requests.append(list(tickers))
        return {t: p for t, p in self.prices.items() if t in tickers}


class SlowProvider(QuoteProvider):
    name = "slow"

    async def fetch_prices(self, tickers):
        await asyncio.sleep(1)
        return {t: 1.0 for t in tickers}


class BrokenProvider(QuoteProvider):
    name = "broken"

    async def fetch_prices(self, tickers):
        raise QuoteFetchError("boom", source=self.name)


def mock_response(status=200, data=None):
    """Create an aiohttp session whose get() yields a canned response."""
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=data)

    mock_cm = AsyncMock()
    mock_cm.__aenter__ = AsyncMock(return_value=response)
    mock_cm.__aexit__ = AsyncMock(return_value=None)

    session = MagicMock()
    session.get = MagicMock(return_value=mock_cm)
    return session


class TestQuoteProviderBase:
    """Test timeout/error handling in the base class."""

    @pytest.mark.asyncio
    async def test_invalid_prices_filtered(self):
        provider = StaticProvider("static", {"PETR4": 38.0, "VALE3": 0, "ITSA4": float("nan"), "BBAS3": -1})

        result = await provider.fetch_with_timeout(["PETR4", "VALE3", "ITSA4", "BBAS3"])

        assert result == {"PETR4": 38.0}
        assert provider.get_last_fetch_time() is not None

    @pytest.mark.asyncio
    async def test_timeout_returns_empty(self):
        provider = SlowProvider(timeout=0.01)

        result = await provider.fetch_with_timeout(["PETR4"])

        assert result == {}
        assert isinstance(provider.get_last_error(), TimeoutError)

    @pytest.mark.asyncio
    async def test_error_returns_empty(self):
        provider = BrokenProvider()

        result = await provider.fetch_with_timeout(["PETR4"])

        assert result == {}
        assert isinstance(provider.get_last_error(), QuoteFetchError)

    @pytest.mark.asyncio
    async def test_retry_until_result(self):
        provider = StaticProvider("static", {"PETR4": 38.0})
        provider.fetch_with_timeout = AsyncMock(side_effect=[{}, {"PETR4": 38.0}])

        with patch("bolsamaster.data.quotes.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            result = await provider.fetch_with_retry(["PETR4"], max_retries=3)

        assert result == {"PETR4": 38.0}
        mock_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_retry_exhausted(self):
        provider = BrokenProvider()

        with patch("bolsamaster.data.quotes.asyncio.sleep", new=AsyncMock()):
            result = await provider.fetch_with_retry(["PETR4"], max_retries=2)

        assert result == {}


class TestBrapiQuoteProvider:
    """Test the brapi.dev provider."""

    def test_init(self):
        provider = BrapiQuoteProvider(token="tok")

        assert provider.token == "tok"
        assert provider.base_url == "https://brapi.dev/api"
        assert provider._session is None

    @pytest.mark.asyncio
    async def test_context_manager_closes_session(self):
        provider = BrapiQuoteProvider()

        async with provider:
            session = provider._session
            assert isinstance(session, aiohttp.ClientSession)

        assert session.closed

    @pytest.mark.asyncio
    async def test_fetch_prices_domestic_only(self):
        provider = BrapiQuoteProvider(token="tok")
        provider._session = mock_response(data={"results": [
            {"symbol": "PETR4", "regularMarketPrice": 38.45},
            {"symbol": "HGLG11", "regularMarketPrice": 161.2},
            {"symbol": "VALE3", "regularMarketPrice": None},
        ]})

        prices = await provider.fetch_prices(["petr4", "HGLG11", "VALE3", "AAPL", "BTC"])

        assert prices == {"PETR4": 38.45, "HGLG11": 161.2}
        args, kwargs = provider._session.get.call_args
        assert args[0] == "https://brapi.dev/api/quote/PETR4,HGLG11,VALE3"
        assert kwargs["params"] == {"token": "tok"}

    @pytest.mark.asyncio
    async def test_no_domestic_tickers_skips_request(self):
        provider = BrapiQuoteProvider()
        provider._session = mock_response(data={})

        assert await provider.fetch_prices(["AAPL", "BTC"]) == {}
        provider._session.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_bad_status_returns_empty(self):
        provider = BrapiQuoteProvider()
        provider._session = mock_response(status=500)

        assert await provider.fetch_prices(["PETR4"]) == {}

    @pytest.mark.asyncio
    async def test_unauthorized_raises(self):
        provider = BrapiQuoteProvider(token="bad")
        provider._session = mock_response(status=401)

        with pytest.raises(QuoteFetchError):
            await provider.fetch_prices(["PETR4"])

    @pytest.mark.asyncio
    async def test_unauthorized_swallowed_by_timeout_wrapper(self):
        provider = BrapiQuoteProvider(token="bad")
        provider._session = mock_response(status=401)

        assert await provider.fetch_with_timeout(["PETR4"]) == {}

    @pytest.mark.asyncio
    async def test_unexpected_payload(self):
        provider = BrapiQuoteProvider()
        provider._session = mock_response(data={"error": True})

        assert await provider.fetch_prices(["PETR4"]) == {}

    @pytest.mark.asyncio
    async def test_network_error_returns_empty(self):
        provider = BrapiQuoteProvider()
        session = MagicMock()
        session.get = MagicMock(side_effect=aiohttp.ClientConnectionError("down"))
        provider._session = session

        assert await provider.fetch_prices(["PETR4"]) == {}


class TestYFinanceQuoteProvider:
    """Test the yfinance provider."""

    def test_symbol_mapping(self):
        provider = YFinanceQuoteProvider(reporting_currency="brl")

        assert provider.to_yahoo_symbol("PETR4") == "PETR4.SA"
        assert provider.to_yahoo_symbol("btc") == "BTC-BRL"
        assert provider.to_yahoo_symbol("AAPL") == "AAPL"
        assert provider.to_yahoo_symbol("ETH-USD") == "ETH-USD"
        assert provider.to_yahoo_symbol("VALE3.SA") == "VALE3.SA"

    @pytest.mark.asyncio
    async def test_fetch_with_fx_conversion(self):
        quotes = {
            "PETR4.SA": SimpleNamespace(last_price=38.0, currency="BRL"),
            "AAPL": SimpleNamespace(last_price=200.0, currency="USD"),
            "USDBRL=X": SimpleNamespace(last_price=5.0, currency="BRL"),
        }

        def fake_ticker(symbol):
            return SimpleNamespace(fast_info=quotes[symbol])

        provider = YFinanceQuoteProvider(reporting_currency="BRL")
        with patch("bolsamaster.data.quotes.yf.Ticker", side_effect=fake_ticker):
            prices = await provider.fetch_prices(["PETR4", "AAPL"])

        assert prices == {"PETR4": pytest.approx(38.0), "AAPL": pytest.approx(1000.0)}

    @pytest.mark.asyncio
    async def test_missing_quote_skipped(self):
        def fake_ticker(symbol):
            if symbol == "XPTO3.SA":
                raise KeyError("currentTradingPeriod")
            return SimpleNamespace(fast_info=SimpleNamespace(last_price=10.0, currency="BRL"))

        provider = YFinanceQuoteProvider()
        with patch("bolsamaster.data.quotes.yf.Ticker", side_effect=fake_ticker):
            prices = await provider.fetch_prices(["XPTO3", "VALE3"])

        assert prices == {"VALE3": 10.0}

    @pytest.mark.asyncio
    async def test_one_failing_symbol_keeps_the_rest(self):
        def fake_ticker(symbol):
            if symbol == "BAD":
                raise RuntimeError("Too Many Requests")
            return SimpleNamespace(fast_info=SimpleNamespace(last_price=10.0, currency="BRL"))

        provider = YFinanceQuoteProvider(reporting_currency="BRL")
        with patch("bolsamaster.data.quotes.yf.Ticker", side_effect=fake_ticker):
            prices = await provider.fetch_with_timeout(["AAPL", "BAD", "MSFT"])

        assert prices == {"AAPL": 10.0, "MSFT": 10.0}

    def test_fx_rate_cached(self):
        provider = YFinanceQuoteProvider()
        with patch("bolsamaster.data.quotes.yf.Ticker") as mock_ticker:
            mock_ticker.return_value.fast_info.last_price = 5.0

            assert provider._fx_rate("USD") == 5.0
            assert provider._fx_rate("USD") == 5.0

        assert mock_ticker.call_count == 1

    def test_fx_rate_same_currency(self):
        assert YFinanceQuoteProvider()._fx_rate("brl") == 1.0


class TestFallbackQuoteProvider:
    """Test the ordered provider chain."""

    @pytest.mark.asyncio
    async def test_asks_only_for_missing(self):
        first = StaticProvider("first", {"PETR4": 38.0})
        second = StaticProvider("second", {"PETR4": 99.0, "AAPL": 1000.0})
        chain = FallbackQuoteProvider([first, second])

        prices = await chain.fetch_prices(["PETR4", "AAPL", "BTC"])

        assert prices == {"PETR4": 38.0, "AAPL": 1000.0}
        assert second.requests == [["AAPL", "BTC"]]

    @pytest.mark.asyncio
    async def test_failing_stage_does_not_break_chain(self):
        chain = FallbackQuoteProvider([BrokenProvider(), StaticProvider("ok", {"PETR4": 38.0})])

        assert await chain.fetch_prices(["PETR4"]) == {"PETR4": 38.0}

    @pytest.mark.asyncio
    async def test_stops_when_complete(self):
        first = StaticProvider("first", {"PETR4": 38.0})
        second = StaticProvider("second", {})
        chain = FallbackQuoteProvider([first, second])

        await chain.fetch_prices(["PETR4"])

        assert second.requests == []

    @pytest.mark.asyncio
    async def test_unavailable_provider_skipped(self):
        skipped = StaticProvider("skipped", {"PETR4": 1.0})
        skipped.is_available = MagicMock(return_value=False)
        chain = FallbackQuoteProvider([skipped, StaticProvider("ok", {"PETR4": 38.0})])

        assert await chain.fetch_prices(["PETR4"]) == {"PETR4": 38.0}
        assert skipped.requests == []

    def test_timeout_budget_sums_stages(self):
        chain = FallbackQuoteProvider([StaticProvider("a", {}, timeout=3), StaticProvider("b", {}, timeout=4)])

        assert chain.timeout == 7

    def test_default_chain(self):
        chain = build_default_provider(brapi_token="tok", reporting_currency="USD", timeout=5)

        assert [p.name for p in chain.providers] == ["brapi", "yfinance"]
        assert chain.providers[0].token == "tok"
        assert chain.providers[1].reporting_currency == "USD"
