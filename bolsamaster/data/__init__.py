"""
Market Quote Module

Live prices for the portfolio aggregator. Providers return partial
ticker -> price maps and are chained in priority order.

Module Structure:
- quotes.py: QuoteProvider base class, brapi, yfinance and fallback providers

Usage:
    from bolsamaster.data import build_default_provider

    provider = build_default_provider(brapi_token="...")
    prices = await provider.fetch_with_timeout(["PETR4", "AAPL", "BTC"])
"""

from bolsamaster.data.quotes import (
    QuoteProvider,
    BrapiQuoteProvider,
    YFinanceQuoteProvider,
    FallbackQuoteProvider,
    build_default_provider,
)

__all__ = [
    'QuoteProvider',
    'BrapiQuoteProvider',
    'YFinanceQuoteProvider',
    'FallbackQuoteProvider',
    'build_default_provider',
]
