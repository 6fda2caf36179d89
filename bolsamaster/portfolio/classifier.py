"""
Asset classification from raw ticker strings.

Grouping and allocation views depend on every ticker landing in exactly one
category, so ``classify`` is pure, offline, and total: unknown input falls
back to a domestic equity instead of raising.
"""

import re
from enum import Enum
from typing import FrozenSet
import structlog

logger = structlog.get_logger(__name__)


class AssetType(Enum):
    """Instrument category; values are the labels shown in the dashboard."""
    STOCK = "Ação BR"
    STOCK_INT = "Stock US"
    FII = "FII"
    REIT = "REIT"
    CRYPTO = "Cripto"
    FIXED_INCOME = "Renda Fixa"
    ETF = "ETF"

    def __str__(self) -> str:
        return self.value


CRYPTO_SYMBOLS: FrozenSet[str] = frozenset({
    "BTC", "ETH", "SOL", "BNB", "XRP", "ADA", "DOGE", "DOT", "AVAX", "MATIC",
    "LTC", "LINK", "TRX", "ATOM", "XLM", "UNI", "SHIB", "TON", "USDT", "USDC",
})

# B3 tickers ending in 11 that are index funds rather than real estate funds
DOMESTIC_ETFS: FrozenSet[str] = frozenset({
    "BOVA11", "IVVB11", "SMAL11", "HASH11", "BOVV11", "DIVO11",
    "XINA11", "NASD11", "GOLD11", "SPXI11", "ECOO11", "FIND11", "MATB11",
    "BRAX11", "PIBB11", "ETHE11", "QBTC11", "BITH11", "WRLD11", "ACWI11",
})

US_REITS: FrozenSet[str] = frozenset({
    "O", "PLD", "AMT", "CCI", "EQIX", "PSA", "SPG", "VICI", "WPC", "DLR",
    "AVB", "EQR", "STAG", "MAIN", "WELL", "VTR", "ARE", "EXR", "INVH", "NNN",
})

US_ETFS: FrozenSet[str] = frozenset({
    "SPY", "VOO", "IVV", "VTI", "QQQ", "VT", "VNQ", "SCHD", "VIG", "VYM",
    "BND", "AGG", "TLT", "IEF", "SHY", "GLD", "IAU", "EFA", "EEM", "VEA",
    "VWO", "JEPI", "DIA", "IWM", "XLK", "XLF", "ARKK", "SOXX", "SMH",
})

# Three-letter paper codes need a separator or series ("CDB 2026", "NTN-B 2035");
# bare they are valid US tickers ("CRI", "LFT")
FIXED_INCOME_PATTERN = re.compile(
    r"^(?:(?:TESOURO|DEBENTURE)(?:$|[\s\-_/0-9])|(?:CDB|LCI|LCA|CRI|CRA|NTN|LTN|LFT)[\s\-_/0-9])"
)

DOMESTIC_PATTERN = re.compile(r"^([A-Z]{4})(\d{1,2})F?$")
INTERNATIONAL_PATTERN = re.compile(r"^[A-Z]{1,5}$")
CRYPTO_QUOTE_SUFFIXES = ("-USD", "-BRL", "USDT")


def _normalize(ticker) -> str:
    symbol = str(ticker).strip().upper()
    if symbol.endswith(".SA"):
        symbol = symbol[:-3]
    return symbol


def _strip_crypto_pair(symbol: str) -> str:
    for suffix in CRYPTO_QUOTE_SUFFIXES:
        if symbol.endswith(suffix) and len(symbol) > len(suffix):
            return symbol[: -len(suffix)]
    return symbol


def is_domestic_ticker(ticker) -> bool:
    """True for B3-shaped symbols: four letters and a numeric class suffix."""
    return DOMESTIC_PATTERN.match(_normalize(ticker)) is not None


def is_crypto_ticker(ticker) -> bool:
    symbol = _normalize(ticker)
    return symbol in CRYPTO_SYMBOLS or _strip_crypto_pair(symbol) in CRYPTO_SYMBOLS


def classify(ticker) -> AssetType:
    """
    Map a raw ticker to its asset category.

    Rules, first match wins:
        1. Known crypto symbol (bare or as a -USD/-BRL/USDT pair) -> CRYPTO
        2. B3 shape (4 letters + 1-2 digits, optional F fractional suffix):
           suffix 11 is ETF for known index funds, FII otherwise; any other
           suffix is a domestic stock
        3. Treasury/bank paper codes -> FIXED_INCOME
        4. 1-5 letters: known REIT -> REIT, known ETF -> ETF, else STOCK_INT
        5. Anything else -> STOCK

    Args:
        ticker: Raw symbol; non-string input is coerced with str()

    Returns:
        Exactly one AssetType

    Example:
        >>> classify("hglg11")
        <AssetType.FII: 'FII'>
        >>> classify("BOVA11")
        <AssetType.ETF: 'ETF'>
    """
    symbol = _normalize(ticker)

    if is_crypto_ticker(symbol):
        return AssetType.CRYPTO

    match = DOMESTIC_PATTERN.match(symbol)
    if match:
        if match.group(2) == "11":
            base = f"{match.group(1)}11"
            return AssetType.ETF if base in DOMESTIC_ETFS else AssetType.FII
        return AssetType.STOCK

    if FIXED_INCOME_PATTERN.match(symbol):
        return AssetType.FIXED_INCOME

    if INTERNATIONAL_PATTERN.match(symbol):
        if symbol in US_REITS:
            return AssetType.REIT
        if symbol in US_ETFS:
            return AssetType.ETF
        return AssetType.STOCK_INT

    logger.debug("ticker_unclassified", ticker=symbol, fallback=AssetType.STOCK.name)
    return AssetType.STOCK
