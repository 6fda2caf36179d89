"""
Portfolio Valuation Module for BolsaMaster.

Derives everything the dashboard shows from an append-only transaction
ledger:
- Weighted-average cost positions with oversell clamping
- Current holdings priced from live quotes with fallbacks
- Accumulated dividends
- Historical invested-vs-equity series for the growth chart
- Asset classification from ticker strings
- Ledger persistence with SQLite and CSV export/import

Example usage:
    >>> from bolsamaster.portfolio import (
    ...     InMemoryLedgerStore, PortfolioService,
    ...     create_buy_transaction, create_sell_transaction
    ... )
    >>> from datetime import date
    >>>
    >>> service = PortfolioService(InMemoryLedgerStore())
    >>> service.record(create_buy_transaction("PETR4", 100, 32.50, date(2024, 1, 10)))
    >>> service.record(create_sell_transaction("PETR4", 40, 38.00, date(2024, 2, 1)))
    >>>
    >>> [(a.ticker, a.quantity, a.average_cost) for a in service.assets]
    [('PETR4', 60.0, 32.5)]
"""

from .transaction import (
    Transaction,
    TransactionType,
    generate_id,
    sort_by_date,
    create_buy_transaction,
    create_sell_transaction,
    create_dividend_transaction
)
from .classifier import AssetType, classify, is_domestic_ticker, is_crypto_ticker
from .position import Position, compute_position, compute_positions, distinct_tickers
from .dividends import (
    accumulated_dividends,
    dividends_by_ticker,
    dividends_in_period,
    monthly_dividends
)
from .aggregator import Asset, build_portfolio, assets_by_ticker
from .history import HistoryPoint, historical_series, history_to_frame
from .summary import AllocationSlice, PortfolioSummary, allocation_by_type, realized_gains, summarize
from .storage import (
    LedgerStore,
    InMemoryLedgerStore,
    SQLiteLedgerStore,
    export_to_csv,
    import_from_csv
)
from .service import PortfolioService

__all__ = [
    # Ledger entries
    "Transaction",
    "TransactionType",
    "generate_id",
    "sort_by_date",
    "create_buy_transaction",
    "create_sell_transaction",
    "create_dividend_transaction",

    # Classification
    "AssetType",
    "classify",
    "is_domestic_ticker",
    "is_crypto_ticker",

    # Positions
    "Position",
    "compute_position",
    "compute_positions",
    "distinct_tickers",

    # Dividends
    "accumulated_dividends",
    "dividends_by_ticker",
    "dividends_in_period",
    "monthly_dividends",

    # Aggregation
    "Asset",
    "build_portfolio",
    "assets_by_ticker",

    # History
    "HistoryPoint",
    "historical_series",
    "history_to_frame",

    # Summary
    "AllocationSlice",
    "PortfolioSummary",
    "allocation_by_type",
    "realized_gains",
    "summarize",

    # Storage
    "LedgerStore",
    "InMemoryLedgerStore",
    "SQLiteLedgerStore",
    "export_to_csv",
    "import_from_csv",

    # Service
    "PortfolioService",
]

__version__ = "1.0.0"
